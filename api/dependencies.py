"""
FastAPI dependency providers.

Everything is constructed once in create_app() and stored on app.state;
routes reach it through these providers, so tests can hand fakes to create_app().
"""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from agents.procurement_agent import ProcurementExtractionAgent
from api.distribution import RFPDistributionService
from api.email_service import EmailService
from database.connection import Database
from evaluation.comparison_cache import ComparisonCacheManager


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_session(database: Database = Depends(get_database)) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped transactional session"""
    async with database.session() as session:
        yield session


def get_agent(request: Request) -> ProcurementExtractionAgent:
    return request.app.state.agent


def get_comparison_manager(request: Request) -> ComparisonCacheManager:
    return request.app.state.comparison_manager


def get_distribution_service(request: Request) -> RFPDistributionService:
    return request.app.state.distribution


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service
