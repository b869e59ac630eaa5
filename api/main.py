"""
RFPFlow API v1.0
FastAPI backend for AI-assisted procurement

Endpoints:
- POST   /api/rfps                         - Draft an RFP from a free-text description
- GET    /api/rfps                         - List RFPs
- GET    /api/rfps/{rfpId}                 - RFP with its proposals
- PUT    /api/rfps/{rfpId}                 - Partial update
- DELETE /api/rfps/{rfpId}                 - Delete an RFP and its proposals
- GET    /api/rfps/{rfpId}/proposals       - Proposals for an RFP
- GET    /api/rfps/{rfpId}/comparison      - Cached or fresh AI comparison (?refresh=true)
- GET/POST/PUT/DELETE /api/vendors         - Vendor directory
- POST   /api/email/rfps/{rfpId}/send      - Email an RFP to vendors
- GET    /api/email/verify                 - Check the outbound mail transport
- GET    /api/health                       - Liveness and database status

Run with:
    uvicorn api.main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agents.integrations.openai_compatible_client import OpenAICompatibleClient
from agents.procurement_agent import ProcurementExtractionAgent
from api.distribution import RFPDistributionService
from api.email_service import EmailService
from api.routers import email_router, rfps_router, vendors_router
from core.config import Settings, get_settings
from core.errors import RFPFlowError
from core.logging_config import setup_logging
from database.connection import Database
from ingestion.mailbox import ImapMailbox
from ingestion.pipeline import ProposalIngestionPipeline
from ingestion.scheduler import PollScheduler
from evaluation.comparison_cache import ComparisonCacheManager

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def build_agent(settings: Settings) -> ProcurementExtractionAgent:
    return ProcurementExtractionAgent(OpenAICompatibleClient.from_config(settings.llm))


def build_pipeline(
    settings: Settings,
    database: Database,
    agent: ProcurementExtractionAgent,
) -> ProposalIngestionPipeline:
    mailbox_config = settings.mailbox
    return ProposalIngestionPipeline(
        database=database,
        agent=agent,
        mailbox_factory=lambda: ImapMailbox(mailbox_config),
        config=mailbox_config,
    )


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RFPFlowError)
    async def rfpflow_error_handler(request: Request, exc: RFPFlowError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        else:
            message = "Invalid request"
        return _error_response(400, message)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(500, "Internal server error")


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    agent: Optional[ProcurementExtractionAgent] = None,
    email_service: Optional[EmailService] = None,
    scheduler: Optional[PollScheduler] = None,
) -> FastAPI:
    """
    Build the application. Collaborators default to ones built from settings;
    passing them in lets tests run against an in-memory database and fakes.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)

    owns_database = database is None
    database = database or Database.from_config(settings.database)
    agent = agent or build_agent(settings)
    email_service = email_service or EmailService()

    if scheduler is None and settings.mailbox.run_in_api and settings.mailbox.is_configured:
        scheduler = PollScheduler(
            build_pipeline(settings, database, agent),
            interval_seconds=settings.mailbox.poll_interval_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[Startup] RFPFlow v%s starting (%s)", API_VERSION, settings.environment.value)
        for issue in settings.validate():
            logger.warning("[Startup] %s", issue)
        if settings.database.auto_create:
            await database.create_all()
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            logger.info("[Shutdown] RFPFlow shutting down...")
            if scheduler is not None:
                await scheduler.stop()
            if owns_database:
                await database.dispose()

    app = FastAPI(
        title="RFPFlow API",
        description="AI-assisted procurement: draft RFPs, email vendors, ingest and compare proposals.",
        version=API_VERSION,
        lifespan=lifespan,
    )

    if settings.cors_origins == ["*"]:
        # Credentials are not allowed with a wildcard origin
        cors_credentials = False
    else:
        cors_credentials = True
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=cors_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.state.settings = settings
    app.state.database = database
    app.state.agent = agent
    app.state.email_service = email_service
    app.state.comparison_manager = ComparisonCacheManager(
        database, agent, enforce_weights=settings.comparison.enforce_weights
    )
    app.state.distribution = RFPDistributionService(database, email_service)
    app.state.scheduler = scheduler

    _install_exception_handlers(app)

    app.include_router(rfps_router, prefix="/api")
    app.include_router(vendors_router, prefix="/api")
    app.include_router(email_router, prefix="/api")

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        db_status = await database.health_check()
        return {
            "status": "ok",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "version": API_VERSION,
            "database": db_status.get("database"),
        }

    return app
