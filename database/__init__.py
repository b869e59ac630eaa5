# RFPFlow Database Layer
# Async SQLAlchemy over PostgreSQL (asyncpg) or SQLite (aiosqlite)

from database.connection import Database, build_engine
from database.models import (
    Base,
    RFP,
    Vendor,
    Proposal,
    RFPStatus,
    ProposalStatus,
)
from database.repositories import RFPRepository, VendorRepository, ProposalRepository

__all__ = [
    "Database",
    "build_engine",
    "Base",
    "RFP",
    "Vendor",
    "Proposal",
    "RFPStatus",
    "ProposalStatus",
    "RFPRepository",
    "VendorRepository",
    "ProposalRepository",
]
