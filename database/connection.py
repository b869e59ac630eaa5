"""
RFPFlow Database Connection
Async engine and session factory, constructed explicitly and passed to callers
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.config import DatabaseConfig, normalize_database_url

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    url = normalize_database_url(url)
    if url.startswith("sqlite") and ":memory:" in url:
        # One shared connection, otherwise every session sees an empty database.
        # No rollback on checkin: another session may have pending writes on it.
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            pool_reset_on_return=None,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


class Database:
    """
    Owns the async engine and session factory.

    Usage:
        db = Database.from_config(settings.database)
        async with db.session() as session:
            repo = RFPRepository(session)
            ...
    """

    def __init__(self, url: str, echo: bool = False, engine: Optional[AsyncEngine] = None):
        self.url = normalize_database_url(url)
        self.engine = engine or build_engine(self.url, echo=echo)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "Database":
        return cls(config.url, echo=config.echo)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Transactional session: commits on success, rolls back on any error"""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """FastAPI dependency form of session()"""
        async with self.session() as session:
            yield session

    async def create_all(self) -> None:
        """Create all tables. Call this on application startup."""
        from database.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured at %s", self.engine.url.render_as_string(hide_password=True))

    async def drop_all(self) -> None:
        from database.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def health_check(self) -> dict:
        """Check database connectivity."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
                return {"status": "healthy", "database": "connected"}
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return {"status": "unhealthy", "database": "unavailable", "detail": str(e)}

    async def dispose(self) -> None:
        await self.engine.dispose()
