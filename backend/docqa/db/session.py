"""
Database handle — one async engine + session factory per process.

Lifecycle:
  1. ``Database.from_settings()`` is called once in the FastAPI lifespan and
     stored on ``app.state.db``.
  2. ``get_db()`` (a FastAPI dependency) opens one AsyncSession per request
     from that shared pool and closes it when the request ends.
  3. ``Database.dispose()`` runs at shutdown and closes pooled connections.

Sessions are NOT wrapped in an outer transaction: the repository commits at
the end of each logical operation so that persisted failure states (e.g.
ocr_status=FAILED) survive an error raised afterwards in the same request.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from docqa.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class Database:
    """Process-wide pooled connection resource."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        # expire_on_commit=False keeps ORM objects usable after commit
        self.sessionmaker = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "Database":
        cfg = cfg or default_settings
        engine = create_async_engine(
            cfg.database_url,
            pool_size=cfg.db_pool_size,
            max_overflow=cfg.db_max_overflow,
            pool_pre_ping=True,          # detect stale connections before use
            pool_recycle=3600,           # recycle connections every hour
            echo=cfg.db_echo_sql,
        )
        return cls(engine)

    async def create_schema(self) -> None:
        """Create the pgvector extension and tables if missing (dev / tests)."""
        from docqa.models.documents import Base

        async with self.engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)

    async def health(self) -> dict:
        """Ping the database; used by /ready."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as exc:
            logger.error("DB health check failed: %s", exc)
            return {"status": "error", "detail": str(exc)}

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database pool disposed")


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield one session from the shared pool for the lifetime of a request."""
    db: Database = request.app.state.db
    async with db.sessionmaker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
