"""Async engine and session wiring for the purchase request store."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger
from app.models import AuditEntry, PurchaseRequest, User

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

BACKEND_ROOT = Path(__file__).resolve().parents[2]
MIGRATIONS_DIR = BACKEND_ROOT / "migrations" / "versions"

# Tables that must be present in metadata before create_all runs.
WORKFLOW_TABLES = (User, PurchaseRequest, AuditEntry)

logger = get_logger(__name__)


def database_url_for_driver(database_url: str) -> str:
    """Route bare ``postgresql://`` URLs through the psycopg async driver."""
    scheme, sep, rest = database_url.partition("://")
    if sep and scheme in {"postgres", "postgresql"}:
        return f"postgresql+psycopg://{rest}"
    return database_url


async_engine: AsyncEngine = create_async_engine(
    database_url_for_driver(settings.database_url),
    pool_pre_ping=True,
)
async_session_maker = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def _alembic_config() -> Config:
    config = Config(str(BACKEND_ROOT / "alembic.ini"))
    config.attributes["configure_logger"] = False
    return config


def run_migrations() -> None:
    """Upgrade the workflow schema to the latest Alembic revision."""
    logger.info("db.migrations.start")
    command.upgrade(_alembic_config(), "head")
    logger.info("db.migrations.complete")


async def init_db() -> None:
    """Create or migrate the request, user and audit tables."""
    if settings.db_auto_migrate:
        if any(MIGRATIONS_DIR.glob("*.py")):
            await asyncio.to_thread(run_migrations)
            return
        logger.warning("db.migrations.missing falling back to create_all")

    async with async_engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("db.schema.created tables=%s", [model.__tablename__ for model in WORKFLOW_TABLES])


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session, rolling back anything left uncommitted."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            try:
                if session.in_transaction():
                    await session.rollback()
            except SQLAlchemyError:
                logger.exception("db.session.rollback_failed")
