"""Alembic environment wired to the application's settings and metadata."""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

from app import models as _models
from app.core.config import settings

config = context.config
# Keep the application's logging intact when migrations run at startup.
if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)

_MODEL_REGISTRY = _models
target_metadata = SQLModel.metadata


def _sync_database_url(database_url: str) -> str:
    """Migrations run synchronously; swap async drivers for their sync twins."""
    scheme, sep, rest = database_url.partition("://")
    if not sep:
        return database_url
    if scheme in {"postgresql", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"
    elif scheme == "sqlite+aiosqlite":
        scheme = "sqlite"
    return f"{scheme}://{rest}"


def run_migrations_offline() -> None:
    context.configure(
        url=_sync_database_url(settings.database_url),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = _sync_database_url(settings.database_url)
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
