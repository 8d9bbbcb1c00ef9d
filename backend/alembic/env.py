"""
Alembic migration environment for the family accounts schema.

Runs against DATABASE_URL from backend.database.db so migrations and the
application always target the same database.
"""

import asyncio
import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from backend.database.db import Base, DATABASE_URL

logger = logging.getLogger("alembic.env")

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _redacted_url() -> str:
    """DATABASE_URL without credentials, for log output."""
    return DATABASE_URL.rsplit("@", 1)[-1] if "@" in DATABASE_URL else DATABASE_URL


def run_migrations_offline() -> None:
    """Emit migration SQL to stdout instead of executing it."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _apply(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def _apply_async() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = DATABASE_URL
    connectable = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    try:
        async with connectable.connect() as connection:
            await connection.run_sync(_apply)
    except Exception:
        logger.error("Migration against %s failed", _redacted_url(), exc_info=True)
        raise
    finally:
        await connectable.dispose()
    logger.info("Migrations applied to %s", _redacted_url())


def run_migrations_online() -> None:
    asyncio.run(_apply_async())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
