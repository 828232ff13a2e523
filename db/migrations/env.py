"""Alembic entry point for the CRM tables.

Online runs go through db.connection.configure(), so migrations accept the
same DATABASE_URL drivers as the application (asyncpg or aiosqlite).
"""
import asyncio
import os
from logging.config import fileConfig

from alembic import context

from db import connection
from db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _offline_url() -> str:
    url = os.environ.get("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("Set DATABASE_URL (see .env.example) to render migration SQL.")
    return url


def run_migrations_offline() -> None:
    """Emit the migration as SQL text."""
    context.configure(
        url=_offline_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(sync_connection) -> None:
    context.configure(
        connection=sync_connection,
        target_metadata=target_metadata,
        render_as_batch=sync_connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_async() -> None:
    engine = connection.configure()
    try:
        async with engine.connect() as conn:
            await conn.run_sync(_migrate)
    finally:
        await connection.dispose_engine()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(_migrate_async())
