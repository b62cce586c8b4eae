"""
alembic.env

Alembic migration environment for the jyt_admin schema.

Responsibilities:
- Expose `jyt_admin` model metadata for autogeneration.
- Run migrations offline (SQL script) or online over the async engine.

Notes:
- Executed by Alembic only; the API creates tables itself in dev and test.
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from jyt_admin.db import models  # noqa: F401  # registers every table on Base.metadata
from jyt_admin.db.base import Base
from jyt_admin.settings import Settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    return os.environ.get("JYT_DATABASE_URL") or Settings().database_url


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def _run(connection: Connection) -> None:
    # Batch mode lets ALTER TABLE migrations run on SQLite.
    context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = _database_url()
    connectable = async_engine_from_config(
        configuration, prefix="sqlalchemy.", poolclass=pool.NullPool
    )
    async with connectable.connect() as connection:
        await connection.run_sync(_run)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())


# --- Module Notes -----------------------------------------------------------
# `database_url` is an async driver URL (aiosqlite / asyncpg), so online migrations go
# through `async_engine_from_config` and `run_sync`.
