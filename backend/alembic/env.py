"""Migrations for the canvas task tables.

The database URL comes from app settings unless ``-x db_url=...`` is given
on the command line. Only tables registered on ``Base.metadata`` are
compared during autogenerate, so a database shared with other services
keeps its foreign tables out of generated revisions.
"""
from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.config import get_settings
from app.database import Base
import app.models  # noqa: F401  registers canvas_tasks on Base.metadata

alembic_cfg = context.config
if alembic_cfg.config_file_name is not None:
    fileConfig(alembic_cfg.config_file_name)


def _database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("db_url") or get_settings().DATABASE_URL


def _own_tables_only(obj, name, type_, reflected, compare_to) -> bool:
    # reflected tables with no model belong to someone else
    if type_ == "table" and reflected and compare_to is None:
        return False
    return True


def _context_options(url: str) -> dict:
    return {
        "target_metadata": Base.metadata,
        "compare_type": True,
        "include_object": _own_tables_only,
        # SQLite cannot ALTER most columns in place
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
    }


def emit_sql(url: str) -> None:
    """``alembic upgrade --sql``: write the DDL instead of executing it."""
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def _apply(connection: Connection, url: str) -> None:
    context.configure(connection=connection, **_context_options(url))
    with context.begin_transaction():
        context.run_migrations()


async def apply_to_database(url: str) -> None:
    engine = create_async_engine(url, poolclass=NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_apply, url)
    finally:
        await engine.dispose()


target_url = _database_url()
if context.is_offline_mode():
    emit_sql(target_url)
else:
    asyncio.run(apply_to_database(target_url))
