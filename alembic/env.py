"""Alembic environment for the contacts schema.

The database URL comes from application settings (``DATABASE_URL`` or
``.env``), so ``alembic upgrade head`` and the API always agree on the
target database.
"""

from __future__ import annotations

from sqlalchemy import create_engine, pool

from alembic import context

from app.core.settings import get_settings
from app.db import models  # noqa: F401
from app.db.base import Base

target_metadata = Base.metadata


def _database_url() -> str:
    configured = context.config.get_main_option("sqlalchemy.url")
    return configured or get_settings().database_url


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_database_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
