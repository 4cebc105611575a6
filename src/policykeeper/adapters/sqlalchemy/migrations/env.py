"""Alembic environment for the policy schema."""

from __future__ import annotations

from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

from policykeeper.adapters.sqlalchemy.mappings import mapper_registry, start_mappers
from policykeeper.config import get_database_config

config = context.config

start_mappers()

target_metadata = mapper_registry.metadata


def _database_url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_database_config().uri


def _run(**options: Any) -> None:
    # batch mode lets SQLite alter tables by copy-and-move
    context.configure(
        target_metadata=target_metadata,
        render_as_batch=True,
        compare_type=True,
        **options,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    _run(url=_database_url(), literal_binds=True)


def run_migrations_online() -> None:
    # upgrade_head(engine=...) hands over an open connection
    connection = config.attributes.get("connection")
    if connection is not None:
        _run(connection=connection)
        return

    engine = create_engine(_database_url(), poolclass=pool.NullPool, future=True)
    try:
        with engine.connect() as own_connection:
            _run(connection=own_connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
