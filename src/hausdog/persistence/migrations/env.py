"""Alembic environment for Hausdog migrations.

Loaded by alembic only. Programmatic entry points live in
hausdog.persistence.migrate; they hand the connection over through
`config.attributes["connection"]`.
"""

from __future__ import annotations

from alembic import context

from hausdog.persistence.db import get_database_url, get_engine
from hausdog.persistence.schema import metadata

target_metadata = metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to stdout."""
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations on the provided connection, or on the configured engine."""
    connection = context.config.attributes.get("connection")
    if connection is None:
        with get_engine().connect() as conn:
            context.configure(connection=conn, target_metadata=target_metadata)
            with context.begin_transaction():
                context.run_migrations()
        return

    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
