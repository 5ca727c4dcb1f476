"""Database connectivity helpers for Hausdog.

Provides engine creation and transactional connection management over any
SQLAlchemy URL. PostgreSQL is the production store; SQLite is used in tests.

Environment Variables:
    HAUSDOG_DATABASE_URL: SQLAlchemy connection string. When unset the
        application context falls back to in-memory repositories.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, make_url
from sqlalchemy.pool import StaticPool

from hausdog.config import HAUSDOG_DATABASE_URL_ENV
from hausdog.errors import ConfigError

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

_engines: dict[str, Engine] = {}


def is_database_configured() -> bool:
    """Check if a database URL is configured via environment."""
    return bool(os.environ.get(HAUSDOG_DATABASE_URL_ENV, "").strip())


def normalize_database_url(url: str) -> str:
    """Rewrite legacy postgres:// URLs to the postgresql:// scheme.

    Args:
        url: Original database URL.

    Returns:
        URL SQLAlchemy accepts.
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url(url: str | None = None) -> str:
    """Return the database URL, from the argument or the environment.

    Raises:
        ConfigError: If no URL is available.
    """
    resolved = url or os.environ.get(HAUSDOG_DATABASE_URL_ENV, "").strip()
    if not resolved:
        raise ConfigError(
            f"Database URL not configured. Set {HAUSDOG_DATABASE_URL_ENV} environment variable."
        )
    return normalize_database_url(resolved)


def get_engine(url: str | None = None) -> Engine:
    """Get or create the engine for a database URL.

    In-memory SQLite URLs share a single connection so every caller sees the
    same database.

    Raises:
        ConfigError: If no URL is available.
    """
    resolved = get_database_url(url)

    engine = _engines.get(resolved)
    if engine is None:
        if resolved.startswith("sqlite"):
            if make_url(resolved).database in (None, "", ":memory:"):
                engine = create_engine(
                    resolved,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                engine = create_engine(resolved, connect_args={"check_same_thread": False})
        else:
            engine = create_engine(
                resolved,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                echo=False,
            )
        _engines[resolved] = engine
        logger.info(
            "Created database engine for %s", engine.url.render_as_string(hide_password=True)
        )

    return engine


@contextmanager
def begin_conn(engine: Engine) -> Generator[Connection, None, None]:
    """Open a connection and transaction that commits on success.

    Yields:
        SQLAlchemy Connection in a transaction.
    """
    with engine.connect() as conn, conn.begin():
        yield conn


def reset_engines() -> None:
    """Dispose cached engines. Used by tests."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
