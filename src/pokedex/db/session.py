"""Database engine management.

Provides cached engines and schema creation/teardown. Every secondary
lookup of the aggregation checks out its own pooled connection, so the
engine must be safe to use from several threads at once.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from pokedex.db.schema import Base

logger = logging.getLogger(__name__)

# Module-level engine cache for connection pooling
_engine_cache: dict[str, Engine] = {}


def get_engine(url: str) -> Engine:
    """Get SQLAlchemy engine for the database URL.

    Engines are cached by URL to enable connection pooling.
    Subsequent calls with the same URL return the cached engine.

    SQLite files get check_same_thread=False and the default queue pool,
    giving each worker thread its own connection. In-memory SQLite uses
    StaticPool so that all threads see the same database.

    Args:
        url: SQLAlchemy database URL.

    Returns:
        SQLAlchemy engine instance (cached).
    """
    if url in _engine_cache:
        return _engine_cache[url]

    parsed = make_url(url)
    kwargs: dict = {"echo": False}

    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        database = parsed.database
        if not database or database == ":memory:":
            kwargs["poolclass"] = StaticPool
        else:
            # Create parent directories only when creating a new engine
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, **kwargs)
    _engine_cache[url] = engine

    return engine


def dispose_engines() -> None:
    """Dispose and forget all cached engines."""
    for engine in _engine_cache.values():
        engine.dispose()
    _engine_cache.clear()


def create_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Database schema created.")


def drop_schema(engine: Engine) -> None:
    """Drop all tables (link table first)."""
    Base.metadata.drop_all(engine)
    logger.info("Database schema deleted.")
