"""
Database engine configuration.
"""

import logging
from typing import Any, Dict, Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from ..core.config import DatabaseConfig, get_config

logger = logging.getLogger(__name__)

# Global engine instance
_sync_engine: Optional[Engine] = None


def build_engine(config: DatabaseConfig) -> Engine:
    """
    Create an engine for the configured database.

    SQLite gets a shared single connection when in-memory, since every
    new connection would otherwise see an empty database.

    Args:
        config: Database configuration

    Returns:
        SQLAlchemy engine instance
    """
    database_url = config.connection_string
    engine_kwargs: Dict[str, Any] = {"echo": config.echo}

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs.update(
            pool_size=config.pool_size,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    return create_engine(database_url, **engine_kwargs)


def get_engine() -> Engine:
    """
    Get the process-wide SQLAlchemy engine.

    Returns:
        SQLAlchemy engine instance
    """
    global _sync_engine

    if _sync_engine is None:
        _sync_engine = build_engine(get_config().database)

    return _sync_engine


def check_connection(engine: Optional[Engine] = None) -> bool:
    """
    Test database connection.

    Returns:
        True if connection successful
    """
    engine = engine or get_engine()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False


def close_engines() -> None:
    """Close the global engine."""
    global _sync_engine

    if _sync_engine:
        _sync_engine.dispose()
        _sync_engine = None
