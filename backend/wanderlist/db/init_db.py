"""
Database initialization and setup.
"""

import logging
from typing import Optional

from sqlalchemy.engine import Engine

from .base import Base
from .engine import get_engine
from . import models  # noqa: F401  registers tables with Base.metadata

logger = logging.getLogger(__name__)


def create_tables(engine: Optional[Engine] = None) -> None:
    """
    Create all database tables.
    """
    engine = engine or get_engine()

    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise

    logger.info("Database tables created successfully")


def drop_tables(engine: Optional[Engine] = None) -> None:
    """
    Drop all database tables.
    Warning: This will delete all data!
    """
    engine = engine or get_engine()

    try:
        Base.metadata.drop_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to drop tables: {e}")
        raise

    logger.warning("Database tables dropped")
