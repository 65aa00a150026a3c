"""
Process start-up for the gamification engine.
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from .core.config import Config, get_config, load_config
from .core.logging_config import setup_logging
from .db.engine import build_engine, check_connection
from .db.init_db import create_tables
from .services.gamification import GamificationService

logger = logging.getLogger(__name__)


def init_gamification(
    config: Optional[Config] = None,
    config_file: Optional[str] = None,
    create_schema: bool = True,
    logging_enabled: bool = True,
) -> GamificationService:
    """
    Configure logging, open the database and build a service.

    Args:
        config: Settings to use; loaded from ``config_file`` or the environment when omitted
        config_file: YAML file read when ``config`` is not given
        create_schema: Create missing tables
        logging_enabled: Install the console and file log handlers

    Returns:
        GamificationService bound to its own engine

    Raises:
        ConfigurationError: A setting has an invalid value
    """
    if config is None:
        config = load_config(config_file) if config_file else get_config()

    if logging_enabled:
        setup_logging(config.logging)

    engine = build_engine(config.database)
    if not check_connection(engine):
        logger.warning(f"Database {config.database.type.value} not reachable at start-up")
    if create_schema:
        create_tables(engine)

    session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    logger.info(
        f"Gamification engine ready ({config.environment.value}, "
        f"{config.gamification.points_per_level} points per level)"
    )
    return GamificationService(session_factory=session_factory, config=config.gamification)
