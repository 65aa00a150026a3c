"""
Core module containing essential utilities and configurations for the application.
"""

from .config import Config, GamificationConfig, get_config, load_config
from .logging_config import setup_logging, event_logger, LoggingContext
from .exceptions import (
    AppException,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    ConcurrencyConflict,
    DatabaseError,
    ExternalDependencyError,
)
from .constants import (
    EventTypes,
    EventDataKeys,
    LeaderboardTimeframe,
    GamificationConstants,
    ErrorMessages,
)

__all__ = [
    # Config
    "Config",
    "GamificationConfig",
    "get_config",
    "load_config",

    # Logging
    "setup_logging",
    "event_logger",
    "LoggingContext",

    # Exceptions
    "AppException",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "ConcurrencyConflict",
    "DatabaseError",
    "ExternalDependencyError",

    # Constants
    "EventTypes",
    "EventDataKeys",
    "LeaderboardTimeframe",
    "GamificationConstants",
    "ErrorMessages",
]
