"""
Configuration management using Pydantic settings.
Supports environment variables, .env files, and YAML configuration.
"""

import os
import yaml
from typing import Any, Dict, Optional
from enum import Enum
from pydantic import Field, ValidationError as PydanticValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import logging

from .constants import GamificationConstants
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Application environments."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class DatabaseType(str, Enum):
    """Database types."""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseConfig(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(env_prefix="DB_", extra="ignore")

    type: DatabaseType = DatabaseType.SQLITE
    url: Optional[str] = None
    host: str = "localhost"
    port: int = 5432
    name: str = "wanderlist.db"
    user: Optional[str] = None
    password: Optional[str] = None
    pool_size: int = 10
    echo: bool = False

    @property
    def connection_string(self) -> str:
        """Generate connection string based on database type."""
        if self.url:
            return self.url

        if self.type == DatabaseType.SQLITE:
            return f"sqlite:///{self.name}"
        elif self.type == DatabaseType.POSTGRESQL:
            return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"
        elif self.type == DatabaseType.MYSQL:
            return f"mysql+pymysql://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"
        return ""


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_path: Optional[str] = None
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5
    json_format: bool = False


class GamificationConfig(BaseSettings):
    """Reward engine configuration."""

    model_config = SettingsConfigDict(env_prefix="GAMIFICATION_", extra="ignore")

    points_per_level: int = Field(GamificationConstants.POINTS_PER_LEVEL, gt=0)
    # When false a failing rule aborts the whole event
    isolate_rule_failures: bool = False
    max_commit_retries: int = Field(3, ge=1)
    leaderboard_default_limit: int = Field(10, ge=1)
    leaderboard_max_limit: int = Field(100, ge=1)
    coupon_badges: Dict[str, str] = Field(default_factory=dict)


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Core
    app_name: str = "wanderlist"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    # Components
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    gamification: GamificationConfig = Field(default_factory=GamificationConfig)

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, v):
        if isinstance(v, str):
            return v.lower()
        return v

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING


def _read_yaml(config_file: str) -> Dict[str, Any]:
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load YAML config from {config_file}: {e}")
        return {}

    if not isinstance(yaml_data, dict):
        return {}

    logger.info(f"Loaded configuration from {config_file}")
    return yaml_data


@lru_cache()
def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get cached configuration instance.

    Args:
        config_file: Optional path to YAML configuration file

    Returns:
        Config instance

    Raises:
        ConfigurationError: A setting has an invalid value
    """
    config_data: Dict[str, Any] = {}

    if config_file and os.path.exists(config_file):
        config_data = _read_yaml(config_file)

    try:
        config = Config(**config_data)
    except PydanticValidationError as e:
        invalid = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            message=f"Invalid configuration: {', '.join(invalid)}",
            details={"invalid_settings": invalid},
            config_key=invalid[0] if invalid else None,
        ) from e

    logger.info(f"Configuration loaded for {config.app_name} in {config.environment.value} environment")
    return config


def load_config(config_file: Optional[str] = None) -> Config:
    """
    Load configuration (clears cache first).

    Args:
        config_file: Optional path to YAML configuration file

    Returns:
        Config instance
    """
    get_config.cache_clear()
    return get_config(config_file)
