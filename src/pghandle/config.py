"""
Database configuration

Connection settings, auto-closer settings and logging settings, validated with
pydantic. Values can come from a YAML file, environment variables and explicit
overrides, applied in that order.
"""

import os
import logging
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.engine import URL

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Environment variables overriding the database section
ENV_MAPPINGS = {
    'host': 'PGHANDLE_HOST',
    'port': 'PGHANDLE_PORT',
    'database': 'PGHANDLE_DATABASE',
    'username': 'PGHANDLE_USERNAME',
    'password': 'PGHANDLE_PASSWORD',
    'auto_closer_enabled': 'PGHANDLE_AUTO_CLOSER_ENABLED',
    'auto_closer_minutes': 'PGHANDLE_AUTO_CLOSER_MINUTES',
}

DEFAULT_ENGINE_ARGS = {
    'pool_size': 10,
    'max_overflow': 20,
    'pool_pre_ping': True,
    'echo': False,
    # Transactions are driven by literal START TRANSACTION / COMMIT statements
    'isolation_level': 'AUTOCOMMIT',
}


class LoggingConfig(BaseModel):
    """Logging settings for the pghandle logger."""
    level: str = Field("INFO", description="Log level name")
    log_file: Optional[str] = Field(None, description="Optional log file path")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level


class DatabaseConfig(BaseModel):
    """Connection and auto-closer settings."""
    host: str = "localhost"
    port: int = Field(5432, ge=1, le=65535)
    database: str = "postgres"
    username: str = "postgres"
    password: str = ""
    driver: str = Field("postgresql+asyncpg", description="SQLAlchemy async driver name")
    auto_closer_enabled: bool = Field(False, description="Force-close handles left open too long")
    auto_closer_minutes: float = Field(3, ge=0, description="Minutes a handle may stay open")
    engine_args: Dict[str, Any] = Field(default_factory=dict, description="Extra create_async_engine arguments")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def url(self) -> URL:
        return URL.create(
            self.driver,
            username=self.username,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    @property
    def connection_string(self) -> str:
        """Connection URL including the password"""
        return self.url.render_as_string(hide_password=False)

    @property
    def safe_connection_string(self) -> str:
        """Connection URL with the password masked, for logs"""
        return self.url.render_as_string(hide_password=True)

    def get_engine_args(self) -> Dict[str, Any]:
        """Engine arguments with defaults filled in"""
        engine_args = deepcopy(self.engine_args)
        for key, value in DEFAULT_ENGINE_ARGS.items():
            engine_args.setdefault(key, value)
        return engine_args

    @staticmethod
    def get_default_config() -> Dict[str, Any]:
        """Default configuration as a plain dictionary, e.g. for writing a template file"""
        return DatabaseConfig().model_dump()


def _env_overrides() -> Dict[str, Any]:
    overrides = {}
    for key, env_var in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is not None:
            overrides[key] = value
            logger.debug(f"Applied environment override for database.{key}")
    return overrides


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r') as f:
            content = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(content, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping")

    # Accept either a bare mapping or one nested under "database"
    if isinstance(content.get('database'), dict):
        section = dict(content['database'])
        if 'logging' in content and 'logging' not in section:
            section['logging'] = content['logging']
        return section
    return content


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> DatabaseConfig:
    """
    Load and validate configuration.

    Args:
        path: Optional YAML file
        overrides: Values applied after the file and the environment

    Returns:
        Validated DatabaseConfig

    Raises:
        FileNotFoundError: if path is given and does not exist
        ConfigurationError: if any value is invalid
    """
    values: Dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config not found: {path}")
        values.update(_load_yaml_file(path))
        logger.info(f"Loaded database configuration from {path}")

    values.update(_env_overrides())
    values.update(overrides or {})

    try:
        return DatabaseConfig(**values)
    except ValidationError as e:
        logger.error(f"Database configuration validation failed: {e}")
        raise ConfigurationError(str(e)) from e
