"""
Configuration management for the Catalog Composer application.

This module handles:
- Database path configuration
- Environment-specific configuration (development vs. production)
- Composition and backup limits
"""

import os
import logging
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    BACKUP_EXPIRY_DAYS,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    MAX_BACKUPS_PER_PRODUCT,
    MAX_COMPOSITION_DEPTH,
)

logger = logging.getLogger(__name__)

ENV_VARIABLE = "CATALOG_COMPOSER_ENV"
DATABASE_URL_VARIABLE = "CATALOG_COMPOSER_DATABASE_URL"
MAX_DEPTH_VARIABLE = "CATALOG_MAX_COMPOSITION_DEPTH"


def _int_from_env(name: str, default: int) -> int:
    """Read a positive integer from the environment, falling back to default."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}; using {default}")
        return default
    if value < 1:
        logger.warning(f"Ignoring non-positive {name}={raw!r}; using {default}")
        return default
    return value


class Config:
    """
    Application configuration manager.

    Handles database location, environment settings and the limits used by
    the composition and backup services.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        self._database_url_override = os.environ.get(DATABASE_URL_VARIABLE)

        self._max_composition_depth = _int_from_env(MAX_DEPTH_VARIABLE, MAX_COMPOSITION_DEPTH)
        self._max_backups_per_product = MAX_BACKUPS_PER_PRODUCT
        self._backup_expiry_days = BACKUP_EXPIRY_DAYS

    def _get_project_data_dir(self) -> Path:
        """Project data/ directory used in development."""
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Per-user application directory used in production."""
        return Path.home() / ".catalog_composer"

    def ensure_directories(self) -> None:
        """Create the database directory if it doesn't exist."""
        self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            The CATALOG_COMPOSER_DATABASE_URL override if set, otherwise a
            SQLite URL for the configured database file
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def max_composition_depth(self) -> int:
        """Maximum nesting depth allowed when expanding composition trees."""
        return self._max_composition_depth

    @property
    def max_backups_per_product(self) -> int:
        """Number of migration backups retained per product."""
        return self._max_backups_per_product

    @property
    def backup_expiry_days(self) -> int:
        """Age in days after which migration backups are discarded."""
        return self._backup_expiry_days

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """Check if the database file exists."""
        return self._database_path.exists()

    def __repr__(self) -> str:
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing a
    different environment argument.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    CATALOG_COMPOSER_ENV or defaults to production. Ignored if
                    the singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_VARIABLE, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton."
        )

    return _config_instance


def reset_config() -> None:
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None

