"""Configuration loading service"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

import yaml

from ..api.exceptions import ConfigurationError
from ..constants import DEFAULT_CONFIG_FILE, DEFAULT_ROOT_DIR, ENV_CONFIG_PATH
from ..models.config import AppConfig

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    """Environment override first, then the file below the default root"""
    override = os.environ.get(ENV_CONFIG_PATH)
    if override:
        return Path(override).expanduser()
    return Path(DEFAULT_ROOT_DIR).expanduser() / DEFAULT_CONFIG_FILE


class ConfigService:
    """Service for loading the YAML configuration"""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize config service

        Args:
            config_path: Configuration file, defaults to ``default_config_path()``
        """
        self.config_path = Path(config_path).expanduser() if config_path else default_config_path()
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        """Get current configuration (lazy load)"""
        if self._config is None:
            self.load()
        return self._config

    def load(self) -> AppConfig:
        """Load configuration from file

        A missing file yields the defaults, so a fresh install can still
        list paths and scan folders.

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: File unreadable, not YAML or invalid values
        """
        if not self.config_path.exists():
            logger.info("No configuration at %s, using defaults", self.config_path)
            self._config = AppConfig()
            return self._config

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read {self.config_path}: {e}") from e

        # Expand ${VAR} references before parsing
        content = os.path.expandvars(content)

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"{self.config_path} must contain a mapping")

        self._config = AppConfig.from_dict(data)
        logger.debug("Loaded configuration from %s", self.config_path)
        return self._config
