"""Services for managing the persisted application configuration."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError  # type: ignore[import]

from .constants import CONFIG_FILENAME, DEFAULT_DATABASE_NAME
from .models import AppConfig


class ConfigError(RuntimeError):
    """Base exception for configuration operations."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file cannot be located."""


class ConfigService:
    """Read, write and bootstrap the JSON configuration file."""

    _logger = logging.getLogger(__name__)

    def __init__(self, config_dir: Path, database_root: Path) -> None:
        self._config_dir = config_dir
        self._database_root = database_root
        self._config_dir.mkdir(parents=True, exist_ok=True)
        self._database_root.mkdir(parents=True, exist_ok=True)

    @property
    def config_path(self) -> Path:
        return self._config_dir / CONFIG_FILENAME

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def load_config(self) -> AppConfig:
        """Load the stored configuration."""

        path = self.config_path
        if not path.exists():
            raise ConfigNotFoundError(f"Configuration file {path} does not exist")
        try:
            return AppConfig.model_validate_json(path.read_text())
        except ValidationError as exc:
            raise ConfigError(f"Configuration {path} is invalid: {exc}") from exc

    def save_config(self, config: AppConfig) -> None:
        """Persist a configuration definition."""

        path = self.config_path
        data = config.model_dump(mode="json")
        path.write_text(json.dumps(data, indent=2, sort_keys=True))
        self._logger.info("Saved configuration to %s", path)

    def load_or_create(self) -> AppConfig:
        """Return the stored configuration, writing defaults on first run."""

        try:
            return self.load_config()
        except ConfigNotFoundError:
            config = self.default_config()
            self.save_config(config)
            self._logger.info("Created default configuration at %s", self.config_path)
            return config

    def update_config(self, **changes: Any) -> AppConfig:
        """Apply field changes, validate them and persist the result."""

        current = self.load_or_create()
        data = current.model_dump()
        data.update(changes)
        try:
            config = AppConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Rejected configuration change: {exc}") from exc
        self.save_config(config)
        return config

    def default_config(self) -> AppConfig:
        return AppConfig(
            database_path=(self._database_root / DEFAULT_DATABASE_NAME).resolve(),
            created_at=datetime.now(timezone.utc),
        )
