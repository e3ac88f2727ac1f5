"""Configuration utilities for pyMeasureLog."""

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_DATABASE_NAME,
    DEFAULT_INSTRUMENT_MODEL,
    SUPPORTED_INSTRUMENT_MODELS,
)
from .models import AppConfig
from .service import ConfigError, ConfigNotFoundError, ConfigService

__all__ = [
    "AppConfig",
    "ConfigService",
    "ConfigError",
    "ConfigNotFoundError",
    "CONFIG_FILENAME",
    "DEFAULT_DATABASE_NAME",
    "DEFAULT_INSTRUMENT_MODEL",
    "SUPPORTED_INSTRUMENT_MODELS",
]
