"""Logging helpers."""

from __future__ import annotations

import logging


class _LevelColorFormatter(logging.Formatter):
    """Formatter that colors the level name and appends structured extras."""

    _LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    _RESET = "\033[0m"
    _EXTRA_KEYS = ("operation", "attempt", "record_id", "session_id")

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        color_prefix = self._LEVEL_COLORS.get(record.levelno, "")
        if color_prefix:
            record.levelname = f"{color_prefix}{record.levelname}{self._RESET}"
        try:
            message = super().format(record)
        finally:
            record.levelname = original_levelname

        extras = [
            f"{key}={getattr(record, key)}"
            for key in self._EXTRA_KEYS
            if getattr(record, key, None) is not None
        ]
        if extras:
            message = f"{message} [{' '.join(extras)}]"
        return message


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure application logging with colored level names."""

    handler = logging.StreamHandler()
    handler.setFormatter(_LevelColorFormatter("%(levelname)s %(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(parse_level(level))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


def parse_level(level: int | str) -> int:
    """Translate a level name such as ``"debug"`` into its numeric value."""

    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level '{level}'")
    return value
