"""Data models describing application configuration."""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator  # type: ignore[import]

from ..common.logging import parse_level
from ..db import RecoveryPolicy, Unit
from .constants import DEFAULT_INSTRUMENT_MODEL, SUPPORTED_INSTRUMENT_MODELS

_MAC_PATTERN = re.compile(r"^([0-9A-F]{2}:){5}[0-9A-F]{2}$")


class AppConfig(BaseModel):
    """Settings for the measurement store and the paired instrument."""

    database_path: Path = Field(..., description="Path to the SQLite measurement store")
    recovery_policy: RecoveryPolicy = Field(
        default=RecoveryPolicy.ABORT,
        description="Whether an unusable store aborts startup or is moved aside and reset",
    )
    busy_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds SQLite waits on a locked database before failing",
    )
    subscriber_buffer: int = Field(
        default=16,
        ge=1,
        description="Snapshots buffered per observer before the oldest is dropped",
    )
    default_unit: Unit = Field(default=Unit.METERS, description="Unit offered for manual entry")
    log_level: str = Field(default="INFO", description="Root logging level")
    instrument_model: str = Field(
        default=DEFAULT_INSTRUMENT_MODEL,
        description="Model of the paired total station",
    )
    bluetooth_mac: Optional[str] = Field(
        default=None,
        description="Bluetooth address of the paired instrument",
    )
    created_at: Optional[datetime] = Field(
        default=None,
        description="Timestamp indicating when the configuration was created",
    )

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        parse_level(value)
        return value.strip().upper()

    @field_validator("instrument_model")
    @classmethod
    def _check_instrument_model(cls, value: str) -> str:
        model = value.strip().upper()
        if model not in SUPPORTED_INSTRUMENT_MODELS:
            raise ValueError(f"Unsupported instrument model '{value}'")
        return model

    @field_validator("bluetooth_mac")
    @classmethod
    def _check_bluetooth_mac(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        mac = value.strip().upper().replace("-", ":")
        if not _MAC_PATTERN.match(mac):
            raise ValueError(f"Invalid Bluetooth address '{value}'")
        return mac
