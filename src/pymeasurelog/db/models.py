"""Validated ingestion payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator  # type: ignore[import]

from .errors import ConstraintViolationError
from .schema import MeasurementRecord, Unit, as_utc


class RawReading(BaseModel):
    """A reading as delivered by the instrument side, before it is stored."""

    value: float = Field(..., ge=0, allow_inf_nan=False, description="Measured magnitude")
    unit: Unit = Field(..., description="Unit tag of the magnitude")
    captured_at: datetime = Field(..., description="When the instrument captured the reading")
    session_id: Optional[str] = Field(
        default=None,
        description="Optional key grouping readings of one interaction session",
    )
    note: Optional[str] = Field(default=None, description="Free-text annotation")

    model_config = ConfigDict(frozen=True)

    @field_validator("value", mode="before")
    @classmethod
    def _require_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Measurement value must be numeric, got {value!r}")
        return value

    @field_validator("unit", mode="before")
    @classmethod
    def _parse_unit(cls, value: Any) -> Unit:
        try:
            return Unit.parse(value)
        except ConstraintViolationError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("captured_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    def to_record(self) -> MeasurementRecord:
        return MeasurementRecord(
            value=self.value,
            unit=self.unit,
            captured_at=self.captured_at,
            session_id=self.session_id,
            note=self.note,
        )
