"""Measurement record schema, row mapping and migration steps."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping

from .errors import ConstraintViolationError, CorruptStateError

SCHEMA_VERSION = 2

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


class Unit(str, Enum):
    """Closed set of distance units a reading may carry."""

    METERS = "m"
    MILLIMETERS = "mm"
    FEET = "ft"
    INCHES = "in"

    @classmethod
    def parse(cls, value: Any) -> "Unit":
        """Resolve a unit from a member, its tag (``"m"``) or its name (``"meters"``)."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            try:
                return cls(text.lower())
            except ValueError:
                member = cls.__members__.get(text.upper())
                if member is not None:
                    return member
        raise ConstraintViolationError(f"Unrecognized unit {value!r}")


@dataclass(frozen=True, slots=True)
class MeasurementRecord:
    """A single persisted measurement reading.

    ``id`` is ``None`` until the record has been stored. Naive capture
    timestamps are taken to be UTC.
    """

    value: float
    unit: Unit
    captured_at: datetime
    session_id: str | None = None
    note: str | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.captured_at, datetime):
            object.__setattr__(self, "captured_at", as_utc(self.captured_at))

    def with_note(self, note: str | None) -> "MeasurementRecord":
        """Return a copy carrying ``note``; every other field is kept."""

        return replace(self, note=note)

    def with_id(self, record_id: int) -> "MeasurementRecord":
        return replace(self, id=record_id)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_micros(value: datetime) -> int:
    return (as_utc(value) - _EPOCH) // _MICROSECOND


def from_epoch_micros(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=int(value))


def validate_record(record: MeasurementRecord) -> None:
    """Reject records that may not reach storage."""

    value = record.value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConstraintViolationError(f"Measurement value must be numeric, got {value!r}")
    if not math.isfinite(value):
        raise ConstraintViolationError(f"Measurement value must be finite, got {value!r}")
    if value < 0:
        raise ConstraintViolationError(f"Measurement value must be non-negative, got {value!r}")

    Unit.parse(record.unit)

    if not isinstance(record.captured_at, datetime):
        raise ConstraintViolationError("Capture timestamp is required")
    check_text("Session id", record.session_id)
    check_text("Note", record.note)


def check_text(label: str, value: Any) -> None:
    """Reject optional text that is not a string SQLite can store as UTF-8."""

    if value is None:
        return
    if not isinstance(value, str):
        raise ConstraintViolationError(f"{label} must be a string")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise ConstraintViolationError(f"{label} is not valid UTF-8 text: {exc.reason}") from exc


def record_to_row(record: MeasurementRecord) -> Dict[str, Any]:
    """Serialize a record into the column mapping used by the store."""

    row: Dict[str, Any] = {
        "value": float(record.value),
        "unit": Unit.parse(record.unit).value,
        "captured_at": to_epoch_micros(record.captured_at),
        "session_id": record.session_id,
        "note": record.note,
    }
    if record.id is not None:
        row["id"] = record.id
    return row


def row_to_record(row: Mapping[str, Any]) -> MeasurementRecord:
    """Deserialize a stored row back into a record."""

    try:
        return MeasurementRecord(
            id=int(row["id"]),
            value=float(row["value"]),
            unit=Unit(row["unit"]),
            captured_at=from_epoch_micros(row["captured_at"]),
            session_id=row["session_id"],
            note=row["note"],
        )
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise CorruptStateError(f"Stored measurement row cannot be read: {exc}") from exc


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------

MigrationStep = Callable[[Dict[str, Any]], Dict[str, Any]]


def _v1_to_v2(row: Dict[str, Any]) -> Dict[str, Any]:
    """Version 1 kept capture time in milliseconds and had no grouping or notes."""

    return {
        "id": row["id"],
        "value": row["value"],
        "unit": Unit.parse(row["unit"]).value,
        "captured_at": int(row["captured_at"]) * 1000,
        "session_id": None,
        "note": None,
    }


MIGRATIONS: Dict[int, MigrationStep] = {
    1: _v1_to_v2,
}


def resolve_migration_path(stored_version: int) -> List[MigrationStep]:
    """Return the ordered steps that lift ``stored_version`` rows to ``SCHEMA_VERSION``."""

    if stored_version < 1 or stored_version > SCHEMA_VERSION:
        raise CorruptStateError(
            f"Unsupported measurement schema version {stored_version}; "
            f"expected at most {SCHEMA_VERSION}"
        )

    steps: List[MigrationStep] = []
    for version in range(stored_version, SCHEMA_VERSION):
        step = MIGRATIONS.get(version)
        if step is None:
            raise CorruptStateError(f"No migration declared from schema version {version}")
        steps.append(step)
    return steps


def migrate_row(row: Mapping[str, Any], steps: List[MigrationStep]) -> Dict[str, Any]:
    migrated = dict(row)
    for step in steps:
        migrated = step(migrated)
    return migrated
