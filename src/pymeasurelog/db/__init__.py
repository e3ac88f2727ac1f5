"""Database persistence layer for pyMeasureLog."""

from .dao import MeasurementDao, MeasurementQuery
from .engine import PersistenceEngine, ReadWriteLock, RecoveryPolicy
from .errors import (
    ConstraintViolationError,
    CorruptStateError,
    RecordNotFoundError,
    StorageError,
    StorageIOError,
)
from .models import RawReading
from .repository import MeasurementRepository, SnapshotEvent, SnapshotSubscription
from .schema import SCHEMA_VERSION, MeasurementRecord, Unit

__all__ = [
    "MeasurementDao",
    "MeasurementQuery",
    "MeasurementRecord",
    "MeasurementRepository",
    "PersistenceEngine",
    "RawReading",
    "ReadWriteLock",
    "RecoveryPolicy",
    "SnapshotEvent",
    "SnapshotSubscription",
    "Unit",
    "SCHEMA_VERSION",
    "StorageError",
    "ConstraintViolationError",
    "RecordNotFoundError",
    "StorageIOError",
    "CorruptStateError",
]
