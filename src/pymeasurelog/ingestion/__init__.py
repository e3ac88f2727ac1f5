"""Instrument-facing ingestion boundary for pyMeasureLog."""

from .gateway import (
    REASON_INVALID_READING,
    REASON_PERMISSION_DENIED,
    REASON_STORAGE_FAILURE,
    IngestResult,
    PermissionState,
    ReadingIngestor,
)

__all__ = [
    "IngestResult",
    "PermissionState",
    "ReadingIngestor",
    "REASON_PERMISSION_DENIED",
    "REASON_INVALID_READING",
    "REASON_STORAGE_FAILURE",
]
