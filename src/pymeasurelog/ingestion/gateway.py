"""Boundary through which the instrument side hands over captured readings."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ..db import ConstraintViolationError, MeasurementRepository, StorageIOError

REASON_PERMISSION_DENIED = "permission-denied"
REASON_INVALID_READING = "invalid-reading"
REASON_STORAGE_FAILURE = "storage-failure"


class PermissionState(str, Enum):
    """Outcome of the runtime permission negotiation for the instrument link."""

    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class IngestResult:
    """Outcome of a single submitted reading."""

    accepted: bool
    record_id: int | None = None
    reason: str | None = None
    detail: str | None = None


class ReadingIngestor:
    """Accept readings from the instrument collaborator and store them.

    Submissions are gated by the permission state. A denial is not fatal:
    readings are rejected until a later grant arrives. Validation and storage
    failures are reported in the returned :class:`IngestResult`; only
    :class:`~pymeasurelog.db.CorruptStateError` propagates.
    """

    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        repository: MeasurementRepository,
        *,
        require_permission: bool = True,
    ) -> None:
        self._repository = repository
        self._permission = PermissionState.UNKNOWN if require_permission else PermissionState.GRANTED
        self._session_id: str | None = None

    @property
    def permission(self) -> PermissionState:
        return self._permission

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def on_permission_result(self, granted: bool) -> None:
        """Callback for the permission collaborator."""

        self._permission = PermissionState.GRANTED if granted else PermissionState.DENIED
        if granted:
            self._logger.info("Instrument permission granted; accepting readings")
        else:
            self._logger.warning("Instrument permission denied; readings will be rejected")

    def start_session(self, session_id: str | None = None) -> str:
        """Group subsequent readings under ``session_id`` (generated when omitted)."""

        self._session_id = session_id or uuid.uuid4().hex
        self._logger.info("Started capture session", extra={"session_id": self._session_id})
        return self._session_id

    def end_session(self) -> None:
        if self._session_id is not None:
            self._logger.info("Ended capture session", extra={"session_id": self._session_id})
        self._session_id = None

    async def submit(
        self,
        value: float,
        unit: Any,
        captured_at: datetime,
        *,
        note: str | None = None,
    ) -> IngestResult:
        """Store one reading from the instrument."""

        if self._permission is not PermissionState.GRANTED:
            self._logger.info("Rejected reading: instrument permission is %s", self._permission.value)
            return IngestResult(accepted=False, reason=REASON_PERMISSION_DENIED)

        payload = {
            "value": value,
            "unit": unit,
            "captured_at": captured_at,
            "session_id": self._session_id,
            "note": note,
        }
        try:
            record_id = await self._repository.record(payload)
        except ConstraintViolationError as exc:
            self._logger.warning("Rejected invalid reading: %s", exc)
            return IngestResult(accepted=False, reason=REASON_INVALID_READING, detail=str(exc))
        except StorageIOError as exc:
            self._logger.error("Failed to store reading: %s", exc)
            return IngestResult(accepted=False, reason=REASON_STORAGE_FAILURE, detail=str(exc))

        return IngestResult(accepted=True, record_id=record_id)
