"""State holder bridging repository snapshots to the UI."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional

from ..db import (
    MeasurementRepository,
    SnapshotEvent,
    SnapshotSubscription,
    StorageError,
    Unit,
)
from .state import ListState, MutableObservableValue, ObservableValue


class MeasurementListViewModel:
    """Keep the latest measurement snapshot for one active UI context.

    ``start()`` subscribes to the repository and ``stop()`` releases the
    subscription. While running, :attr:`state` always holds the last
    successful records; failures only fill the error slot.
    """

    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        repository: MeasurementRepository,
        *,
        session_id: str | None = None,
        default_unit: Unit = Unit.METERS,
    ) -> None:
        self._repository = repository
        self._default_unit = default_unit
        self._state: MutableObservableValue[ListState] = MutableObservableValue(
            ListState(session_id=session_id)
        )
        self._subscription: SnapshotSubscription | None = None
        self._consumer: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "MeasurementListViewModel":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def state(self) -> ObservableValue[ListState]:
        return self._state

    @property
    def active(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    async def start(self) -> None:
        """Subscribe to the repository and apply the current snapshot."""

        if self.active:
            return
        # Release a subscription that ended on the repository side.
        await self.stop()

        session_id = self._state.value.session_id
        if session_id is None:
            subscription = await self._repository.observe_all()
        else:
            subscription = await self._repository.observe_session(session_id)

        self._apply(await subscription.next_event())
        self._subscription = subscription
        self._consumer = asyncio.create_task(
            self._consume(subscription), name="measurement-list-observer"
        )

    async def stop(self) -> None:
        """Release the subscription; safe to call more than once."""

        consumer, self._consumer = self._consumer, None
        subscription, self._subscription = self._subscription, None

        if subscription is not None:
            subscription.close()
        if consumer is not None:
            consumer.cancel()
            with suppress(asyncio.CancelledError):
                await consumer

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------
    async def add_measurement(
        self,
        value: float,
        unit: Any = None,
        *,
        captured_at: datetime | None = None,
        note: str | None = None,
    ) -> Optional[int]:
        """Record a manually entered reading in the active session."""

        reading = {
            "value": value,
            "unit": unit if unit is not None else self._default_unit,
            "captured_at": captured_at or datetime.now(timezone.utc),
            "session_id": self._state.value.session_id,
            "note": note,
        }
        try:
            return await self._repository.record(reading)
        except StorageError as exc:
            self._report(exc)
            return None

    async def delete_measurement(self, record_id: int) -> bool:
        try:
            await self._repository.remove(record_id)
        except StorageError as exc:
            self._report(exc)
            return False
        return True

    async def annotate_measurement(self, record_id: int, note: str | None) -> bool:
        try:
            await self._repository.annotate(record_id, note)
        except StorageError as exc:
            self._report(exc)
            return False
        return True

    async def filter_session(self, session_id: str | None) -> None:
        """Switch the observed query to one session, or back to all records."""

        if session_id == self._state.value.session_id:
            return

        was_active = self.active
        await self.stop()
        self._state.set_value(ListState(session_id=session_id))
        if was_active:
            await self.start()

    def clear_error(self) -> None:
        current = self._state.value
        if current.error is not None:
            self._state.set_value(replace(current, error=None))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _consume(self, subscription: SnapshotSubscription) -> None:
        async for event in subscription:
            self._apply(event)

    def _apply(self, event: SnapshotEvent) -> None:
        current = self._state.value
        if event.ok:
            self._state.set_value(replace(current, records=event.records, error=None, loaded=True))
        else:
            self._logger.warning("Keeping last snapshot after failed refresh: %s", event.error)
            self._state.set_value(replace(current, error=event.error))

    def _report(self, exc: StorageError) -> None:
        self._logger.warning("Measurement intent failed: %s", exc)
        self._state.set_value(replace(self._state.value, error=exc))
