"""Async repository coordinating measurement writes and snapshot observers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

from pydantic import ValidationError  # type: ignore[import]

from .dao import MeasurementDao
from .engine import PersistenceEngine, log_detached_failure
from .errors import ConstraintViolationError, StorageError
from .models import RawReading
from .schema import MeasurementRecord

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class SnapshotEvent:
    """One emission of an observed query: either records or the failure."""

    records: Tuple[MeasurementRecord, ...] = ()
    error: StorageError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SnapshotSubscription:
    """Handle for one observer of a snapshot stream.

    Iterate it with ``async for`` to receive :class:`SnapshotEvent` objects.
    The buffer keeps the newest events; when it overflows the oldest event is
    dropped, so a slow consumer still sees the latest state. Closing the
    subscription ends iteration and discards undelivered events.
    """

    def __init__(
        self,
        session_id: str | None,
        on_close: Callable[["SnapshotSubscription"], None],
        *,
        maxsize: int = 16,
    ) -> None:
        self._session_id = session_id
        self._on_close = on_close
        self._queue: asyncio.Queue[SnapshotEvent | None] = asyncio.Queue(maxsize=max(maxsize, 1))
        self._closed = False

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_close(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def next_event(self) -> SnapshotEvent:
        """Wait for the next event; raises ``StopAsyncIteration`` once closed."""

        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def __aiter__(self) -> "SnapshotSubscription":
        return self

    async def __anext__(self) -> SnapshotEvent:
        return await self.next_event()

    async def __aenter__(self) -> "SnapshotSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _push(self, event: SnapshotEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            # Drop oldest item to make room, then retry.
            try:
                self._queue.get_nowait()
                self._queue.put_nowait(event)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass


class MeasurementRepository:
    """Single entry point for creating, changing and observing measurements."""

    _logger = logging.getLogger(__name__)

    def __init__(self, engine: PersistenceEngine, *, subscriber_buffer: int = 16) -> None:
        self._engine = engine
        self._dao = MeasurementDao(engine)
        self._write_lock = asyncio.Lock()
        self._subscriptions: List[SnapshotSubscription] = []
        self._subscriber_buffer = subscriber_buffer

    @property
    def dao(self) -> MeasurementDao:
        return self._dao

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def record(self, reading: RawReading | MeasurementRecord | Mapping[str, Any]) -> int:
        """Validate and store a newly captured reading, returning its id."""

        record = _coerce_reading(reading)
        record_id = await self._mutate(lambda: self._dao.insert(record), description="record measurement")
        self._logger.debug(
            "Recorded %s %s", record.value, record.unit, extra={"record_id": record_id}
        )
        return record_id

    async def annotate(self, record_id: int, note: str | None) -> None:
        await self._mutate(
            lambda: self._dao.annotate(record_id, note), description=f"annotate measurement {record_id}"
        )

    async def remove(self, record_id: int) -> None:
        await self._mutate(
            lambda: self._dao.delete_by_id(record_id), description=f"remove measurement {record_id}"
        )

    async def purge_session(self, session_id: str) -> int:
        """Delete a whole session; observers are notified only if rows went away."""

        deleted = await self._mutate(
            lambda: self._dao.delete_by_session(session_id),
            description=f"purge session {session_id}",
            notify=lambda count: count > 0,
        )
        self._logger.info(
            "Purged %d measurements", deleted, extra={"session_id": session_id}
        )
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_all(self) -> List[MeasurementRecord]:
        return await self._dao.query_all().fetch()

    async def list_session(self, session_id: str) -> List[MeasurementRecord]:
        return await self._dao.query_by_session(session_id).fetch()

    async def get(self, record_id: int) -> MeasurementRecord:
        return await self._dao.get(record_id)

    async def sessions(self) -> List[str]:
        return await self._dao.list_sessions()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    async def observe_all(self) -> SnapshotSubscription:
        """Subscribe to full snapshots; the current one is delivered at once."""

        return await self._subscribe(None)

    async def observe_session(self, session_id: str) -> SnapshotSubscription:
        return await self._subscribe(session_id)

    def close(self) -> None:
        """Close every active subscription."""

        for subscription in list(self._subscriptions):
            subscription.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _subscribe(self, session_id: Optional[str]) -> SnapshotSubscription:
        subscription = SnapshotSubscription(
            session_id, self._unsubscribe, maxsize=self._subscriber_buffer
        )
        async with self._write_lock:
            subscription._push(await self._snapshot(session_id))
            self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: SnapshotSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def _mutate(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str,
        notify: Callable[[T], bool] = lambda result: True,
    ) -> T:
        mutation = asyncio.ensure_future(self._apply(operation, notify))
        try:
            return await asyncio.shield(mutation)
        except asyncio.CancelledError:
            mutation.add_done_callback(partial(log_detached_failure, self._logger, description))
            raise

    async def _apply(
        self,
        operation: Callable[[], Awaitable[T]],
        notify: Callable[[T], bool],
    ) -> T:
        async with self._write_lock:
            result = await operation()
            if notify(result):
                await self._broadcast()
            return result

    async def _broadcast(self) -> None:
        subscriptions = list(self._subscriptions)
        if not subscriptions:
            return

        snapshots: Dict[Optional[str], SnapshotEvent] = {}
        for subscription in subscriptions:
            key = subscription.session_id
            if key not in snapshots:
                snapshots[key] = await self._snapshot(key)
            subscription._push(snapshots[key])

    async def _snapshot(self, session_id: Optional[str]) -> SnapshotEvent:
        query = self._dao.query_all() if session_id is None else self._dao.query_by_session(session_id)
        try:
            records = await query.fetch()
        except StorageError as exc:
            self._logger.warning("Unable to refresh snapshot: %s", exc, extra={"session_id": session_id})
            return SnapshotEvent(error=exc)
        return SnapshotEvent(records=tuple(records))


def _coerce_reading(reading: RawReading | MeasurementRecord | Mapping[str, Any]) -> MeasurementRecord:
    if isinstance(reading, MeasurementRecord):
        return reading
    if isinstance(reading, RawReading):
        return reading.to_record()
    try:
        return RawReading.model_validate(dict(reading)).to_record()
    except ValidationError as exc:
        raise ConstraintViolationError(f"Invalid reading: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise ConstraintViolationError(f"Invalid reading {reading!r}") from exc
