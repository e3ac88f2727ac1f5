"""Reactive state containers for the presentation layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, List, Tuple, TypeVar

from ..db import MeasurementRecord, StorageError

T = TypeVar("T")

_logger = logging.getLogger(__name__)


class ObservableValue(Generic[T]):
    """Read-only view of a value that notifies observers when it changes."""

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._observers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def observe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback``, call it with the current value, return a remover."""

        self._observers.append(callback)
        callback(self._value)

        def _remove() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return _remove

    @property
    def observer_count(self) -> int:
        return len(self._observers)


class MutableObservableValue(ObservableValue[T]):
    """Observable value whose owner may publish new values."""

    def set_value(self, value: T) -> None:
        self._value = value
        for callback in list(self._observers):
            try:
                callback(value)
            except Exception:
                _logger.exception("State observer %r failed", callback)


@dataclass(frozen=True, slots=True)
class ListState:
    """What the measurement list screen renders."""

    records: Tuple[MeasurementRecord, ...] = ()
    error: StorageError | None = None
    session_id: str | None = None
    loaded: bool = False

    @property
    def has_error(self) -> bool:
        return self.error is not None
