"""Presentation state for pyMeasureLog user interfaces."""

from .state import ListState, MutableObservableValue, ObservableValue
from .viewmodel import MeasurementListViewModel

__all__ = [
    "ListState",
    "MeasurementListViewModel",
    "MutableObservableValue",
    "ObservableValue",
]
