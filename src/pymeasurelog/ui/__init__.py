"""Console user interface for pyMeasureLog."""

from .console import MeasurementConsole
from .constants import COMMAND_TIMEOUT_S, HELP_TEXT

__all__ = ["MeasurementConsole", "COMMAND_TIMEOUT_S", "HELP_TEXT"]
