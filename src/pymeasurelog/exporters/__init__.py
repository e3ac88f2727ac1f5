"""Export helpers for pyMeasureLog."""

from .csv_exporter import CSV_HEADER, export_csv

__all__ = ["CSV_HEADER", "export_csv"]
