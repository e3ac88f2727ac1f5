"""CSV export of measurement snapshots."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable

from ..db import MeasurementRecord, Unit

CSV_HEADER = ("id", "captured_at", "value", "unit", "session_id", "note")

_logger = logging.getLogger(__name__)


def export_csv(records: Iterable[MeasurementRecord], path: Path) -> int:
    """Write ``records`` to ``path`` and return how many rows were written."""

    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(CSV_HEADER)
        for record in records:
            writer.writerow(
                (
                    record.id,
                    record.captured_at.isoformat(),
                    repr(float(record.value)),
                    Unit.parse(record.unit).value,
                    record.session_id or "",
                    record.note or "",
                )
            )
            count += 1
    _logger.info("Exported %d measurements to %s", count, path)
    return count
