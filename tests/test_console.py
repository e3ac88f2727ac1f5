"""Tests for the console front-end driven from a worker thread."""

from __future__ import annotations

import asyncio
import csv

import pytest

from pymeasurelog.db import MeasurementRepository, PersistenceEngine
from pymeasurelog.ingestion import ReadingIngestor
from pymeasurelog.main import _AsyncioWorker, _run_coroutine
from pymeasurelog.presentation import MeasurementListViewModel
from pymeasurelog.ui import MeasurementConsole


@pytest.fixture
def loop_thread():
    loop = asyncio.new_event_loop()
    worker = _AsyncioWorker(loop)
    worker.start()
    yield loop
    worker.stop()
    loop.close()


def test_scripted_console_session(loop_thread, db_path, tmp_path):
    loop = loop_thread
    engine = PersistenceEngine(db_path)
    _run_coroutine(loop, engine.open(), timeout=10)
    repository = MeasurementRepository(engine)
    view_model = MeasurementListViewModel(repository)
    ingestor = ReadingIngestor(repository)
    export_path = tmp_path / "out.csv"

    script = iter(
        [
            "a 1.5 m first shot",
            "i 2 ft",
            "s station-1",
            "a 0.25 ft",
            "n 2 checked twice",
            "d 1",
            "bogus",
            "a not-a-number",
            f"e {export_path}",
            "q",
        ]
    )
    console = MeasurementConsole(
        view_model, ingestor, loop, export_dir=tmp_path, input_func=lambda prompt: next(script)
    )

    try:
        _run_coroutine(loop, view_model.start(), timeout=10)
        assert console.run() == 0
        records = _run_coroutine(loop, repository.list_all(), timeout=10)
    finally:
        _run_coroutine(loop, view_model.stop(), timeout=10)
        _run_coroutine(loop, engine.close(), timeout=10)

    assert [(record.id, record.value, record.session_id, record.note) for record in records] == [
        (2, 0.25, "station-1", "checked twice"),
    ]
    assert ingestor.session_id == "station-1"
    with export_path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert len(rows) == 2
    assert rows[1][0] == "2"


def test_console_stops_on_end_of_input(loop_thread, db_path, tmp_path):
    loop = loop_thread
    engine = PersistenceEngine(db_path)
    repository = MeasurementRepository(engine)
    view_model = MeasurementListViewModel(repository)

    def closed_input(prompt):
        raise EOFError

    console = MeasurementConsole(
        view_model, ReadingIngestor(repository), loop, export_dir=tmp_path, input_func=closed_input
    )
    try:
        assert console.run() == 0
    finally:
        _run_coroutine(loop, engine.close(), timeout=10)
