"""pytest configuration for pymeasurelog tests."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from pymeasurelog.db import MeasurementRecord, MeasurementRepository, PersistenceEngine, Unit

T0 = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    """Location of a fresh store file for one test."""
    return tmp_path / "store" / "measurements.db"


@pytest.fixture
def open_engine(db_path):
    """Factory for an opened engine that is closed on exit."""

    @asynccontextmanager
    async def _open(path=None, **kwargs):
        engine = PersistenceEngine(path or db_path, **kwargs)
        await engine.open()
        try:
            yield engine
        finally:
            await engine.close()

    return _open


@pytest.fixture
def open_repository(open_engine):
    """Factory for a repository over a fresh store."""

    @asynccontextmanager
    async def _open(**kwargs):
        async with open_engine() as engine:
            repository = MeasurementRepository(engine, **kwargs)
            try:
                yield repository
            finally:
                repository.close()

    return _open


@pytest.fixture
def make_record():
    """Build a valid record captured ``minutes`` after the reference time."""

    def _make(value=1.0, unit=Unit.METERS, minutes=0, session_id=None, note=None):
        return MeasurementRecord(
            value=value,
            unit=unit,
            captured_at=T0 + timedelta(minutes=minutes),
            session_id=session_id,
            note=note,
        )

    return _make


@pytest.fixture
def wait_for_state():
    """Wait until a view model's state satisfies ``predicate``."""

    async def _wait(view_model, predicate, timeout=2.0):
        reached = asyncio.Event()

        def _check(state):
            if predicate(state):
                reached.set()

        remove = view_model.state.observe(_check)
        try:
            await asyncio.wait_for(reached.wait(), timeout)
        finally:
            remove()
        return view_model.state.value

    return _wait
