"""Tests for the reading ingestion gateway."""

from __future__ import annotations

import asyncio

import pytest

from pymeasurelog.db import CorruptStateError, MeasurementRepository, StorageIOError
from pymeasurelog.ingestion import (
    REASON_INVALID_READING,
    REASON_PERMISSION_DENIED,
    REASON_STORAGE_FAILURE,
    PermissionState,
    ReadingIngestor,
)

from conftest import T0


class TestPermissionGate:
    """Readings are only stored once permission is granted."""

    def test_unknown_and_denied_permission_reject_readings(self, open_repository):
        async def scenario():
            async with open_repository() as repository:
                ingestor = ReadingIngestor(repository)
                unknown = await ingestor.submit(1.0, "m", T0)
                ingestor.on_permission_result(False)
                denied = await ingestor.submit(1.0, "m", T0)
                return ingestor.permission, unknown, denied, await repository.list_all()

        permission, unknown, denied, stored = asyncio.run(scenario())
        assert permission is PermissionState.DENIED
        assert unknown.reason == REASON_PERMISSION_DENIED
        assert denied.reason == REASON_PERMISSION_DENIED
        assert not unknown.accepted and not denied.accepted
        assert stored == []

    def test_later_grant_accepts_readings(self, open_repository):
        async def scenario():
            async with open_repository() as repository:
                ingestor = ReadingIngestor(repository)
                ingestor.on_permission_result(False)
                ingestor.on_permission_result(True)
                result = await ingestor.submit(12.5, "m", T0, note="benchmark")
                return result, await repository.get(result.record_id)

        result, stored = asyncio.run(scenario())
        assert result.accepted and result.reason is None
        assert (stored.value, stored.note) == (12.5, "benchmark")

    def test_permission_can_be_disabled(self, open_repository):
        async def scenario():
            async with open_repository() as repository:
                ingestor = ReadingIngestor(repository, require_permission=False)
                return ingestor.permission, await ingestor.submit(3.0, "ft", T0)

        permission, result = asyncio.run(scenario())
        assert permission is PermissionState.GRANTED
        assert result.accepted


class TestSubmission:
    """Validation and storage outcomes of submitted readings."""

    @pytest.mark.parametrize("value, unit", [(-2.0, "m"), (float("nan"), "m"), (2.0, "yards")])
    def test_invalid_readings_are_reported(self, open_repository, value, unit):
        async def scenario():
            async with open_repository() as repository:
                ingestor = ReadingIngestor(repository, require_permission=False)
                return await ingestor.submit(value, unit, T0)

        result = asyncio.run(scenario())
        assert not result.accepted
        assert result.reason == REASON_INVALID_READING
        assert result.detail

    def test_session_groups_readings(self, open_repository):
        async def scenario():
            async with open_repository() as repository:
                ingestor = ReadingIngestor(repository, require_permission=False)
                generated = ingestor.start_session()
                await ingestor.submit(1.0, "m", T0)
                ingestor.end_session()
                await ingestor.submit(2.0, "m", T0)
                ingestor.start_session("station-2")
                await ingestor.submit(3.0, "m", T0)
                return generated, ingestor.session_id, await repository.list_all()

        generated, current, records = asyncio.run(scenario())
        assert len(generated) == 32
        assert current == "station-2"
        by_value = {record.value: record.session_id for record in records}
        assert by_value == {1.0: generated, 2.0: None, 3.0: "station-2"}

    def test_storage_failure_is_reported(self, monkeypatch, open_repository):
        async def failing_record(self, reading):
            raise StorageIOError("disk I/O error")

        monkeypatch.setattr(MeasurementRepository, "record", failing_record)

        async def scenario():
            async with open_repository() as repository:
                ingestor = ReadingIngestor(repository, require_permission=False)
                return await ingestor.submit(1.0, "m", T0)

        result = asyncio.run(scenario())
        assert result.reason == REASON_STORAGE_FAILURE
        assert "disk" in result.detail

    def test_corrupt_state_propagates(self, monkeypatch, open_repository):
        async def corrupt_record(self, reading):
            raise CorruptStateError("store is damaged")

        monkeypatch.setattr(MeasurementRepository, "record", corrupt_record)

        async def scenario():
            async with open_repository() as repository:
                ingestor = ReadingIngestor(repository, require_permission=False)
                with pytest.raises(CorruptStateError):
                    await ingestor.submit(1.0, "m", T0)

        asyncio.run(scenario())
