"""Tests for the measurement list view model and observable state."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from pymeasurelog.db import ConstraintViolationError, RecordNotFoundError, StorageIOError, Unit
from pymeasurelog.db.dao import MeasurementQuery
from pymeasurelog.presentation import ListState, MeasurementListViewModel, MutableObservableValue

from conftest import T0


class TestObservableValue:
    """Observer registration and delivery."""

    def test_observe_delivers_current_value_then_updates(self):
        holder = MutableObservableValue(1)
        seen = []
        remove = holder.observe(seen.append)
        holder.set_value(2)
        remove()
        holder.set_value(3)
        assert seen == [1, 2]
        assert holder.value == 3
        assert holder.observer_count == 0

    def test_failing_observer_does_not_block_others(self, caplog):
        caplog.set_level(logging.ERROR)
        holder = MutableObservableValue("a")
        seen = []

        def broken(value):
            if value == "b":
                raise RuntimeError("render failed")

        holder.observe(broken)
        holder.observe(seen.append)
        holder.set_value("b")
        assert seen == ["a", "b"]
        assert any("failed" in record.getMessage() for record in caplog.records)


class TestMeasurementListViewModel:
    """State transitions driven by repository snapshots and intents."""

    def test_start_applies_current_snapshot(self, open_repository, make_record):
        async def scenario():
            async with open_repository() as repository:
                await repository.record(make_record(value=1.5))
                view_model = MeasurementListViewModel(repository)
                assert view_model.state.value == ListState()
                await view_model.start()
                state = view_model.state.value
                await view_model.stop()
                return state

        state = asyncio.run(scenario())
        assert state.loaded
        assert [record.value for record in state.records] == [1.5]
        assert not state.has_error

    def test_intents_flow_back_as_snapshots(self, open_repository, wait_for_state):
        async def scenario():
            async with open_repository() as repository:
                async with MeasurementListViewModel(repository, default_unit=Unit.FEET) as view_model:
                    record_id = await view_model.add_measurement(2.0, captured_at=T0)
                    added = await wait_for_state(view_model, lambda s: len(s.records) == 1)
                    assert await view_model.annotate_measurement(record_id, "level")
                    annotated = await wait_for_state(
                        view_model, lambda s: s.records and s.records[0].note == "level"
                    )
                    assert await view_model.delete_measurement(record_id)
                    emptied = await wait_for_state(view_model, lambda s: not s.records)
                return added, annotated, emptied

        added, annotated, emptied = asyncio.run(scenario())
        assert added.records[0].unit is Unit.FEET
        assert added.records[0].captured_at == T0
        assert annotated.records[0].note == "level"
        assert emptied.records == () and emptied.loaded

    def test_failed_intent_sets_error_and_keeps_records(self, open_repository, make_record):
        async def scenario():
            async with open_repository() as repository:
                await repository.record(make_record(value=4.0))
                async with MeasurementListViewModel(repository) as view_model:
                    deleted = await view_model.delete_measurement(999)
                    invalid = await view_model.add_measurement(-3.0)
                    failed = view_model.state.value
                    view_model.clear_error()
                    cleared = view_model.state.value
                return deleted, invalid, failed, cleared

        deleted, invalid, failed, cleared = asyncio.run(scenario())
        assert deleted is False and invalid is None
        assert failed.has_error
        assert [record.value for record in failed.records] == [4.0]
        assert not cleared.has_error
        assert cleared.records == failed.records

    def test_not_found_error_is_exposed(self, open_repository):
        async def scenario():
            async with open_repository() as repository:
                async with MeasurementListViewModel(repository) as view_model:
                    await view_model.annotate_measurement(12, "missing")
                    return view_model.state.value.error

        assert isinstance(asyncio.run(scenario()), RecordNotFoundError)

    def test_unstorable_note_fills_the_error_slot(self, open_repository, make_record):
        async def scenario():
            async with open_repository() as repository:
                record_id = await repository.record(make_record(value=2.0))
                async with MeasurementListViewModel(repository) as view_model:
                    updated = await view_model.annotate_measurement(record_id, "bad \ud800")
                    return updated, view_model.state.value

        updated, state = asyncio.run(scenario())
        assert updated is False
        assert isinstance(state.error, ConstraintViolationError)
        assert [record.value for record in state.records] == [2.0]

    def test_repository_close_ends_activity_and_restart_resubscribes(self, open_repository):
        async def scenario():
            async with open_repository() as repository:
                view_model = MeasurementListViewModel(repository)
                await view_model.start()
                repository.close()
                for _ in range(10):
                    if not view_model.active:
                        break
                    await asyncio.sleep(0.01)
                ended = view_model.active
                await view_model.start()
                restarted = view_model.active, repository.subscriber_count
                await view_model.stop()
                return ended, restarted

        ended, restarted = asyncio.run(scenario())
        assert ended is False
        assert restarted == (True, 1)

    def test_refresh_failure_keeps_last_records(self, open_repository, make_record, wait_for_state, monkeypatch):
        async def scenario():
            async with open_repository() as repository:
                await repository.record(make_record(value=9.0))
                async with MeasurementListViewModel(repository) as view_model:

                    async def failing_fetch(self):
                        raise StorageIOError("read failed")

                    monkeypatch.setattr(MeasurementQuery, "fetch", failing_fetch)
                    await view_model.add_measurement(1.0, captured_at=T0 + timedelta(minutes=1))
                    return await wait_for_state(view_model, lambda s: s.has_error)

        state = asyncio.run(scenario())
        assert isinstance(state.error, StorageIOError)
        assert [record.value for record in state.records] == [9.0]

    def test_filter_session_switches_query(self, open_repository, make_record, wait_for_state):
        async def scenario():
            async with open_repository() as repository:
                await repository.record(make_record(value=1.0, session_id="a"))
                await repository.record(make_record(value=2.0, minutes=1, session_id="b"))
                async with MeasurementListViewModel(repository) as view_model:
                    everything = view_model.state.value
                    await view_model.filter_session("a")
                    only_a = view_model.state.value
                    await view_model.add_measurement(3.0, captured_at=T0 + timedelta(minutes=2))
                    grown = await wait_for_state(view_model, lambda s: len(s.records) == 2)
                    await view_model.filter_session(None)
                    back = view_model.state.value
                return everything, only_a, grown, back

        everything, only_a, grown, back = asyncio.run(scenario())
        assert len(everything.records) == 2
        assert only_a.session_id == "a"
        assert [record.value for record in only_a.records] == [1.0]
        assert [record.session_id for record in grown.records] == ["a", "a"]
        assert back.session_id is None and len(back.records) == 3

    def test_stop_releases_the_subscription(self, open_repository):
        async def scenario():
            async with open_repository() as repository:
                view_model = MeasurementListViewModel(repository)
                await view_model.start()
                await view_model.start()
                during = repository.subscriber_count
                await view_model.stop()
                await view_model.stop()
                return during, repository.subscriber_count, view_model.active

        assert asyncio.run(scenario()) == (1, 0, False)
