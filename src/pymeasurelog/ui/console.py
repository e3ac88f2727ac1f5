"""Interactive console front-end over the measurement list state."""

from __future__ import annotations

import asyncio
import logging
import shlex
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from ..db import MeasurementRecord
from ..exporters import export_csv
from ..ingestion import ReadingIngestor
from ..presentation import ListState, MeasurementListViewModel
from .constants import COMMAND_TIMEOUT_S, HELP_TEXT

T = TypeVar("T")


class MeasurementConsole:
    """Line-oriented UI driving a :class:`MeasurementListViewModel`.

    The console runs on the calling thread while the view model lives on the
    asyncio loop thread; every call crosses that boundary through
    :func:`asyncio.run_coroutine_threadsafe`.
    """

    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        view_model: MeasurementListViewModel,
        ingestor: ReadingIngestor,
        loop: asyncio.AbstractEventLoop,
        *,
        export_dir: Path,
        input_func: Callable[[str], str] = input,
    ) -> None:
        self._view_model = view_model
        self._ingestor = ingestor
        self._loop = loop
        self._export_dir = export_dir
        self._input = input_func
        self._last_rendered: Optional[ListState] = None
        self._commands: Dict[str, Callable[[List[str]], None]] = {
            "l": self._cmd_list,
            "a": self._cmd_add,
            "i": self._cmd_instrument,
            "d": self._cmd_delete,
            "n": self._cmd_note,
            "s": self._cmd_session,
            "e": self._cmd_export,
            "c": self._cmd_clear_error,
            "h": self._cmd_help,
        }

    def run(self) -> int:
        """Read commands until the user quits; returns an exit status."""

        async def _register() -> Callable[[], None]:
            return self._view_model.state.observe(self._on_state)

        remove_observer = self._call(_register())
        self._logger.info(HELP_TEXT)
        try:
            while True:
                try:
                    line = self._input("measure> ").strip()
                except EOFError:
                    return 0
                if not line:
                    continue
                if line.lower() in {"q", "quit"}:
                    return 0
                self._dispatch(line)
        except KeyboardInterrupt:
            self._logger.info("Operation cancelled by user.")
            return 0
        finally:
            self._loop.call_soon_threadsafe(remove_observer)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def _dispatch(self, line: str) -> None:
        try:
            parts = shlex.split(line)
        except ValueError as exc:
            self._logger.warning("Could not parse command: %s", exc)
            return

        handler = self._commands.get(parts[0].lower())
        if handler is None:
            self._logger.warning("Unrecognized option. Type 'h' for help.")
            return
        try:
            handler(parts[1:])
        except (ValueError, IndexError) as exc:
            self._logger.warning("Invalid arguments: %s", exc)
        except FutureTimeoutError:
            self._logger.error("Command timed out")

    def _cmd_list(self, args: List[str]) -> None:
        state = self._view_model.state.value
        if not state.records:
            self._logger.info("  [no measurements]")
        for record in state.records:
            self._logger.info("  %s", _format_record(record))
        if state.error is not None:
            self._logger.warning("Last error: %s", state.error)

    def _cmd_add(self, args: List[str]) -> None:
        value = float(args[0])
        unit = args[1] if len(args) > 1 else None
        note = " ".join(args[2:]) or None
        record_id = self._call(self._view_model.add_measurement(value, unit, note=note))
        if record_id is not None:
            self._logger.info("Added measurement %d", record_id)

    def _cmd_instrument(self, args: List[str]) -> None:
        value = float(args[0])
        unit = args[1]
        result = self._call(
            self._ingestor.submit(value, unit, datetime.now(timezone.utc))
        )
        if result.accepted:
            self._logger.info("Instrument reading stored as %d", result.record_id)
        else:
            self._logger.warning("Instrument reading rejected (%s)", result.reason)

    def _cmd_delete(self, args: List[str]) -> None:
        if self._call(self._view_model.delete_measurement(int(args[0]))):
            self._logger.info("Deleted measurement %s", args[0])

    def _cmd_note(self, args: List[str]) -> None:
        record_id = int(args[0])
        note = " ".join(args[1:]) or None
        if self._call(self._view_model.annotate_measurement(record_id, note)):
            self._logger.info("Updated note of measurement %d", record_id)

    def _cmd_session(self, args: List[str]) -> None:
        session_id = args[0] if args and args[0] != "*" else None
        self._call(self._view_model.filter_session(session_id))
        self._ingestor.end_session()
        if session_id is not None:
            self._ingestor.start_session(session_id)
        self._logger.info("Showing %s", f"session {session_id}" if session_id else "all sessions")

    def _cmd_export(self, args: List[str]) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        path = Path(args[0]) if args else self._export_dir / f"measurements_{stamp}.csv"
        count = export_csv(self._view_model.state.value.records, path)
        self._logger.info("Wrote %d rows to %s", count, path)

    def _cmd_clear_error(self, args: List[str]) -> None:
        async def _clear() -> None:
            self._view_model.clear_error()

        self._call(_clear())

    def _cmd_help(self, args: List[str]) -> None:
        self._logger.info(HELP_TEXT)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _on_state(self, state: ListState) -> None:
        previous, self._last_rendered = self._last_rendered, state
        if previous is not None and previous.records == state.records and previous.error is state.error:
            return
        self._logger.info(
            "%d measurement(s)%s",
            len(state.records),
            f" in session {state.session_id}" if state.session_id else "",
        )
        if state.error is not None:
            self._logger.warning("Showing last good data; error: %s", state.error)

    def _call(self, coro: Awaitable[T]) -> T:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)  # type: ignore[arg-type]
        try:
            return future.result(timeout=COMMAND_TIMEOUT_S)
        except FutureTimeoutError:
            future.cancel()
            raise


def _format_record(record: MeasurementRecord) -> str:
    timestamp = record.captured_at.strftime("%Y-%m-%d %H:%M:%S")
    session = f" session={record.session_id}" if record.session_id else ""
    note = f" note={record.note!r}" if record.note else ""
    return f"#{record.id} {record.value:.4f} {record.unit.value} ({timestamp}){session}{note}"
