"""Application entry point for pyMeasureLog."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import suppress
from pathlib import Path
from threading import Thread
from typing import Optional

from .common import configure_logging
from .configs import AppConfig, ConfigError, ConfigService
from .db import CorruptStateError, MeasurementRepository, PersistenceEngine, StorageError
from .ingestion import ReadingIngestor
from .presentation import MeasurementListViewModel
from .ui import MeasurementConsole

EXIT_CONFIG_ERROR = 1
EXIT_STORE_UNUSABLE = 2


def main() -> int:
    """Console entry point: load configuration, open the store, run the UI."""

    configure_logging()
    logger = logging.getLogger(__name__)

    project_root = Path(__file__).resolve().parents[2]
    data_root = project_root / "data"
    service = ConfigService(data_root / "configs", data_root / "databases")

    try:
        config = service.load_or_create()
    except ConfigError as exc:
        logger.error("Unable to load configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    configure_logging(config.log_level)
    logger.info("Database path: %s", config.database_path)
    logger.info("Instrument model: %s", config.instrument_model)
    if config.bluetooth_mac:
        logger.info("Instrument address: %s", config.bluetooth_mac)

    return run_session(config, export_dir=data_root / "exports")


# ---------------------------------------------------------------------------
# Session orchestration
# ---------------------------------------------------------------------------


def run_session(config: AppConfig, *, export_dir: Path) -> int:
    """Open the store on a background loop and hand control to the console."""

    logger = logging.getLogger(__name__)
    loop = asyncio.new_event_loop()
    worker = _AsyncioWorker(loop)
    worker.start()

    engine = PersistenceEngine(
        config.database_path,
        recovery_policy=config.recovery_policy,
        busy_timeout=config.busy_timeout,
    )

    try:
        _run_coroutine(loop, engine.open(), timeout=30)
    except CorruptStateError as exc:
        logger.critical("Measurement store cannot be used: %s", exc)
        logger.critical("Set recovery_policy to 'reset' to move the damaged store aside.")
        _shutdown(loop, worker, engine, None)
        return EXIT_STORE_UNUSABLE
    except StorageError as exc:
        logger.error("Unable to open measurement store: %s", exc)
        _shutdown(loop, worker, engine, None)
        return EXIT_STORE_UNUSABLE

    repository = MeasurementRepository(engine, subscriber_buffer=config.subscriber_buffer)
    view_model = MeasurementListViewModel(repository, default_unit=config.default_unit)
    ingestor = ReadingIngestor(repository)
    ingestor.on_permission_result(
        _ask_yes_no("Allow the instrument connection? [Y/n]: ", default=True)
    )

    try:
        _run_coroutine(loop, view_model.start(), timeout=10)
        console = MeasurementConsole(view_model, ingestor, loop, export_dir=export_dir)
        exit_code = console.run()
        if exit_code:
            logger.info("Application exited with status %s", exit_code)
        return exit_code
    finally:
        _shutdown(loop, worker, engine, view_model)


def _shutdown(
    loop: asyncio.AbstractEventLoop,
    worker: "_AsyncioWorker",
    engine: PersistenceEngine,
    view_model: Optional[MeasurementListViewModel],
) -> None:
    """Gracefully stop background services and the asyncio loop."""

    if view_model is not None:
        with suppress(Exception):
            _run_coroutine(loop, view_model.stop(), timeout=5)

    with suppress(Exception):
        _run_coroutine(loop, engine.close(), timeout=5)

    worker.stop()


def _run_coroutine(
    loop: asyncio.AbstractEventLoop,
    coro: asyncio.Awaitable[object],
    *,
    timeout: float,
):
    future = asyncio.run_coroutine_threadsafe(coro, loop)  # type: ignore[arg-type]
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        raise


def _ask_yes_no(prompt: str, *, default: bool) -> bool:
    while True:
        try:
            choice = input(prompt).strip().lower()
        except EOFError:
            return default
        if not choice:
            return default
        if choice in {"y", "yes"}:
            return True
        if choice in {"n", "no"}:
            return False
        logging.getLogger(__name__).warning("Please answer 'y' or 'n'.")


class _AsyncioWorker(Thread):
    """Run an asyncio event loop in a dedicated daemon thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(daemon=True, name="pymeasurelog-loop")
        self._loop = loop

    def run(self) -> None:  # pragma: no cover - thread startup
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def stop(self) -> None:
        if self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)
        self.join(timeout=5)


if __name__ == "__main__":
    raise SystemExit(main())
