"""Ownership of the embedded SQLite store and its access discipline."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, TypeVar

import aiosqlite  # type: ignore[import]

from .constants import (
    MEASUREMENT_RESTORE,
    MEASUREMENTS_DDL,
    MEASUREMENTS_INDEXES,
    MEASUREMENTS_TABLE,
    SCHEMA_META_DDL,
    SCHEMA_VERSION_SELECT,
    SCHEMA_VERSION_UPSERT,
    SEQUENCE_INSERT,
    SEQUENCE_SELECT,
    SEQUENCE_UPDATE,
    TABLE_EXISTS,
)
from .errors import (
    ConstraintViolationError,
    CorruptStateError,
    StorageError,
    StorageIOError,
)
from .schema import SCHEMA_VERSION, MigrationStep, migrate_row, resolve_migration_path

T = TypeVar("T")

Operation = Callable[[aiosqlite.Connection], Awaitable[T]]

_MAX_ATTEMPTS = 2


class RecoveryPolicy(str, Enum):
    """What to do when the store on disk cannot be opened or migrated."""

    ABORT = "abort"
    RESET = "reset"


class ReadWriteLock:
    """Writer-preferring asyncio lock: many readers or a single writer."""

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writing(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._writer and self._waiting_writers == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._condition:
            self._waiting_writers += 1
            try:
                await self._condition.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._condition:
                self._writer = False
                self._condition.notify_all()


class PersistenceEngine:
    """Own the single connection to the measurement store.

    The connection is opened lazily on first use, migrated to the current
    schema, and released exactly once by :meth:`close`. Every access goes
    through :meth:`run_read` or :meth:`run_write`, which enforce the
    single-writer / multiple-reader discipline and translate SQLite faults
    into :class:`~pymeasurelog.db.errors.StorageError` subclasses.
    """

    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        db_path: Path,
        *,
        recovery_policy: RecoveryPolicy = RecoveryPolicy.ABORT,
        busy_timeout: float = 5.0,
    ) -> None:
        self._db_path = Path(db_path)
        self._recovery_policy = RecoveryPolicy(recovery_policy)
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._open_lock = asyncio.Lock()
        self._rw_lock = ReadWriteLock()
        self._closed = False

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Open and migrate the store now instead of on first access.

        Raises :class:`CorruptStateError` when the store cannot be used and the
        recovery policy is ``ABORT``.
        """

        await self._ensure_connection()

    async def close(self) -> None:
        """Close the underlying connection once no write is in flight."""

        async with self._open_lock:
            if self._closed:
                return
            self._closed = True

        async with self._rw_lock.write():
            connection, self._connection = self._connection, None
            if connection is not None:
                await connection.close()
                self._logger.info("Closed measurement store %s", self._db_path)

    async def run_read(self, operation: Operation[T], *, description: str) -> T:
        """Run ``operation`` while holding a shared read lock."""

        async with self._rw_lock.read():
            connection = await self._ensure_connection()
            return await self._attempt(connection, operation, description, transactional=False)

    async def run_write(self, operation: Operation[T], *, description: str) -> T:
        """Run ``operation`` inside one exclusive transaction.

        Once started, the write completes even if the awaiting caller is
        cancelled; only delivery of the result is lost.
        """

        write = asyncio.ensure_future(self._write(operation, description))
        try:
            return await asyncio.shield(write)
        except asyncio.CancelledError:
            write.add_done_callback(partial(log_detached_failure, self._logger, description))
            raise

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _write(self, operation: Operation[T], description: str) -> T:
        async with self._rw_lock.write():
            connection = await self._ensure_connection()
            return await self._attempt(connection, operation, description, transactional=True)

    async def _attempt(
        self,
        connection: aiosqlite.Connection,
        operation: Operation[T],
        description: str,
        *,
        transactional: bool,
    ) -> T:
        for attempt in range(1, _MAX_ATTEMPTS + 1):
            try:
                if transactional:
                    await connection.execute("BEGIN IMMEDIATE")
                result = await operation(connection)
                if transactional:
                    await connection.execute("COMMIT")
                return result
            except StorageError:
                await self._rollback(connection)
                raise
            except aiosqlite.IntegrityError as exc:
                await self._rollback(connection)
                raise ConstraintViolationError(f"{description} rejected by the store: {exc}") from exc
            except aiosqlite.OperationalError as exc:
                await self._rollback(connection)
                if attempt < _MAX_ATTEMPTS:
                    self._logger.warning(
                        "Transient storage fault during %s, retrying: %s",
                        description,
                        exc,
                        extra={"operation": description, "attempt": attempt},
                    )
                    continue
                raise StorageIOError(f"{description} failed: {exc}") from exc
            except aiosqlite.DatabaseError as exc:
                await self._rollback(connection)
                raise CorruptStateError(f"{description} hit a damaged store: {exc}") from exc
            except BaseException:
                await self._rollback(connection)
                raise
        raise StorageIOError(f"{description} failed")

    @staticmethod
    async def _rollback(connection: aiosqlite.Connection) -> None:
        if connection.in_transaction:
            with suppress(aiosqlite.Error):
                await connection.execute("ROLLBACK")

    async def _ensure_connection(self) -> aiosqlite.Connection:
        if self._connection is not None:
            return self._connection

        async with self._open_lock:
            if self._closed:
                raise StorageIOError(f"Measurement store {self._db_path} is closed")
            if self._connection is None:
                self._connection = await self._open_store()
        return self._connection

    async def _open_store(self) -> aiosqlite.Connection:
        try:
            return await self._connect()
        except CorruptStateError as exc:
            if self._recovery_policy is not RecoveryPolicy.RESET:
                self._logger.critical("Measurement store %s is unusable: %s", self._db_path, exc)
                raise
            self._logger.warning(
                "Measurement store %s is unusable (%s); moving it aside and starting fresh",
                self._db_path,
                exc,
            )
            self._quarantine()
            return await self._connect()

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        existed = self._db_path.exists() and self._db_path.stat().st_size > 0

        try:
            connection = await aiosqlite.connect(
                self._db_path,
                timeout=self._busy_timeout,
                isolation_level=None,
            )
        except aiosqlite.Error as exc:
            raise StorageIOError(f"Unable to open {self._db_path}: {exc}") from exc
        connection.row_factory = aiosqlite.Row

        try:
            await self._prepare(connection, check_integrity=existed)
        except StorageError:
            await connection.close()
            raise
        except aiosqlite.OperationalError as exc:
            await connection.close()
            raise StorageIOError(f"Unable to prepare {self._db_path}: {exc}") from exc
        except aiosqlite.DatabaseError as exc:
            await connection.close()
            raise CorruptStateError(f"{self._db_path} is not a readable store: {exc}") from exc
        except BaseException:
            await connection.close()
            raise

        self._logger.info("Opened measurement store %s (schema v%d)", self._db_path, SCHEMA_VERSION)
        return connection

    async def _prepare(self, connection: aiosqlite.Connection, *, check_integrity: bool) -> None:
        if check_integrity:
            cursor = await connection.execute("PRAGMA quick_check;")
            row = await cursor.fetchone()
            await cursor.close()
            if row is None or row[0] != "ok":
                raise CorruptStateError(f"Integrity check failed for {self._db_path}")

        await connection.execute("PRAGMA journal_mode=WAL;")
        await connection.execute("PRAGMA foreign_keys=ON;")
        await connection.execute("PRAGMA synchronous=NORMAL;")

        await connection.execute("BEGIN IMMEDIATE")
        try:
            await connection.execute(SCHEMA_META_DDL)
            stored_version = await self._stored_version(connection)
            has_table = await self._table_exists(connection, MEASUREMENTS_TABLE)

            if stored_version is None and has_table:
                # Stores written before versioning carry the version 1 layout.
                stored_version = 1

            if stored_version is None:
                await self._create_measurements(connection)
                await connection.execute(SCHEMA_VERSION_UPSERT, (str(SCHEMA_VERSION),))
            elif stored_version == SCHEMA_VERSION:
                if not has_table:
                    raise CorruptStateError(
                        f"{self._db_path} records schema v{stored_version} but has no measurements"
                    )
            else:
                steps = resolve_migration_path(stored_version)
                await self._migrate(connection, stored_version, steps)

            await connection.execute("COMMIT")
        except BaseException:
            await self._rollback(connection)
            raise

    async def _create_measurements(self, connection: aiosqlite.Connection) -> None:
        await connection.execute(MEASUREMENTS_DDL)
        for statement in MEASUREMENTS_INDEXES:
            await connection.execute(statement)

    async def _migrate(
        self,
        connection: aiosqlite.Connection,
        stored_version: int,
        steps: list[MigrationStep],
    ) -> None:
        self._logger.info(
            "Migrating measurement store from schema v%d to v%d", stored_version, SCHEMA_VERSION
        )
        cursor = await connection.execute(f"SELECT * FROM {MEASUREMENTS_TABLE} ORDER BY id")
        rows = await cursor.fetchall()
        await cursor.close()

        try:
            migrated = [migrate_row({key: row[key] for key in row.keys()}, steps) for row in rows]
        except (ConstraintViolationError, KeyError, TypeError, ValueError) as exc:
            raise CorruptStateError(f"Cannot migrate rows of {self._db_path}: {exc}") from exc

        high_water = await self._sequence_value(connection)
        if migrated:
            high_water = max(high_water, max(int(row["id"]) for row in migrated))

        await connection.execute(f"DROP TABLE {MEASUREMENTS_TABLE}")
        await self._create_measurements(connection)
        await connection.executemany(MEASUREMENT_RESTORE, migrated)
        if high_water:
            cursor = await connection.execute(SEQUENCE_UPDATE, (high_water, MEASUREMENTS_TABLE))
            if cursor.rowcount == 0:
                await connection.execute(SEQUENCE_INSERT, (MEASUREMENTS_TABLE, high_water))
            await cursor.close()
        await connection.execute(SCHEMA_VERSION_UPSERT, (str(SCHEMA_VERSION),))
        self._logger.info("Migrated %d measurement rows", len(migrated))

    async def _stored_version(self, connection: aiosqlite.Connection) -> int | None:
        cursor = await connection.execute(SCHEMA_VERSION_SELECT)
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return None
        try:
            return int(row[0])
        except (TypeError, ValueError) as exc:
            raise CorruptStateError(f"Invalid schema version {row[0]!r}") from exc

    async def _sequence_value(self, connection: aiosqlite.Connection) -> int:
        if not await self._table_exists(connection, "sqlite_sequence"):
            return 0
        cursor = await connection.execute(SEQUENCE_SELECT, (MEASUREMENTS_TABLE,))
        row = await cursor.fetchone()
        await cursor.close()
        return int(row[0]) if row is not None else 0

    @staticmethod
    async def _table_exists(connection: aiosqlite.Connection, name: str) -> bool:
        cursor = await connection.execute(TABLE_EXISTS, (name,))
        row = await cursor.fetchone()
        await cursor.close()
        return row is not None

    def _quarantine(self) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        for suffix in ("", "-wal", "-shm"):
            path = Path(f"{self._db_path}{suffix}")
            if path.exists():
                target = path.with_name(f"{path.name}.corrupt-{stamp}")
                path.rename(target)
                self._logger.warning("Moved %s to %s", path, target)


def log_detached_failure(
    logger: logging.Logger, description: str, task: "asyncio.Future[object]"
) -> None:
    """Log the outcome of a write whose caller stopped waiting for it."""

    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "%s failed after its caller was cancelled: %s",
            description,
            exc,
            extra={"operation": description},
        )
