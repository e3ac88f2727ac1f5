"""Typed data access for measurement records."""

from __future__ import annotations

from typing import Any, AsyncIterator, List, Sequence, Tuple

import aiosqlite  # type: ignore[import]

from .constants import (
    MEASUREMENT_ANNOTATE,
    MEASUREMENT_COUNT,
    MEASUREMENT_DELETE,
    MEASUREMENT_DELETE_SESSION,
    MEASUREMENT_INSERT,
    MEASUREMENT_SELECT_ALL,
    MEASUREMENT_SELECT_BY_SESSION,
    MEASUREMENT_SELECT_ONE,
    MEASUREMENT_SESSIONS,
)
from .engine import PersistenceEngine
from .errors import ConstraintViolationError, RecordNotFoundError
from .schema import MeasurementRecord, check_text, record_to_row, row_to_record, validate_record


class MeasurementQuery:
    """A deferred, re-runnable ordered query over measurement records.

    Nothing touches the store until the query is iterated or fetched, and
    every iteration reads the state committed at that moment.
    """

    def __init__(
        self,
        engine: PersistenceEngine,
        sql: str,
        params: Sequence[Any] = (),
        *,
        description: str,
    ) -> None:
        self._engine = engine
        self._sql = sql
        self._params: Tuple[Any, ...] = tuple(params)
        self._description = description

    async def fetch(self) -> List[MeasurementRecord]:
        """Materialize the query into a list."""

        async def _select(connection: aiosqlite.Connection) -> List[MeasurementRecord]:
            cursor = await connection.execute(self._sql, self._params)
            rows = await cursor.fetchall()
            await cursor.close()
            return [row_to_record(row) for row in rows]

        return await self._engine.run_read(_select, description=self._description)

    def __aiter__(self) -> AsyncIterator[MeasurementRecord]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[MeasurementRecord]:
        for record in await self.fetch():
            yield record

    def __repr__(self) -> str:
        return f"MeasurementQuery({self._description!r})"


class MeasurementDao:
    """CRUD and query operations against the ``measurements`` table."""

    def __init__(self, engine: PersistenceEngine) -> None:
        self._engine = engine

    async def insert(self, record: MeasurementRecord) -> int:
        """Store a new record and return its assigned id."""

        validate_record(record)
        if record.id is not None:
            raise ConstraintViolationError("Record ids are assigned by the store")
        row = record_to_row(record)

        async def _insert(connection: aiosqlite.Connection) -> int:
            cursor = await connection.execute(MEASUREMENT_INSERT, row)
            record_id = cursor.lastrowid
            await cursor.close()
            return int(record_id)

        return await self._engine.run_write(_insert, description="insert measurement")

    def query_all(self) -> MeasurementQuery:
        """All records, newest capture first; ties by descending id."""

        return MeasurementQuery(self._engine, MEASUREMENT_SELECT_ALL, description="query measurements")

    def query_by_session(self, session_id: str) -> MeasurementQuery:
        check_text("Session id", session_id)
        return MeasurementQuery(
            self._engine,
            MEASUREMENT_SELECT_BY_SESSION,
            (session_id,),
            description=f"query session {session_id}",
        )

    async def get(self, record_id: int) -> MeasurementRecord:
        async def _get(connection: aiosqlite.Connection) -> MeasurementRecord:
            cursor = await connection.execute(MEASUREMENT_SELECT_ONE, (record_id,))
            row = await cursor.fetchone()
            await cursor.close()
            if row is None:
                raise RecordNotFoundError(f"Measurement {record_id} does not exist")
            return row_to_record(row)

        return await self._engine.run_read(_get, description=f"get measurement {record_id}")

    async def count(self) -> int:
        async def _count(connection: aiosqlite.Connection) -> int:
            cursor = await connection.execute(MEASUREMENT_COUNT)
            row = await cursor.fetchone()
            await cursor.close()
            return int(row[0])

        return await self._engine.run_read(_count, description="count measurements")

    async def list_sessions(self) -> List[str]:
        """Distinct session ids, most recently captured first."""

        async def _sessions(connection: aiosqlite.Connection) -> List[str]:
            cursor = await connection.execute(MEASUREMENT_SESSIONS)
            rows = await cursor.fetchall()
            await cursor.close()
            return [row["session_id"] for row in rows]

        return await self._engine.run_read(_sessions, description="list sessions")

    async def annotate(self, record_id: int, note: str | None) -> None:
        """Replace the note of a record; no other field is touched."""

        check_text("Note", note)

        async def _annotate(connection: aiosqlite.Connection) -> None:
            cursor = await connection.execute(MEASUREMENT_ANNOTATE, (note, record_id))
            updated = cursor.rowcount
            await cursor.close()
            if updated == 0:
                raise RecordNotFoundError(f"Measurement {record_id} does not exist")

        await self._engine.run_write(_annotate, description=f"annotate measurement {record_id}")

    async def delete_by_id(self, record_id: int) -> None:
        async def _delete(connection: aiosqlite.Connection) -> None:
            cursor = await connection.execute(MEASUREMENT_DELETE, (record_id,))
            deleted = cursor.rowcount
            await cursor.close()
            if deleted == 0:
                raise RecordNotFoundError(f"Measurement {record_id} does not exist")

        await self._engine.run_write(_delete, description=f"delete measurement {record_id}")

    async def delete_by_session(self, session_id: str) -> int:
        """Delete every record of a session and return how many were removed."""

        check_text("Session id", session_id)

        async def _delete(connection: aiosqlite.Connection) -> int:
            cursor = await connection.execute(MEASUREMENT_DELETE_SESSION, (session_id,))
            deleted = cursor.rowcount
            await cursor.close()
            return int(deleted)

        return await self._engine.run_write(_delete, description=f"delete session {session_id}")
