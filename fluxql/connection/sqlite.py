"""SQLite connection adapter over the stdlib ``sqlite3`` module.

Driver calls run in a worker thread via :func:`asyncio.to_thread` and are
serialised by an :class:`asyncio.Lock`, so one ``sqlite3`` handle is never
used by two statements at once.  Each write commits immediately.
"""
from __future__ import annotations

import asyncio
import sqlite3
import time
from collections.abc import Sequence
from typing import Any

from fluxql.config import ConnectionConfig
from fluxql.connection.base import Connection


class SQLiteConnection(Connection):
    """Connection to a SQLite database file or ``:memory:``.

    Args:
        config: Connection settings; ``config.database`` is the file path.
        connection: An existing ``sqlite3`` handle to use instead of opening one.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        connection: sqlite3.Connection | None = None,
    ) -> None:
        super().__init__(config)
        self._connection = connection or sqlite3.connect(config.database, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = asyncio.Lock()
        self._last_insert_id: int | None = None

    @property
    def raw_connection(self) -> sqlite3.Connection:
        return self._connection

    async def _run(self, sql: str, bindings: Sequence[Any], fetch: bool) -> Any:
        async with self._lock:
            start = time.perf_counter()
            result = await asyncio.to_thread(self._execute, sql, list(bindings), fetch)
            elapsed = (time.perf_counter() - start) * 1000
        self.log_query(sql, bindings, elapsed)
        return result

    def _execute(self, sql: str, bindings: list[Any], fetch: bool) -> Any:
        cursor = self._connection.execute(sql, bindings)
        try:
            if fetch:
                rows = [dict(row) for row in cursor.fetchall()]
                self._connection.commit()
                return rows
            self._connection.commit()
            self._last_insert_id = cursor.lastrowid
            return cursor.rowcount
        finally:
            cursor.close()

    async def select(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict[str, Any]]:
        return await self._run(sql, bindings, fetch=True)

    async def insert(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        return await self.statement(sql, bindings)

    async def update(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        return await self.affecting_statement(sql, bindings)

    async def delete(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        return await self.affecting_statement(sql, bindings)

    async def statement(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        await self._run(sql, bindings, fetch=False)
        return True

    async def affecting_statement(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        return await self._run(sql, bindings, fetch=False)

    async def last_insert_id(self) -> int | None:
        return self._last_insert_id

    async def disconnect(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._connection.close)
