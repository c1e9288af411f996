"""Test fixtures: sample DDL, seed rows and a recording fake connection."""
from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal

from fluxql.config import ConnectionConfig
from fluxql.connection.base import Connection

_FIXTURES_DIR = Path(__file__).parent

USERS = [
    (1, "ann", "ann@example.com", "admin", 10, 1, '["a", "b"]', "2024-01-05 10:00:00"),
    (2, "bob", "bob@example.com", "member", 5, 1, '["a"]', "2024-02-10 12:30:00"),
    (3, "cid", "cid@example.com", "member", 0, 0, "[]", "2024-02-20 08:15:00"),
    (4, "dee", "dee@example.com", "admin", 7, 1, '["b", "c", "d"]', "2023-12-31 23:59:59"),
]

POSTS = [
    (1, "Hello", "published", 4.5),
    (1, "Draft", "draft", 1.0),
    (2, "Bob post", "published", 3.0),
    (4, "Dee 1", "published", 5.0),
    (4, "Dee 2", "published", 2.0),
]


def load_ddl(target: Literal["sqlite"] = "sqlite") -> str:
    """Return the sample DDL SQL string for the given backend."""
    return (_FIXTURES_DIR / f"ddl_{target}.sql").read_text()


class RecordingConnection(Connection):
    """In-memory connection that records statements and serves queued rows.

    Each ``select`` pops the next queued result (``[]`` when the queue is
    empty).  Writes report ``affected`` rows.

    Args:
        driver: Grammar to compile with (``generic``, ``postgres``, ...).
        prefix: Table prefix.
        last_id: Value returned by the last-insert-id side channel.
    """

    def __init__(self, driver: str = "generic", prefix: str = "", last_id: Any = None) -> None:
        super().__init__(ConnectionConfig(driver=driver, prefix=prefix))
        self.statements: list[tuple[str, list[Any]]] = []
        self.results: list[list[dict[str, Any]]] = []
        self.affected = 1
        self._last_id = last_id

    def queue(self, *results: list[dict[str, Any]]) -> RecordingConnection:
        self.results.extend(results)
        return self

    @property
    def last_statement(self) -> tuple[str, list[Any]]:
        return self.statements[-1]

    def _record(self, sql: str, bindings: Sequence[Any]) -> None:
        self.statements.append((sql, list(bindings)))

    async def select(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict[str, Any]]:
        self._record(sql, bindings)
        return self.results.pop(0) if self.results else []

    async def insert(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        self._record(sql, bindings)
        return True

    async def update(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        self._record(sql, bindings)
        return self.affected

    async def delete(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        self._record(sql, bindings)
        return self.affected

    async def statement(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        self._record(sql, bindings)
        return True

    async def affecting_statement(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        self._record(sql, bindings)
        return self.affected

    async def last_insert_id(self) -> Any:
        return self._last_id
