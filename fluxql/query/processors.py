"""Result post-processors.

A processor turns raw driver results into the values returned by the
builder.  The base processor reads auto-generated ids through the
connection's ``last_insert_id`` side channel; the Postgres processor reads
them from the rows produced by ``insert ... returning``.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fluxql.query.builder import Builder


def _normalize_id(value: Any) -> Any:
    """Return numeric-looking string ids as ``int``."""
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


class Processor:
    """Default processor for drivers that expose a last-insert-id side channel."""

    def process_select(self, query: Builder, results: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return results

    async def process_insert_get_id(
        self,
        query: Builder,
        sql: str,
        values: Sequence[Any],
        sequence: str | None = None,
    ) -> Any:
        connection = query.get_connection()
        await connection.insert(sql, values)
        return _normalize_id(await connection.last_insert_id())


class PostgresProcessor(Processor):
    """Reads the generated id from the ``returning`` row."""

    async def process_insert_get_id(
        self,
        query: Builder,
        sql: str,
        values: Sequence[Any],
        sequence: str | None = None,
    ) -> Any:
        row = await query.get_connection().select_one(sql, values)
        if row is None:
            return None
        key = sequence or "id"
        return _normalize_id(row[key] if key in row else next(iter(row.values())))
