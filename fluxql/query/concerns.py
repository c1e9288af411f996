"""Chunked, lazy and paginated iteration over a builder's results.

:class:`BuildsQueries` is mixed into :class:`~fluxql.query.builder.Builder`.
Every method works on clones, so the calling builder is never mutated.
Fetches are strictly sequential.

Callbacks may be plain functions or coroutine functions.  A callback that
returns ``False`` halts the iteration, and the method then returns ``False``.
"""
from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import TYPE_CHECKING, Any

from fluxql.errors import InvalidArgumentError
from fluxql.query.components import OrderBy
from fluxql.query.pagination import Cursor, CursorPage, LengthAwarePage, SimplePage
from fluxql.query.predicates import NestedWhere

if TYPE_CHECKING:
    from fluxql.query.builder import Builder

logger = logging.getLogger(__name__)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def column_key(column: str) -> str:
    """Return the result-row key produced by selecting ``column``.

    ``users.id`` → ``id``; ``users.id as user_id`` → ``user_id``.
    """
    lowered = column.lower()
    if " as " in lowered:
        return column[lowered.rindex(" as ") + 4:].strip()
    return column.split(".")[-1]


def _assert_positive(name: str, value: int) -> None:
    if value <= 0:
        raise InvalidArgumentError(f"'{name}' must be greater than zero, got {value}.", name)


class BuildsQueries:
    """Iteration and pagination helpers for :class:`~fluxql.query.builder.Builder`."""

    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------

    async def chunk(self: Builder, count: int, callback: Callable[..., Any]) -> bool:
        """Feed ``callback(rows, page)`` with offset pages of ``count`` rows."""
        _assert_positive("count", count)
        page = 1
        while True:
            results = await self.clone().for_page(page, count).get()
            if not results:
                break
            if await _maybe_await(callback(results, page)) is False:
                logger.debug("Chunk iteration halted by callback on page %d", page)
                return False
            if len(results) < count:
                break
            page += 1
        return True

    async def each(self: Builder, callback: Callable[..., Any], count: int = 1000) -> bool:
        """Call ``callback(row, index)`` for every row, fetching in chunks."""

        async def each_row(rows: list[dict[str, Any]], page: int) -> bool:
            for offset, row in enumerate(rows):
                if await _maybe_await(callback(row, (page - 1) * count + offset)) is False:
                    return False
            return True

        return await self.chunk(count, each_row)

    async def chunk_by_id(
        self: Builder,
        count: int,
        callback: Callable[..., Any],
        column: str = "id",
        alias: str | None = None,
    ) -> bool:
        """Feed ``callback(rows, page)`` with keyset pages ordered by ``column``.

        Each page is fetched with ``column > <last seen value>``, so rows
        inserted during iteration never cause an earlier row to repeat.
        """
        _assert_positive("count", count)
        key = alias or column_key(column)
        last_id = None
        page = 1
        while True:
            results = await self._keyset_page(column, last_id, count).get()
            if not results:
                break
            if await _maybe_await(callback(results, page)) is False:
                logger.debug("Chunk-by-id iteration halted by callback on page %d", page)
                return False
            last_id = self._last_key(results, key)
            if len(results) < count:
                break
            page += 1
        return True

    def _keyset_page(self: Builder, column: str, last_id: Any, count: int) -> Builder:
        query = self.clone()
        if last_id is not None:
            _add_keyset_bound(query, column, ">", last_id)
        return query.reorder(column).limit(count)

    @staticmethod
    def _last_key(results: Sequence[dict[str, Any]], key: str) -> Any:
        last = results[-1].get(key)
        if last is None:
            raise InvalidArgumentError(
                f"The chunk_by_id operation was aborted because the [{key}] column "
                "is not present in the query result.",
                "column",
            )
        return last

    # ------------------------------------------------------------------
    # Lazy iteration
    # ------------------------------------------------------------------

    async def lazy(self: Builder, chunk_size: int = 1000) -> AsyncIterator[dict[str, Any]]:
        """Yield rows one by one, fetching offset pages of ``chunk_size``."""
        _assert_positive("chunk_size", chunk_size)
        page = 1
        while True:
            results = await self.clone().for_page(page, chunk_size).get()
            for row in results:
                yield row
            if len(results) < chunk_size:
                return
            page += 1

    async def lazy_by_id(
        self: Builder,
        chunk_size: int = 1000,
        column: str = "id",
        alias: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield rows one by one, fetching keyset pages ordered by ``column``."""
        _assert_positive("chunk_size", chunk_size)
        key = alias or column_key(column)
        last_id = None
        while True:
            results = await self._keyset_page(column, last_id, chunk_size).get()
            for row in results:
                yield row
            if len(results) < chunk_size:
                return
            last_id = self._last_key(results, key)

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    async def paginate(
        self: Builder,
        per_page: int = 15,
        page: int = 1,
        columns: Sequence[Any] | None = None,
    ) -> LengthAwarePage:
        """Return one offset page plus the total row count."""
        _assert_positive("per_page", per_page)
        total = await self.get_count_for_pagination()
        rows = await self.clone().for_page(page, per_page).get(columns) if total else []
        return LengthAwarePage(data=rows, total=total, per_page=per_page, current_page=page)

    async def get_count_for_pagination(self: Builder) -> int:
        """Count the rows the query would return, ignoring ordering and paging."""
        query = self.clone_without(["orders", "limit", "offset"]).clone_without_bindings(["order"])
        if query.groups or query.havings or query.unions or query.is_distinct:
            return await query.new_query().from_sub(query, "aggregate_table").count()
        query = query.clone_without(["columns"]).clone_without_bindings(["select"])
        return await query.count()

    async def simple_paginate(
        self: Builder,
        per_page: int = 15,
        page: int = 1,
        columns: Sequence[Any] | None = None,
    ) -> SimplePage:
        """Return one offset page, over-fetching one row to detect a next page."""
        _assert_positive("per_page", per_page)
        query = self.clone().offset((page - 1) * per_page).limit(per_page + 1)
        rows = await query.get(columns)
        has_more = len(rows) > per_page
        return SimplePage(
            data=rows[:per_page], per_page=per_page, current_page=page, has_more=has_more
        )

    async def cursor_paginate(
        self: Builder,
        per_page: int = 15,
        cursor: Cursor | str | None = None,
        column: str = "id",
        columns: Sequence[Any] | None = None,
    ) -> CursorPage:
        """Return one keyset page around ``cursor``.

        The query is ordered by ``column`` (ascending unless the builder
        already orders by it).  A previous-page cursor flips the comparison
        and the ordering, then restores display order.
        """
        _assert_positive("per_page", per_page)
        token = cursor if isinstance(cursor, str) else None
        if isinstance(cursor, str):
            cursor = Cursor.decode(cursor)
        key = column_key(column)

        query = self.clone()
        direction = query._order_direction(column)
        if direction is None:
            direction = "asc"
            query.order_by(column, direction)
        if cursor is not None:
            ascending = (direction == "asc") == cursor.points_to_next_items
            _add_keyset_bound(query, column, ">" if ascending else "<", cursor.parameter(key))
            if cursor.points_to_previous_items():
                query.orders = [_flip(order) for order in query.orders]

        rows = await query.limit(per_page + 1).get(columns)
        has_more = len(rows) > per_page
        rows = rows[:per_page]
        if cursor is not None and cursor.points_to_previous_items():
            rows.reverse()

        next_cursor = previous_cursor = None
        if rows:
            forward = cursor is None or cursor.points_to_next_items
            if (forward and has_more) or (cursor is not None and not forward):
                next_cursor = Cursor(
                    parameters={key: rows[-1][key]}, points_to_next_items=True
                ).encode()
            if cursor is not None and (forward or has_more):
                previous_cursor = Cursor(
                    parameters={key: rows[0][key]}, points_to_next_items=False
                ).encode()
        return CursorPage(
            data=rows,
            per_page=per_page,
            has_more=has_more,
            cursor=token or (cursor.encode() if cursor is not None else None),
            next_cursor=next_cursor,
            previous_cursor=previous_cursor,
        )

    def _order_direction(self: Builder, column: str) -> str | None:
        for order in self.orders:
            if isinstance(order, OrderBy) and order.column == column:
                return order.direction
        return None


def _add_keyset_bound(query: Builder, column: str, operator: str, value: Any) -> None:
    """AND ``column <operator> value`` onto every existing predicate of ``query``."""
    if any(where.boolean == "or" for where in query.wheres):
        grouped = query.new_query()
        grouped.wheres = list(query.wheres)
        query.wheres = [NestedWhere(grouped)]
    query.where(column, operator, value)


def _flip(order: Any) -> Any:
    if isinstance(order, OrderBy):
        return OrderBy(order.column, "desc" if order.direction == "asc" else "asc")
    return order
