"""Tests for Cursor tokens, pagination and chunked iteration."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from fluxql.errors import InvalidArgumentError, InvalidCursorError
from fluxql.query.pagination import Cursor, LengthAwarePage
from tests.fixtures import RecordingConnection


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "parameters",
    [
        {"id": 15},
        {"id": 2**70},
        {"created_at": "2024-01-05 10:00:00", "id": 3},
        {"score": 4.5},
        {"name": "ümlaut/+="},
        {"flag": None},
    ],
)
def test_cursor_round_trips_values(parameters: dict):
    for direction in (True, False):
        cursor = Cursor(parameters=parameters, points_to_next_items=direction)
        token = cursor.encode()
        assert "=" not in token and "+" not in token and "/" not in token
        assert Cursor.decode(token) == cursor


@pytest.mark.parametrize("token", [None, ""])
def test_empty_token_decodes_to_none(token):
    assert Cursor.decode(token) is None


@pytest.mark.parametrize("token", ["not-a-cursor", "W10", "eyJuZXh0Ijp0cnVlfQ"])
def test_malformed_token_raises(token: str):
    with pytest.raises(InvalidCursorError):
        Cursor.decode(token)


def test_cursor_parameter_lookup():
    cursor = Cursor(parameters={"id": 1}, points_to_next_items=False)
    assert cursor.parameter("id") == 1
    assert cursor.points_to_previous_items()
    with pytest.raises(InvalidCursorError):
        cursor.parameter("name")


def test_cursor_encodes_dates_and_decimals_as_strings():
    cursor = Cursor(
        parameters={
            "created_at": datetime(2024, 1, 5, 10, 0),
            "day": date(2024, 1, 5),
            "price": Decimal("9.50"),
        }
    )
    decoded = Cursor.decode(cursor.encode())
    assert decoded.parameters == {
        "created_at": "2024-01-05T10:00:00",
        "day": "2024-01-05",
        "price": "9.50",
    }


def test_unserialisable_cursor_value_raises():
    cursor = Cursor(parameters={"id": object()})
    with pytest.raises(InvalidCursorError):
        cursor.encode()


def test_length_aware_page_properties():
    page = LengthAwarePage(data=[], total=31, per_page=15, current_page=2)
    assert page.last_page == 3
    assert page.has_more_pages
    assert LengthAwarePage(data=[], total=0, per_page=15).last_page == 1


# ---------------------------------------------------------------------------
# Offset pagination
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_paginate_counts_then_fetches(conn: RecordingConnection):
    conn.queue([{"aggregate": 31}], [{"id": 16}])
    page = await conn.table("users").where("active", 1).order_by("name").paginate(15, 2)
    assert page.total == 31 and page.current_page == 2 and page.data == [{"id": 16}]
    assert conn.statements == [
        ('select count(*) as aggregate from "users" where "active" = ?', [1]),
        (
            'select * from "users" where "active" = ? order by "name" asc limit 15 offset 15',
            [1],
        ),
    ]


@pytest.mark.asyncio
async def test_paginate_skips_fetch_when_empty(conn: RecordingConnection):
    conn.queue([{"aggregate": 0}])
    page = await conn.table("users").paginate()
    assert page.data == [] and page.total == 0
    assert len(conn.statements) == 1


@pytest.mark.asyncio
async def test_paginate_grouped_query_counts_subquery(conn: RecordingConnection):
    conn.queue([{"aggregate": 2}])
    await conn.table("posts").select("user_id").group_by("user_id").paginate()
    assert conn.statements[0][0] == (
        'select count(*) as aggregate from (select "user_id" from "posts" group by "user_id") '
        'as "aggregate_table"'
    )


@pytest.mark.asyncio
async def test_simple_paginate_over_fetches_one(conn: RecordingConnection):
    conn.queue([{"id": 3}, {"id": 4}, {"id": 5}])
    page = await conn.table("users").simple_paginate(2, 2)
    assert conn.last_statement[0] == 'select * from "users" limit 3 offset 2'
    assert page.data == [{"id": 3}, {"id": 4}]
    assert page.has_more is True


@pytest.mark.asyncio
async def test_per_page_must_be_positive(conn: RecordingConnection):
    with pytest.raises(InvalidArgumentError):
        await conn.table("users").paginate(0)


# ---------------------------------------------------------------------------
# Cursor pagination
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cursor_paginate_first_page(conn: RecordingConnection):
    conn.queue([{"id": 1}, {"id": 2}, {"id": 3}])
    page = await conn.table("users").cursor_paginate(2)
    assert conn.last_statement == ('select * from "users" order by "id" asc limit 3', [])
    assert page.data == [{"id": 1}, {"id": 2}]
    assert page.has_more and page.previous_cursor is None and page.cursor is None
    assert Cursor.decode(page.next_cursor) == Cursor(parameters={"id": 2})


@pytest.mark.asyncio
async def test_cursor_paginate_next_page(conn: RecordingConnection):
    conn.queue([{"id": 3}, {"id": 4}])
    token = Cursor(parameters={"id": 2}).encode()
    page = await conn.table("users").cursor_paginate(2, token)
    assert conn.last_statement == (
        'select * from "users" where "id" > ? order by "id" asc limit 3',
        [2],
    )
    assert page.cursor == token
    assert page.next_cursor is None
    assert Cursor.decode(page.previous_cursor) == Cursor(
        parameters={"id": 3}, points_to_next_items=False
    )


@pytest.mark.asyncio
async def test_cursor_paginate_previous_page_restores_order(conn: RecordingConnection):
    conn.queue([{"id": 2}, {"id": 1}])
    cursor = Cursor(parameters={"id": 3}, points_to_next_items=False)
    page = await conn.table("users").cursor_paginate(2, cursor)
    assert conn.last_statement == (
        'select * from "users" where "id" < ? order by "id" desc limit 3',
        [3],
    )
    assert page.data == [{"id": 1}, {"id": 2}]
    assert page.previous_cursor is None
    assert Cursor.decode(page.next_cursor) == Cursor(parameters={"id": 2})


@pytest.mark.asyncio
async def test_cursor_paginate_respects_descending_order(conn: RecordingConnection):
    token = Cursor(parameters={"id": 10}).encode()
    await conn.table("users").order_by_desc("id").cursor_paginate(5, token)
    assert conn.last_statement == (
        'select * from "users" where "id" < ? order by "id" desc limit 6',
        [10],
    )


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_chunk_pages_until_short_page(conn: RecordingConnection):
    conn.queue([{"id": 1}, {"id": 2}], [{"id": 3}])
    seen = []
    query = conn.table("users").order_by("id")
    assert await query.chunk(2, lambda rows, page: seen.append((page, rows))) is True
    assert seen == [(1, [{"id": 1}, {"id": 2}]), (2, [{"id": 3}])]
    assert [sql for sql, _ in conn.statements] == [
        'select * from "users" order by "id" asc limit 2',
        'select * from "users" order by "id" asc limit 2 offset 2',
    ]
    assert query.limit_value is None


@pytest.mark.asyncio
async def test_chunk_halts_when_callback_returns_false(conn: RecordingConnection):
    conn.queue([{"id": 1}], [{"id": 2}])

    async def stop(rows, page):
        return False

    assert await conn.table("users").chunk(1, stop) is False
    assert len(conn.statements) == 1


@pytest.mark.asyncio
async def test_each_passes_running_index(conn: RecordingConnection):
    conn.queue([{"id": 1}, {"id": 2}], [{"id": 3}])
    seen = []
    await conn.table("users").each(lambda row, index: seen.append((index, row["id"])), count=2)
    assert seen == [(0, 1), (1, 2), (2, 3)]


@pytest.mark.asyncio
async def test_chunk_by_id_uses_keyset(conn: RecordingConnection):
    conn.queue([{"id": 1}, {"id": 2}], [{"id": 5}])
    pages = []
    await conn.table("users").where("active", 1).chunk_by_id(2, lambda rows, page: pages.append(rows))
    assert conn.statements == [
        ('select * from "users" where "active" = ? order by "id" asc limit 2', [1]),
        ('select * from "users" where "active" = ? and "id" > ? order by "id" asc limit 2', [1, 2]),
    ]
    assert len(pages) == 2


@pytest.mark.asyncio
async def test_chunk_by_id_groups_or_predicates(conn: RecordingConnection):
    conn.queue([{"id": 1}], [])
    await conn.table("users").where("a", 1).or_where("b", 2).chunk_by_id(1, lambda rows, page: None)
    assert conn.last_statement == (
        'select * from "users" where ("a" = ? or "b" = ?) and "id" > ? order by "id" asc limit 1',
        [1, 2, 1],
    )


@pytest.mark.asyncio
async def test_cursor_paginate_groups_or_predicates(conn: RecordingConnection):
    token = Cursor(parameters={"id": 5}).encode()
    await conn.table("users").where("a", 1).or_where("b", 2).cursor_paginate(2, token)
    assert conn.last_statement == (
        'select * from "users" where ("a" = ? or "b" = ?) and "id" > ? order by "id" asc limit 3',
        [1, 2, 5],
    )


@pytest.mark.asyncio
async def test_chunk_by_id_requires_key_in_rows(conn: RecordingConnection):
    conn.queue([{"name": "ann"}])
    with pytest.raises(InvalidArgumentError):
        await conn.table("users").select("name").chunk_by_id(1, lambda rows, page: None)


@pytest.mark.asyncio
async def test_lazy_yields_rows_across_pages(conn: RecordingConnection):
    conn.queue([{"id": 1}, {"id": 2}], [{"id": 3}])
    rows = [row async for row in conn.table("users").lazy(2)]
    assert rows == [{"id": 1}, {"id": 2}, {"id": 3}]


@pytest.mark.asyncio
async def test_lazy_by_id(conn: RecordingConnection):
    conn.queue([{"id": 4}, {"id": 9}], [])
    rows = [row["id"] async for row in conn.table("users").lazy_by_id(2)]
    assert rows == [4, 9]
    assert conn.last_statement == ('select * from "users" where "id" > ? order by "id" asc limit 2', [9])
