"""Unit tests for PostgresGrammar: $n numbering, casts and RETURNING."""
from __future__ import annotations

import pytest

from fluxql.compile.postgres import PostgresGrammar
from fluxql.query.builder import Builder
from tests.fixtures import RecordingConnection


def _pg() -> Builder:
    return Builder(grammar=PostgresGrammar())


def _users() -> Builder:
    return _pg().from_("users")


def test_numbered_placeholders():
    q = _users().where("a", 1).where("b", 2)
    assert q.to_sql() == 'select * from "users" where "a" = $1 and "b" = $2'


def test_sequential_compiles_restart_numbering():
    q = _users().where("a", 1).where_in("b", [2, 3])
    first = q.to_sql()
    assert first == 'select * from "users" where "a" = $1 and "b" in ($2, $3)'
    assert q.to_sql() == first
    assert q.compile().sql == first


def test_two_queries_on_one_grammar_are_independent():
    grammar = PostgresGrammar()
    a = Builder(grammar=grammar).from_("a").where("x", 1).where("y", 2)
    b = Builder(grammar=grammar).from_("b").where("z", 3)
    a.to_sql()
    assert b.to_sql() == 'select * from "b" where "z" = $1'


def test_subquery_placeholders_continue_outer_numbering():
    q = (
        _users()
        .where("status", "active")
        .where_in(
            "id",
            lambda sub: sub.select("user_id")
            .from_("orders")
            .where("total", ">", 100)
            .where("state", "paid"),
        )
        .where("age", ">", 18)
    )
    assert q.to_sql() == (
        'select * from "users" where "status" = $1 and "id" in '
        '(select "user_id" from "orders" where "total" > $2 and "state" = $3) and "age" > $4'
    )
    assert q.get_bindings() == ["active", 100, "paid", 18]


def test_multi_digit_placeholders_inside_subquery():
    values = list(range(12))
    q = _users().where("a", "x").where_in("id", lambda sub: sub.from_("t").where_in("v", values))
    expected = ", ".join(f"${n}" for n in range(2, 14))
    assert q.to_sql() == (
        f'select * from "users" where "a" = $1 and "id" in (select * from "t" where "v" in ({expected}))'
    )


def test_nested_subqueries_number_in_textual_order():
    inner = _pg().select("id").from_("c").where("k", 3)
    middle = _pg().select("id").from_("b").where("j", 2).where_in("id", inner)
    q = _users().where("i", 1).where_in("id", middle).where("l", 4)
    assert q.to_sql() == (
        'select * from "users" where "i" = $1 and "id" in (select "id" from "b" where "j" = $2 '
        'and "id" in (select "id" from "c" where "k" = $3)) and "l" = $4'
    )
    assert q.get_bindings() == [1, 2, 3, 4]


def test_subquery_string_literals_are_left_untouched():
    sub = _pg().select("id").from_("notes").where("k", 3).where_raw("note <> '$1'")
    q = _users().where("x", 7).where_in("id", sub)
    assert q.to_sql() == (
        'select * from "users" where "x" = $1 and "id" in '
        '(select "id" from "notes" where "k" = $2 and note <> \'$1\')'
    )
    assert q.get_bindings() == [7, 3]


def test_fragment_reports_own_placeholder_count():
    fragment = PostgresGrammar().compile_select_fragment(_users().where_in("id", [1, 2]), start=4)
    assert fragment.sql == 'select * from "users" where "id" in ($5, $6)'
    assert fragment.placeholders == 2


def test_union_all_numbering_continues():
    q = _users().where("id", 1).union_all(_pg().from_("admins").where("id", 2))
    assert q.to_sql() == (
        'select * from "users" where "id" = $1 union all select * from "admins" where "id" = $2'
    )
    assert q.get_bindings() == [1, 2]


def test_from_sub_then_where():
    q = _pg().from_sub(_users().where("active", True), "u").where("u.id", ">", 5)
    assert q.to_sql() == (
        'select * from (select * from "users" where "active" = $1) as "u" where "u"."id" > $2'
    )


def test_raw_fragments_use_dialect_placeholders():
    q = _users().where("a", 0).where_raw("age > ? and age < ?", [1, 2]).order_by_raw("field(id, ?)", [3])
    assert q.to_sql() == (
        'select * from "users" where "a" = $1 and age > $2 and age < $3 order by field(id, $4)'
    )


def test_like_casts_both_sides_to_text():
    q = _users().where_like("name", "jo%").where("email", "ilike", "%@x.com")
    assert q.to_sql() == (
        'select * from "users" where CAST("name" AS TEXT) like CAST($1 AS TEXT) '
        'and CAST("email" AS TEXT) ilike CAST($2 AS TEXT)'
    )


def test_date_parts():
    q = _users().where_date("created_at", "2024-01-05").where_year("created_at", 2024)
    assert q.to_sql() == (
        'select * from "users" where "created_at"::date = $1 '
        'and extract(year from "created_at") = $2'
    )


def test_json_predicates():
    q = _users().where_json_contains("tags", ["a"]).where_json_doesnt_contain("tags", "b")
    assert q.to_sql() == (
        'select * from "users" where ("tags")::jsonb @> $1 and not ("tags")::jsonb @> $2'
    )
    assert q.get_bindings() == ['["a"]', '"b"']
    assert _users().where_json_length("tags", ">", 1).to_sql() == (
        'select * from "users" where jsonb_array_length(("tags")::jsonb) > $1'
    )


def test_fulltext():
    q = _pg().from_("posts").where_fulltext(["title", "body"], "database")
    assert q.to_sql() == (
        "select * from \"posts\" where (to_tsvector('english', \"title\") || "
        "to_tsvector('english', \"body\")) @@ plainto_tsquery('english', $1)"
    )


def test_random_and_lock():
    assert _users().in_random_order().lock_for_update().to_sql() == (
        'select * from "users" order by random() for update'
    )


def test_exists_statement():
    assert PostgresGrammar().compile_exists(_users().where("id", 1)) == (
        'select exists(select * from "users" where "id" = $1) as "exists"'
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def test_insert_get_id_uses_returning():
    grammar = PostgresGrammar()
    assert grammar.compile_insert_get_id(_users(), {"name": "a"}) == (
        'insert into "users" ("name") values ($1) returning "id"'
    )
    assert grammar.compile_insert_get_id(_users(), {"name": "a"}, "user_id") == (
        'insert into "users" ("name") values ($1) returning "user_id"'
    )


def test_insert_or_ignore_uses_on_conflict():
    assert PostgresGrammar().compile_insert_or_ignore(_users(), [{"a": 1}, {"a": 2}]) == (
        'insert into "users" ("a") values ($1), ($2) on conflict do nothing'
    )


def test_update_numbering_spans_set_and_where():
    q = _users().where("id", 7)
    assert PostgresGrammar().compile_update(q, {"name": "x", "role": "y"}) == (
        'update "users" set "name" = $1, "role" = $2 where "id" = $3'
    )


def test_truncate_restarts_identity():
    assert PostgresGrammar().compile_truncate(_users()) == {
        'truncate "users" restart identity cascade': []
    }


def test_to_raw_sql_replaces_whole_tokens():
    q = _users().where("a", "x").where("b", False).where_in("id", list(range(1, 12)))
    assert q.to_raw_sql() == (
        "select * from \"users\" where \"a\" = 'x' and \"b\" = false "
        "and \"id\" in (1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11)"
    )


@pytest.mark.asyncio
async def test_insert_get_id_reads_returning_row(pg_conn: RecordingConnection):
    pg_conn.queue([{"id": "7"}])
    new_id = await pg_conn.table("users").insert_get_id({"name": "ann"})
    assert new_id == 7
    assert pg_conn.last_statement == (
        'insert into "users" ("name") values ($1) returning "id"',
        ["ann"],
    )
