"""Unit tests for joins and JoinClause ON-condition trees."""
from __future__ import annotations

import pytest

from fluxql.errors import InvalidArgumentError
from fluxql.query.builder import Builder
from fluxql.query.join_clause import JoinClause
from fluxql.query.predicates import ColumnWhere


def _users() -> Builder:
    return Builder().from_("users")


def test_joins_compile_in_call_order():
    q = (
        _users()
        .join("contacts", "users.id", "=", "contacts.user_id")
        .left_join("orders", "users.id", "=", "orders.user_id")
        .right_join("teams", "users.team_id", "=", "teams.id")
    )
    assert q.to_sql() == (
        'select * from "users" '
        'inner join "contacts" on "users"."id" = "contacts"."user_id" '
        'left join "orders" on "users"."id" = "orders"."user_id" '
        'right join "teams" on "users"."team_id" = "teams"."id"'
    )


def test_two_argument_on_infers_equals():
    q = _users().join("contacts", "users.id", "contacts.user_id")
    assert q.to_sql() == (
        'select * from "users" inner join "contacts" on "users"."id" = "contacts"."user_id"'
    )


def test_simple_join_adds_exactly_one_condition():
    q = _users().join("contacts", "users.id", "=", "contacts.user_id")
    assert q.joins[0].wheres == [ColumnWhere("users.id", "=", "contacts.user_id")]


def test_callable_join_receives_join_clause():
    seen = []

    def build(join: JoinClause) -> None:
        seen.append(join)
        join.on("users.id", "=", "contacts.user_id").or_on("users.id", "=", "contacts.owner_id")

    q = _users().join("contacts", build)
    assert isinstance(seen[0], JoinClause)
    assert q.to_sql() == (
        'select * from "users" inner join "contacts" on "users"."id" = "contacts"."user_id" '
        'or "users"."id" = "contacts"."owner_id"'
    )


def test_nested_on_groups():
    q = _users().join(
        "contacts",
        lambda j: j.on("users.id", "=", "contacts.user_id").on(
            lambda n: n.on("contacts.a", "=", "users.a").or_on("contacts.b", "=", "users.b")
        ),
    )
    assert q.to_sql() == (
        'select * from "users" inner join "contacts" on "users"."id" = "contacts"."user_id" '
        'and ("contacts"."a" = "users"."a" or "contacts"."b" = "users"."b")'
    )


def test_join_where_binds_value_in_join_bucket():
    q = (
        _users()
        .where("users.active", 1)
        .join("posts", lambda j: j.on("users.id", "=", "posts.user_id").where("posts.published", True))
    )
    assert q.to_sql() == (
        'select * from "users" inner join "posts" on "users"."id" = "posts"."user_id" '
        'and "posts"."published" = ? where "users"."active" = ?'
    )
    assert q.get_raw_bindings()["join"] == [True]
    assert q.get_bindings() == [True, 1]


def test_join_where_shorthand():
    q = _users().left_join_where("posts", "posts.status", "=", "published")
    assert q.to_sql() == 'select * from "users" left join "posts" on "posts"."status" = ?'
    assert q.get_bindings() == ["published"]


def test_cross_join_has_no_conditions():
    assert _users().cross_join("sizes").to_sql() == 'select * from "users" cross join "sizes"'


def test_join_table_alias():
    q = _users().join("contacts as c", "users.id", "=", "c.user_id")
    assert q.to_sql() == (
        'select * from "users" inner join "contacts" as "c" on "users"."id" = "c"."user_id"'
    )


def test_unknown_join_type_raises():
    with pytest.raises(InvalidArgumentError):
        _users().join("contacts", "a", "=", "b", type="outer")


def test_join_where_none_value_compiles_to_null_check():
    q = _users().left_join(
        "posts",
        lambda j: j.on("users.id", "=", "posts.user_id")
        .where("posts.deleted_at", "=", None)
        .or_where("posts.archived_at", "!=", None),
    )
    assert q.to_sql() == (
        'select * from "users" left join "posts" on "users"."id" = "posts"."user_id" '
        'and "posts"."deleted_at" is null or "posts"."archived_at" is not null'
    )
    assert q.get_bindings() == []


def test_join_where_two_argument_form_binds_value():
    q = _users().join("posts", lambda j: j.where("posts.status", "draft"))
    assert q.to_sql() == 'select * from "users" inner join "posts" on "posts"."status" = ?'
    assert q.get_bindings() == ["draft"]


@pytest.mark.parametrize(
    "build",
    [
        lambda j: j.on("users.id", "=", None),
        lambda j: j.on("users.id"),
        lambda j: j.where("posts.status"),
    ],
)
def test_incomplete_join_conditions_raise(build):
    with pytest.raises(InvalidArgumentError):
        _users().join("posts", build)
