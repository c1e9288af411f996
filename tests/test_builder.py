"""Unit tests for Builder state: bindings, cloning and argument validation."""
from __future__ import annotations

import pytest

from fluxql.compile.base import CompiledSQL
from fluxql.errors import InvalidArgumentError, InvalidBindingTypeError
from fluxql.query.builder import BINDING_TYPES, Builder
from fluxql.query.expression import Expression, raw


def _users() -> Builder:
    return Builder().from_("users")


def test_binding_categories_are_fixed_and_ordered():
    assert BINDING_TYPES == (
        "select", "from", "join", "where", "group_by", "having", "order", "union", "union_order",
    )
    assert list(_users().get_raw_bindings()) == list(BINDING_TYPES)


def test_add_binding_extends_lists_and_appends_scalars():
    q = _users().add_binding([1, 2], "where").add_binding(3, "having")
    assert q.get_raw_bindings()["where"] == [1, 2]
    assert q.get_bindings() == [1, 2, 3]


def test_add_binding_rejects_unknown_category():
    with pytest.raises(InvalidBindingTypeError) as exc_info:
        _users().add_binding(1, "limit")
    assert exc_info.value.category == "limit"


def test_clone_is_independent():
    q = _users().where("a", 1)
    copy = q.clone()
    copy.where("b", 2).order_by("id")
    assert q.to_sql() == 'select * from "users" where "a" = ?'
    assert q.get_bindings() == [1]
    assert copy.to_sql() == 'select * from "users" where "a" = ? and "b" = ? order by "id" asc'
    assert copy.get_bindings() == [1, 2]


def test_clone_shares_connection_and_grammar():
    q = _users()
    copy = q.clone()
    assert copy.grammar is q.grammar
    assert copy.connection is q.connection


def test_clone_without_resets_named_properties():
    q = _users().select("id").where("a", 1).order_by("id").limit(5).offset(10)
    copy = q.clone_without(["columns", "orders", "limit", "offset"])
    assert copy.to_sql() == 'select * from "users" where "a" = ?'
    assert q.to_sql() == 'select "id" from "users" where "a" = ? order by "id" asc limit 5 offset 10'


def test_clone_without_rejects_unknown_property():
    with pytest.raises(InvalidArgumentError):
        _users().clone_without(["colour"])


def test_clone_without_bindings():
    q = _users().select_raw("? as x", [1]).where("a", 2)
    copy = q.clone_without_bindings(["select"])
    assert copy.get_bindings() == [2]
    assert q.get_bindings() == [1, 2]


def test_unknown_operator_raises():
    with pytest.raises(InvalidArgumentError) as exc_info:
        _users().where("a", "===", 1)
    assert exc_info.value.argument == "operator"


def test_missing_value_raises():
    with pytest.raises(InvalidArgumentError):
        _users().where("a")


def test_operators_are_case_insensitive():
    assert _users().where("name", "LIKE", "a%").to_sql() == 'select * from "users" where "name" like ?'


def test_invalid_order_direction_raises():
    with pytest.raises(InvalidArgumentError):
        _users().order_by("id", "sideways")


def test_between_requires_two_bounds():
    with pytest.raises(InvalidArgumentError):
        _users().where_between("age", [1])


def test_reorder_clears_orders_and_their_bindings():
    q = _users().order_by_raw("field(id, ?)", [1]).order_by("name")
    q.reorder("id", "desc")
    assert q.to_sql() == 'select * from "users" order by "id" desc'
    assert q.get_raw_bindings()["order"] == []


def test_select_resets_select_bindings():
    q = _users().select_raw("? as x", [1]).select("id")
    assert q.get_bindings() == []
    assert q.to_sql() == 'select "id" from "users"'


def test_select_raw_records_alias_only_without_bindings():
    q = _users().select_raw("count(*) as total").select_raw("? as flag", [True])
    assert q.select_aliases == {"total": "count(*)"}


def test_offset_is_clamped():
    assert _users().offset(-5).offset_value == 0


def test_compile_returns_sql_bindings_and_dialect():
    compiled = _users().where("id", 1).compile()
    assert compiled == CompiledSQL('select * from "users" where "id" = ?', [1], "generic")


def test_new_query_shares_grammar_only():
    q = _users().where("a", 1)
    fresh = q.new_query()
    assert fresh.grammar is q.grammar
    assert fresh.wheres == [] and fresh.from_table is None


def test_expression_helpers():
    marker = raw("now()")
    assert isinstance(marker, Expression)
    assert str(marker) == marker.get_value() == "now()"


def test_nested_group_bindings_spliced_in_place():
    q = _users().where("a", 1).where(lambda g: g.where("b", 2).or_where("c", 3)).where("d", 4)
    assert q.get_bindings() == [1, 2, 3, 4]
    assert q.to_sql().count("?") == 4


def test_where_in_accepts_builder_subquery():
    sub = Builder().select("id").from_("admins").where("level", ">", 3)
    q = _users().where("active", 1).where_not_in("id", sub)
    assert q.to_sql() == (
        'select * from "users" where "active" = ? and "id" not in '
        '(select "id" from "admins" where "level" > ?)'
    )
    assert q.get_bindings() == [1, 3]
