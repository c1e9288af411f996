"""Fluent query state and execution.

A :class:`Builder` accumulates the pieces of one SQL statement through
chainable calls and keeps every bound value in a per-category bucket.
Flattening the buckets in :data:`BINDING_TYPES` order yields the values in
the same order as the placeholders the grammar emits::

    query = (
        connection.table("users")
        .where("votes", ">", 100)
        .or_where(lambda q: q.where("name", "John").where("active", True))
    )
    query.to_sql()
    # select * from "users" where "votes" > ? or ("name" = ? and "active" = ?)
    query.get_bindings()
    # [100, 'John', True]

Execution methods are coroutines and require a connection.
"""
from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from fluxql.compile.base import CompiledSQL, Grammar
from fluxql.errors import (
    InvalidAmountError,
    InvalidArgumentError,
    InvalidBindingTypeError,
    MissingConnectionError,
    RecordNotFoundError,
)
from fluxql.query.components import (
    Aggregate,
    FromRaw,
    FromSub,
    Order,
    OrderBy,
    RandomOrder,
    RawColumn,
    RawGroup,
    RawOrder,
    UnionEntry,
)
from fluxql.query.concerns import BuildsQueries, column_key
from fluxql.query.expression import Expression
from fluxql.query.join_clause import JOIN_TYPES, JoinClause, JoinType
from fluxql.query.predicates import (
    MISSING,
    BasicWhere,
    BetweenWhere,
    Boolean,
    ColumnWhere,
    DatePart,
    DateWhere,
    ExistsWhere,
    FullTextWhere,
    HavingPredicate,
    InSubWhere,
    InWhere,
    JsonContainsWhere,
    JsonLengthWhere,
    LikeWhere,
    NestedWhere,
    NotWhere,
    NullWhere,
    Predicate,
    RawWhere,
    SubWhere,
)
from fluxql.query.processors import Processor

if TYPE_CHECKING:
    from fluxql.connection.base import Connection

#: Binding categories, in flattening order.
BINDING_TYPES: tuple[str, ...] = (
    "select",
    "from",
    "join",
    "where",
    "group_by",
    "having",
    "order",
    "union",
    "union_order",
)

#: Comparison operators accepted by ``where``/``having`` and friends.
OPERATORS: frozenset[str] = frozenset(
    {
        "=", "<", ">", "<=", ">=", "<>", "!=", "<=>",
        "like", "like binary", "not like", "ilike", "not ilike",
        "&", "|", "^", "<<", ">>", "&~",
        "rlike", "not rlike", "regexp", "not regexp",
        "~", "~*", "!~", "!~*", "similar to", "not similar to",
        "&&", "@>", "<@", "?", "?|", "?&", "||", "-", "@?", "@@", "#-",
    }
)

_RAW_ALIAS_RE = re.compile(
    r"^(?P<expression>.+?)\s+as\s+(?P<alias>[\w\"`]+)\s*$", re.IGNORECASE | re.DOTALL
)
_SEED_RE = re.compile(r"^\d*$")
_LANGUAGE_RE = re.compile(r"^\w+$")

# clone_without() property name -> (attribute, empty value factory)
_CLEARABLE: dict[str, tuple[str, Callable[[], Any]]] = {
    "columns": ("columns", list),
    "distinct": ("is_distinct", bool),
    "from": ("from_table", lambda: None),
    "joins": ("joins", list),
    "wheres": ("wheres", list),
    "groups": ("groups", list),
    "havings": ("havings", list),
    "orders": ("orders", list),
    "union_orders": ("union_orders", list),
    "limit": ("limit_value", lambda: None),
    "offset": ("offset_value", lambda: None),
    "unions": ("unions", list),
    "lock": ("lock_mode", lambda: None),
}


def _flatten(values: Iterable[Any]) -> list[Any]:
    """Accept both ``f("a", "b")`` and ``f(["a", "b"])``."""
    flat: list[Any] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            flat.extend(value)
        else:
            flat.append(value)
    return flat


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _to_number(value: Any) -> Any:
    """Coerce a driver aggregate result to a Python number."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return float(value)
    except (TypeError, ValueError):
        return value


class Builder(BuildsQueries):
    """Mutable state of one SQL statement plus its fluent API.

    Args:
        connection: Connection used by the execution methods.
        grammar: Grammar used to compile; defaults to the connection's.
        processor: Result processor; defaults to the connection's.
    """

    def __init__(
        self,
        connection: Connection | None = None,
        grammar: Grammar | None = None,
        processor: Processor | None = None,
    ) -> None:
        self.connection = connection
        if grammar is None:
            grammar = connection.get_query_grammar() if connection is not None else Grammar()
        if processor is None:
            processor = connection.get_post_processor() if connection is not None else Processor()
        self.grammar = grammar
        self.processor = processor

        self.columns: list[Any] = []
        self.is_distinct = False
        self.from_table: str | Expression | FromRaw | FromSub | None = None
        self.from_alias: str | None = None
        self.joins: list[JoinClause] = []
        self.wheres: list[Predicate] = []
        self.groups: list[Any] = []
        self.havings: list[HavingPredicate] = []
        self.orders: list[Order] = []
        self.union_orders: list[Order] = []
        self.limit_value: int | None = None
        self.offset_value: int | None = None
        self.unions: list[UnionEntry] = []
        self.lock_mode: bool | str | None = None
        self.select_aliases: dict[str, str] = {}
        self.bindings: dict[str, list[Any]] = {category: [] for category in BINDING_TYPES}

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def select(self, *columns: Any) -> Builder:
        """Replace the selected columns (``*`` when none are given)."""
        self.columns = _flatten(columns) or ["*"]
        self.bindings["select"] = []
        self.select_aliases = {}
        return self

    def add_select(self, *columns: Any) -> Builder:
        self.columns.extend(_flatten(columns))
        return self

    def select_raw(self, expression: str, bindings: Sequence[Any] = ()) -> Builder:
        """Add a raw select fragment.

        A binding-free fragment ending in ``as <alias>`` records the alias,
        so ``having("<alias>", ...)`` compiles against the expression.
        """
        self.columns.append(RawColumn(expression))
        if bindings:
            self.add_binding(list(bindings), "select")
        else:
            match = _RAW_ALIAS_RE.match(expression.strip())
            if match:
                alias = match.group("alias").strip("\"`")
                self.select_aliases[alias] = match.group("expression").strip()
        return self

    def distinct(self) -> Builder:
        self.is_distinct = True
        return self

    # ------------------------------------------------------------------
    # Source
    # ------------------------------------------------------------------

    def from_(self, table: str | Expression, alias: str | None = None) -> Builder:
        self.from_table = table
        self.from_alias = alias
        self.bindings["from"] = []
        return self

    table = from_

    def from_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Builder:
        self.from_table = FromRaw(sql)
        self.from_alias = None
        self.bindings["from"] = list(bindings)
        return self

    def from_sub(self, query: Builder | Callable[[Builder], Any], alias: str) -> Builder:
        """Select from a derived table ``(<query>) as alias``."""
        query = self._create_sub(query)
        self.from_table = FromSub(query, alias)
        self.from_alias = None
        self.bindings["from"] = query.get_bindings()
        return self

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def join(
        self,
        table: str | Expression,
        first: Any,
        operator: Any = MISSING,
        second: Any = MISSING,
        type: JoinType = "inner",
        where: bool = False,
    ) -> Builder:
        """Add a join.

        ``first`` may be a callable receiving a fresh :class:`JoinClause`.
        Otherwise exactly one condition is added: column-to-column, or
        column-to-bound-value when ``where`` is true.
        """
        if type not in JOIN_TYPES:
            raise InvalidArgumentError(f"Unknown join type: {type!r}", "type")
        join = JoinClause(table, type)
        if callable(first):
            first(join)
        elif where:
            join.where(first, operator, second)
        else:
            join.on(first, operator, second)
        self.joins.append(join)
        self.add_binding(join.get_bindings(), "join")
        return self

    def left_join(self, table: str | Expression, first: Any, operator: Any = MISSING, second: Any = MISSING) -> Builder:
        return self.join(table, first, operator, second, "left")

    def right_join(self, table: str | Expression, first: Any, operator: Any = MISSING, second: Any = MISSING) -> Builder:
        return self.join(table, first, operator, second, "right")

    def cross_join(self, table: str | Expression) -> Builder:
        self.joins.append(JoinClause(table, "cross"))
        return self

    def join_where(
        self,
        table: str | Expression,
        first: Any,
        operator: Any,
        second: Any = MISSING,
        type: JoinType = "inner",
    ) -> Builder:
        return self.join(table, first, operator, second, type, where=True)

    def left_join_where(self, table: str | Expression, first: Any, operator: Any, second: Any = MISSING) -> Builder:
        return self.join_where(table, first, operator, second, "left")

    def right_join_where(self, table: str | Expression, first: Any, operator: Any, second: Any = MISSING) -> Builder:
        return self.join_where(table, first, operator, second, "right")

    # ------------------------------------------------------------------
    # Unions
    # ------------------------------------------------------------------

    def union(self, query: Builder | Callable[[Builder], Any], all: bool = False) -> Builder:
        query = self._create_sub(query)
        self.unions.append(UnionEntry(query, all))
        self.add_binding(query.get_bindings(), "union")
        return self

    def union_all(self, query: Builder | Callable[[Builder], Any]) -> Builder:
        return self.union(query, all=True)

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def where(
        self,
        column: Any,
        operator: Any = MISSING,
        value: Any = MISSING,
        boolean: Boolean = "and",
    ) -> Builder:
        """Add a basic where clause.

        ``where("votes", 100)`` infers ``=``.  A callable ``column`` builds a
        nested group; a mapping becomes a nested group of ``=`` comparisons.
        A subquery value compiles to ``column <op> (<subquery>)`` and a
        ``None`` value with ``=``/``!=`` compiles to ``is [not] null``.

        Raises:
            InvalidArgumentError: If the operator is not recognised.
        """
        if isinstance(column, Mapping):
            return self.where_nested(lambda query: query._add_mapping_wheres(column), boolean)
        if callable(column):
            return self.where_nested(column, boolean)
        operator, value = self._prepare_value_and_operator(operator, value)
        if isinstance(value, Builder) or callable(value):
            return self.where_sub(column, operator, value, boolean)
        if value is None and operator in ("=", "!=", "<>"):
            return self.where_null(column, boolean, negated=operator != "=")
        self.wheres.append(BasicWhere(column, operator, value, boolean))
        self._bind_value(value, "where")
        return self

    def or_where(self, column: Any, operator: Any = MISSING, value: Any = MISSING) -> Builder:
        return self.where(column, operator, value, "or")

    def _add_mapping_wheres(self, conditions: Mapping[str, Any]) -> None:
        for key, value in conditions.items():
            self.where(key, "=", value)

    def where_not(
        self,
        column: Any,
        operator: Any = MISSING,
        value: Any = MISSING,
        boolean: Boolean = "and",
    ) -> Builder:
        if callable(column):
            return self.where_nested(column, boolean, negated=True)
        operator, value = self._prepare_value_and_operator(operator, value)
        self.wheres.append(NotWhere(column, operator, value, boolean))
        self._bind_value(value, "where")
        return self

    def or_where_not(self, column: Any, operator: Any = MISSING, value: Any = MISSING) -> Builder:
        return self.where_not(column, operator, value, "or")

    def where_column(
        self,
        first: Any,
        operator: Any = MISSING,
        second: Any = MISSING,
        boolean: Boolean = "and",
    ) -> Builder:
        operator, second = self._prepare_value_and_operator(operator, second)
        self.wheres.append(ColumnWhere(first, operator, second, boolean))
        return self

    def or_where_column(self, first: Any, operator: Any = MISSING, second: Any = MISSING) -> Builder:
        return self.where_column(first, operator, second, "or")

    def where_raw(self, sql: str, bindings: Sequence[Any] = (), boolean: Boolean = "and") -> Builder:
        self.wheres.append(RawWhere(sql, boolean))
        self.add_binding(list(bindings), "where")
        return self

    def or_where_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Builder:
        return self.where_raw(sql, bindings, "or")

    def where_in(
        self,
        column: Any,
        values: Any,
        boolean: Boolean = "and",
        negated: bool = False,
    ) -> Builder:
        """Add ``column [not] in (...)`` for a value list or a subquery."""
        if isinstance(values, Builder) or callable(values):
            return self.where_in_sub(column, values, boolean, negated)
        values = (values,) if isinstance(values, (str, bytes)) else tuple(values)
        self.wheres.append(InWhere(column, values, boolean, negated))
        self.add_binding([v for v in values if not isinstance(v, Expression)], "where")
        return self

    def or_where_in(self, column: Any, values: Any) -> Builder:
        return self.where_in(column, values, "or")

    def where_not_in(self, column: Any, values: Any, boolean: Boolean = "and") -> Builder:
        return self.where_in(column, values, boolean, negated=True)

    def or_where_not_in(self, column: Any, values: Any) -> Builder:
        return self.where_not_in(column, values, "or")

    def where_in_sub(
        self,
        column: Any,
        query: Builder | Callable[[Builder], Any],
        boolean: Boolean = "and",
        negated: bool = False,
    ) -> Builder:
        query = self._create_sub(query)
        self.wheres.append(InSubWhere(column, query, boolean, negated))
        self.add_binding(query.get_bindings(), "where")
        return self

    def where_not_in_sub(
        self,
        column: Any,
        query: Builder | Callable[[Builder], Any],
        boolean: Boolean = "and",
    ) -> Builder:
        return self.where_in_sub(column, query, boolean, negated=True)

    def where_null(self, columns: Any, boolean: Boolean = "and", negated: bool = False) -> Builder:
        for column in _as_list(columns):
            self.wheres.append(NullWhere(column, boolean, negated))
        return self

    def or_where_null(self, columns: Any) -> Builder:
        return self.where_null(columns, "or")

    def where_not_null(self, columns: Any, boolean: Boolean = "and") -> Builder:
        return self.where_null(columns, boolean, negated=True)

    def or_where_not_null(self, columns: Any) -> Builder:
        return self.where_not_null(columns, "or")

    def where_between(
        self,
        column: Any,
        values: Sequence[Any],
        boolean: Boolean = "and",
        negated: bool = False,
    ) -> Builder:
        bounds = self._between_bounds(values)
        self.wheres.append(BetweenWhere(column, bounds, boolean, negated))
        self.add_binding([v for v in bounds if not isinstance(v, Expression)], "where")
        return self

    def or_where_between(self, column: Any, values: Sequence[Any]) -> Builder:
        return self.where_between(column, values, "or")

    def where_not_between(self, column: Any, values: Sequence[Any], boolean: Boolean = "and") -> Builder:
        return self.where_between(column, values, boolean, negated=True)

    def or_where_not_between(self, column: Any, values: Sequence[Any]) -> Builder:
        return self.where_not_between(column, values, "or")

    @staticmethod
    def _between_bounds(values: Sequence[Any]) -> tuple[Any, Any]:
        bounds = list(values)
        if len(bounds) != 2:
            raise InvalidArgumentError(
                f"Between requires exactly two bounds, got {len(bounds)}.", "values"
            )
        return bounds[0], bounds[1]

    def where_exists(
        self,
        query: Builder | Callable[[Builder], Any],
        boolean: Boolean = "and",
        negated: bool = False,
    ) -> Builder:
        query = self._create_sub(query)
        self.wheres.append(ExistsWhere(query, boolean, negated))
        self.add_binding(query.get_bindings(), "where")
        return self

    def or_where_exists(self, query: Builder | Callable[[Builder], Any]) -> Builder:
        return self.where_exists(query, "or")

    def where_not_exists(self, query: Builder | Callable[[Builder], Any], boolean: Boolean = "and") -> Builder:
        return self.where_exists(query, boolean, negated=True)

    def or_where_not_exists(self, query: Builder | Callable[[Builder], Any]) -> Builder:
        return self.where_not_exists(query, "or")

    def where_sub(
        self,
        column: Any,
        operator: str,
        query: Builder | Callable[[Builder], Any],
        boolean: Boolean = "and",
    ) -> Builder:
        """Add ``column <operator> (<subquery>)``."""
        operator = self._normalize_operator(operator)
        query = self._create_sub(query)
        self.wheres.append(SubWhere(column, operator, query, boolean))
        self.add_binding(query.get_bindings(), "where")
        return self

    def where_nested(
        self,
        callback: Callable[[Builder], Any],
        boolean: Boolean = "and",
        negated: bool = False,
    ) -> Builder:
        """Add a parenthesised group built by ``callback`` on a child builder."""
        query = self.for_nested_where()
        callback(query)
        return self.add_nested_where_query(query, boolean, negated)

    def for_nested_where(self) -> Builder:
        query = self.new_query()
        query.from_table = self.from_table
        return query

    def add_nested_where_query(
        self, query: Builder, boolean: Boolean = "and", negated: bool = False
    ) -> Builder:
        """Splice ``query``'s where list and where bindings in as one group."""
        if query.wheres:
            self.wheres.append(NestedWhere(query, boolean, negated))
            self.add_binding(query.get_raw_bindings()["where"], "where")
        return self

    # ------------------------------------------------------------------
    # Date / JSON / pattern / full-text predicates
    # ------------------------------------------------------------------

    def where_date(self, column: Any, operator: Any, value: Any = MISSING, boolean: Boolean = "and") -> Builder:
        operator, value = self._prepare_value_and_operator(operator, value)
        if isinstance(value, datetime):
            value = value.strftime("%Y-%m-%d")
        elif isinstance(value, date):
            value = value.isoformat()
        return self._add_date_based_where("date", column, operator, value, boolean)

    def or_where_date(self, column: Any, operator: Any, value: Any = MISSING) -> Builder:
        return self.where_date(column, operator, value, "or")

    def where_time(self, column: Any, operator: Any, value: Any = MISSING, boolean: Boolean = "and") -> Builder:
        operator, value = self._prepare_value_and_operator(operator, value)
        if isinstance(value, (datetime, time)):
            value = value.strftime("%H:%M:%S")
        return self._add_date_based_where("time", column, operator, value, boolean)

    def or_where_time(self, column: Any, operator: Any, value: Any = MISSING) -> Builder:
        return self.where_time(column, operator, value, "or")

    def where_day(self, column: Any, operator: Any, value: Any = MISSING, boolean: Boolean = "and") -> Builder:
        operator, value = self._prepare_value_and_operator(operator, value)
        if isinstance(value, date):
            value = value.strftime("%d")
        elif not isinstance(value, Expression):
            value = f"{int(value):02d}"
        return self._add_date_based_where("day", column, operator, value, boolean)

    def or_where_day(self, column: Any, operator: Any, value: Any = MISSING) -> Builder:
        return self.where_day(column, operator, value, "or")

    def where_month(self, column: Any, operator: Any, value: Any = MISSING, boolean: Boolean = "and") -> Builder:
        operator, value = self._prepare_value_and_operator(operator, value)
        if isinstance(value, date):
            value = value.strftime("%m")
        elif not isinstance(value, Expression):
            value = f"{int(value):02d}"
        return self._add_date_based_where("month", column, operator, value, boolean)

    def or_where_month(self, column: Any, operator: Any, value: Any = MISSING) -> Builder:
        return self.where_month(column, operator, value, "or")

    def where_year(self, column: Any, operator: Any, value: Any = MISSING, boolean: Boolean = "and") -> Builder:
        operator, value = self._prepare_value_and_operator(operator, value)
        if isinstance(value, date):
            value = value.year
        return self._add_date_based_where("year", column, operator, value, boolean)

    def or_where_year(self, column: Any, operator: Any, value: Any = MISSING) -> Builder:
        return self.where_year(column, operator, value, "or")

    def _add_date_based_where(
        self, part: DatePart, column: Any, operator: str, value: Any, boolean: Boolean
    ) -> Builder:
        self.wheres.append(DateWhere(part, column, operator, value, boolean))
        self._bind_value(value, "where")
        return self

    def where_json_contains(
        self, column: Any, value: Any, boolean: Boolean = "and", negated: bool = False
    ) -> Builder:
        """Match rows whose JSON ``column`` contains ``value`` (JSON-encoded when bound)."""
        if not isinstance(value, Expression):
            value = json.dumps(value)
        self.wheres.append(JsonContainsWhere(column, value, boolean, negated))
        self._bind_value(value, "where")
        return self

    def or_where_json_contains(self, column: Any, value: Any) -> Builder:
        return self.where_json_contains(column, value, "or")

    def where_json_doesnt_contain(self, column: Any, value: Any, boolean: Boolean = "and") -> Builder:
        return self.where_json_contains(column, value, boolean, negated=True)

    def or_where_json_doesnt_contain(self, column: Any, value: Any) -> Builder:
        return self.where_json_doesnt_contain(column, value, "or")

    def where_json_length(
        self, column: Any, operator: Any, value: Any = MISSING, boolean: Boolean = "and"
    ) -> Builder:
        operator, value = self._prepare_value_and_operator(operator, value)
        self.wheres.append(JsonLengthWhere(column, operator, value, boolean))
        self._bind_value(value, "where")
        return self

    def or_where_json_length(self, column: Any, operator: Any, value: Any = MISSING) -> Builder:
        return self.where_json_length(column, operator, value, "or")

    def where_like(self, column: Any, value: Any, boolean: Boolean = "and", negated: bool = False) -> Builder:
        self.wheres.append(LikeWhere(column, value, boolean, negated))
        self._bind_value(value, "where")
        return self

    def or_where_like(self, column: Any, value: Any) -> Builder:
        return self.where_like(column, value, "or")

    def where_not_like(self, column: Any, value: Any, boolean: Boolean = "and") -> Builder:
        return self.where_like(column, value, boolean, negated=True)

    def or_where_not_like(self, column: Any, value: Any) -> Builder:
        return self.where_not_like(column, value, "or")

    def where_fulltext(
        self,
        columns: Any,
        value: str,
        boolean: Boolean = "and",
        language: str = "english",
    ) -> Builder:
        if not _LANGUAGE_RE.match(language):
            raise InvalidArgumentError(f"Invalid full-text language: {language!r}", "language")
        self.wheres.append(FullTextWhere(tuple(_as_list(columns)), value, boolean, language))
        self._bind_value(value, "where")
        return self

    def or_where_fulltext(self, columns: Any, value: str, language: str = "english") -> Builder:
        return self.where_fulltext(columns, value, "or", language)

    # ------------------------------------------------------------------
    # GROUP BY / HAVING
    # ------------------------------------------------------------------

    def group_by(self, *groups: Any) -> Builder:
        self.groups.extend(_flatten(groups))
        return self

    def group_by_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Builder:
        self.groups.append(RawGroup(sql))
        self.add_binding(list(bindings), "group_by")
        return self

    def having(
        self,
        column: Any,
        operator: Any = MISSING,
        value: Any = MISSING,
        boolean: Boolean = "and",
    ) -> Builder:
        operator, value = self._prepare_value_and_operator(operator, value)
        self.havings.append(BasicWhere(column, operator, value, boolean))
        self._bind_value(value, "having")
        return self

    def or_having(self, column: Any, operator: Any = MISSING, value: Any = MISSING) -> Builder:
        return self.having(column, operator, value, "or")

    def having_raw(self, sql: str, bindings: Sequence[Any] = (), boolean: Boolean = "and") -> Builder:
        self.havings.append(RawWhere(sql, boolean))
        self.add_binding(list(bindings), "having")
        return self

    def or_having_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Builder:
        return self.having_raw(sql, bindings, "or")

    def having_between(
        self,
        column: Any,
        values: Sequence[Any],
        boolean: Boolean = "and",
        negated: bool = False,
    ) -> Builder:
        bounds = self._between_bounds(values)
        self.havings.append(BetweenWhere(column, bounds, boolean, negated))
        self.add_binding([v for v in bounds if not isinstance(v, Expression)], "having")
        return self

    def or_having_between(self, column: Any, values: Sequence[Any]) -> Builder:
        return self.having_between(column, values, "or")

    def having_not_between(self, column: Any, values: Sequence[Any], boolean: Boolean = "and") -> Builder:
        return self.having_between(column, values, boolean, negated=True)

    # ------------------------------------------------------------------
    # ORDER BY
    # ------------------------------------------------------------------

    def order_by(self, column: Any, direction: str = "asc") -> Builder:
        """Add an ordering; after ``union`` it orders the whole union.

        Raises:
            InvalidArgumentError: If ``direction`` is not ``asc`` or ``desc``.
        """
        if not isinstance(direction, str) or direction.lower() not in ("asc", "desc"):
            raise InvalidArgumentError("Order direction must be 'asc' or 'desc'.", "direction")
        self._order_list().append(OrderBy(column, direction.lower()))
        return self

    def order_by_desc(self, column: Any) -> Builder:
        return self.order_by(column, "desc")

    def latest(self, column: Any = "created_at") -> Builder:
        return self.order_by(column, "desc")

    def oldest(self, column: Any = "created_at") -> Builder:
        return self.order_by(column, "asc")

    def in_random_order(self, seed: str | int = "") -> Builder:
        if not _SEED_RE.match(str(seed)):
            raise InvalidArgumentError(f"Random order seed must be numeric, got {seed!r}.", "seed")
        self._order_list().append(RandomOrder(seed))
        return self

    def order_by_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Builder:
        self._order_list().append(RawOrder(sql))
        self.add_binding(list(bindings), "union_order" if self.unions else "order")
        return self

    def reorder(self, column: Any = None, direction: str = "asc") -> Builder:
        """Drop every ordering (and its bindings), optionally adding a new one."""
        self.orders = []
        self.union_orders = []
        self.bindings["order"] = []
        self.bindings["union_order"] = []
        if column is not None:
            return self.order_by(column, direction)
        return self

    def _order_list(self) -> list[Order]:
        return self.union_orders if self.unions else self.orders

    # ------------------------------------------------------------------
    # LIMIT / OFFSET / LOCK
    # ------------------------------------------------------------------

    def limit(self, value: int | None) -> Builder:
        """Set the row limit; a negative value (or ``None``) removes it."""
        self.limit_value = int(value) if value is not None and value >= 0 else None
        return self

    take = limit

    def offset(self, value: int) -> Builder:
        self.offset_value = max(0, int(value))
        return self

    skip = offset

    def for_page(self, page: int, per_page: int = 15) -> Builder:
        return self.offset((page - 1) * per_page).limit(per_page)

    def lock(self, value: bool | str = True) -> Builder:
        """``True`` locks for update, ``False`` takes a shared lock, a string is raw."""
        self.lock_mode = value
        return self

    def lock_for_update(self) -> Builder:
        return self.lock(True)

    def shared_lock(self) -> Builder:
        return self.lock(False)

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def add_binding(self, value: Any, type: str = "where") -> Builder:
        """Append ``value`` (a list is extended) to the ``type`` bucket.

        Raises:
            InvalidBindingTypeError: If ``type`` is not a binding category.
        """
        if type not in self.bindings:
            raise InvalidBindingTypeError(type, list(BINDING_TYPES))
        if isinstance(value, list):
            self.bindings[type].extend(value)
        else:
            self.bindings[type].append(value)
        return self

    def set_bindings(self, bindings: Sequence[Any], type: str = "where") -> Builder:
        if type not in self.bindings:
            raise InvalidBindingTypeError(type, list(BINDING_TYPES))
        self.bindings[type] = list(bindings)
        return self

    def _bind_value(self, value: Any, type: str) -> None:
        if not isinstance(value, Expression):
            self.add_binding([value], type)

    def get_bindings(self) -> list[Any]:
        """Return every binding, flattened in placeholder order."""
        return [value for category in BINDING_TYPES for value in self.bindings[category]]

    def get_raw_bindings(self) -> dict[str, list[Any]]:
        return self.bindings

    # ------------------------------------------------------------------
    # Cloning
    # ------------------------------------------------------------------

    def clone(self) -> Builder:
        """Return a copy whose lists and buckets can be mutated independently.

        Nested subquery and predicate objects are shared.
        """
        query = Builder(self.connection, self.grammar, self.processor)
        query.columns = list(self.columns)
        query.is_distinct = self.is_distinct
        query.from_table = self.from_table
        query.from_alias = self.from_alias
        query.joins = list(self.joins)
        query.wheres = list(self.wheres)
        query.groups = list(self.groups)
        query.havings = list(self.havings)
        query.orders = list(self.orders)
        query.union_orders = list(self.union_orders)
        query.limit_value = self.limit_value
        query.offset_value = self.offset_value
        query.unions = list(self.unions)
        query.lock_mode = self.lock_mode
        query.select_aliases = dict(self.select_aliases)
        query.bindings = {category: list(values) for category, values in self.bindings.items()}
        return query

    def clone_without(self, properties: Iterable[str]) -> Builder:
        """Clone, resetting the named properties (``columns``, ``orders``, ``limit``...).

        Raises:
            InvalidArgumentError: If a property name is unknown.
        """
        query = self.clone()
        for name in properties:
            if name not in _CLEARABLE:
                raise InvalidArgumentError(
                    f"Unknown query property: {name!r}. Expected one of {sorted(_CLEARABLE)}.",
                    "properties",
                )
            attribute, empty = _CLEARABLE[name]
            setattr(query, attribute, empty())
        return query

    def clone_without_bindings(self, categories: Iterable[str]) -> Builder:
        query = self.clone()
        for category in categories:
            query.set_bindings([], category)
        return query

    def new_query(self) -> Builder:
        """Return an empty builder sharing this one's connection and grammar."""
        return Builder(self.connection, self.grammar, self.processor)

    def _create_sub(self, query: Any) -> Builder:
        if isinstance(query, Builder):
            return query
        if callable(query):
            sub = self.new_query()
            query(sub)
            return sub
        raise InvalidArgumentError(
            f"A subquery must be a Builder or a callable, got {type(query).__name__}.", "query"
        )

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def _prepare_value_and_operator(self, operator: Any, value: Any) -> tuple[str, Any]:
        if value is MISSING:
            if operator is MISSING:
                raise InvalidArgumentError("A value is required for this condition.", "value")
            return "=", operator
        return self._normalize_operator(operator), value

    @staticmethod
    def _normalize_operator(operator: Any) -> str:
        if not isinstance(operator, str) or operator.lower() not in OPERATORS:
            raise InvalidArgumentError(f"Illegal operator: {operator!r}", "operator")
        return operator.lower()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def to_sql(self) -> str:
        return self.grammar.compile_select(self)

    def compile(self) -> CompiledSQL:
        return CompiledSQL(
            sql=self.to_sql(), bindings=self.get_bindings(), dialect=self.grammar.dialect_name
        )

    def to_raw_sql(self) -> str:
        """Return the SQL with bindings inlined.  For debugging only; never execute it."""
        return self.grammar.substitute_bindings_into_raw_sql(self.to_sql(), self.get_bindings())

    def get_connection(self) -> Connection:
        if self.connection is None:
            raise MissingConnectionError("This query has no connection to execute against.")
        return self.connection

    def get_grammar(self) -> Grammar:
        return self.grammar

    def get_processor(self) -> Processor:
        return self.processor

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, columns: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        """Execute the select and return its rows.

        ``columns`` applies only when no columns were selected.
        """
        query = self
        if columns and not self.columns:
            query = self.clone()
            query.columns = _flatten(columns)
        rows = await query.get_connection().select(query.to_sql(), query.get_bindings())
        return self.processor.process_select(query, rows)

    async def first(self, columns: Sequence[Any] | None = None) -> dict[str, Any] | None:
        rows = await self.clone().limit(1).get(columns)
        return rows[0] if rows else None

    async def first_or_fail(self, columns: Sequence[Any] | None = None) -> dict[str, Any]:
        """Like :meth:`first`, raising when there is no row.

        Raises:
            RecordNotFoundError: If the query returns no row.
        """
        row = await self.first(columns)
        if row is None:
            raise RecordNotFoundError(
                "No query results.", sql=self.to_sql(), bindings=self.get_bindings()
            )
        return row

    async def find(self, id: Any, columns: Sequence[Any] | None = None, key: str = "id") -> dict[str, Any] | None:
        return await self.clone().where(key, "=", id).first(columns)

    async def find_or_fail(self, id: Any, columns: Sequence[Any] | None = None, key: str = "id") -> dict[str, Any]:
        return await self.clone().where(key, "=", id).first_or_fail(columns)

    async def value(self, column: str) -> Any:
        """Return ``column`` of the first row, or ``None``."""
        row = await self.first([column])
        return row.get(column_key(column)) if row else None

    async def pluck(self, column: str, key: str | None = None) -> list[Any] | dict[Any, Any]:
        """Return one column as a list, or keyed by ``key`` as a dict."""
        rows = await self.get([column] if key is None else [column, key])
        value_key = column_key(column)
        if key is None:
            return [row[value_key] for row in rows]
        return {row[column_key(key)]: row[value_key] for row in rows}

    async def exists(self) -> bool:
        result = await self.get_connection().scalar(
            self.grammar.compile_exists(self), self.get_bindings()
        )
        return bool(result)

    async def doesnt_exist(self) -> bool:
        return not await self.exists()

    async def explain(self) -> list[dict[str, Any]]:
        sql = self.grammar.compile_explain(self.to_sql())
        return await self.get_connection().select(sql, self.get_bindings())

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def count(self, columns: Any = "*") -> int:
        return int(await self.aggregate("count", _as_list(columns)))

    async def min(self, column: str) -> Any:
        return await self.aggregate("min", [column])

    async def max(self, column: str) -> Any:
        return await self.aggregate("max", [column])

    async def sum(self, column: str) -> Any:
        return await self.aggregate("sum", [column])

    async def avg(self, column: str) -> Any:
        return await self.aggregate("avg", [column])

    average = avg

    async def aggregate(self, function: str, columns: Sequence[Any] = ("*",)) -> Any:
        """Run ``function(columns)`` over a clone of this query.

        Only the selected columns and the ``select`` bucket are dropped.
        Returns 0 when no row comes back.
        """
        query = self.clone_without(["columns"]).clone_without_bindings(["select"])
        query.columns = [Aggregate(function, tuple(columns))]
        rows = await query.get()
        if not rows:
            return 0
        return _to_number(next(iter(rows[0].values())))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_records(values: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        records = [dict(values)] if isinstance(values, Mapping) else [dict(v) for v in values]
        if records:
            columns = set(records[0])
            for record in records[1:]:
                if set(record) != columns:
                    raise InvalidArgumentError(
                        "Every inserted record must have the same columns.", "values"
                    )
        return records

    async def insert(self, values: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> bool:
        """Insert one record or many records with identical columns."""
        records = self._normalize_records(values)
        if not records:
            return True
        sql = self.grammar.compile_insert(self, records)
        return await self.get_connection().insert(
            sql, self.grammar.prepare_bindings_for_insert(records)
        )

    async def insert_get_id(self, values: Mapping[str, Any], sequence: str | None = None) -> Any:
        """Insert one record and return its generated id."""
        records = self._normalize_records(values)
        sql = self.grammar.compile_insert_get_id(self, records[0], sequence)
        bindings = self.grammar.prepare_bindings_for_insert(records)
        return await self.processor.process_insert_get_id(self, sql, bindings, sequence)

    async def insert_or_ignore(self, values: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> int:
        records = self._normalize_records(values)
        if not records:
            return 0
        sql = self.grammar.compile_insert_or_ignore(self, records)
        return await self.get_connection().affecting_statement(
            sql, self.grammar.prepare_bindings_for_insert(records)
        )

    async def upsert(
        self,
        values: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        unique_by: str | Sequence[str],
        update: Sequence[str] | None = None,
    ) -> int:
        """Insert records, updating ``update`` columns on a ``unique_by`` conflict.

        ``update`` defaults to every inserted column not in ``unique_by``.
        """
        records = self._normalize_records(values)
        if not records:
            return 0
        unique_by = _as_list(unique_by)
        if update is None:
            update = [column for column in records[0] if column not in unique_by]
        if not update:
            return await self.insert_or_ignore(records)
        sql = self.grammar.compile_upsert(self, records, unique_by, list(update))
        return await self.get_connection().affecting_statement(
            sql, self.grammar.prepare_bindings_for_insert(records)
        )

    async def update(self, values: Mapping[str, Any]) -> int:
        """Update matching rows; returns the affected row count."""
        sql = self.grammar.compile_update(self, values)
        bindings = self.grammar.prepare_bindings_for_update(self.bindings, values)
        return await self.get_connection().update(sql, bindings)

    async def update_or_insert(
        self, attributes: Mapping[str, Any], values: Mapping[str, Any] | None = None
    ) -> bool:
        """Update the row matching ``attributes`` or insert a new one."""
        values = dict(values or {})
        if not await self.clone().where(attributes).exists():
            return await self.insert({**attributes, **values})
        if not values:
            return True
        return bool(await self.clone().where(attributes).update(values))

    async def increment(
        self, column: str, amount: int | float = 1, extra: Mapping[str, Any] | None = None
    ) -> int:
        return await self.increment_each({column: amount}, extra)

    async def increment_each(
        self, columns: Mapping[str, int | float], extra: Mapping[str, Any] | None = None
    ) -> int:
        """Add each positive amount to its column.

        Raises:
            InvalidAmountError: If an amount is not a positive number.
        """
        return await self._adjust_each(columns, "+", extra)

    async def decrement(
        self, column: str, amount: int | float = 1, extra: Mapping[str, Any] | None = None
    ) -> int:
        return await self.decrement_each({column: amount}, extra)

    async def decrement_each(
        self, columns: Mapping[str, int | float], extra: Mapping[str, Any] | None = None
    ) -> int:
        return await self._adjust_each(columns, "-", extra)

    async def _adjust_each(
        self, columns: Mapping[str, int | float], sign: str, extra: Mapping[str, Any] | None
    ) -> int:
        values: dict[str, Any] = {}
        for column, amount in columns.items():
            if (
                isinstance(amount, bool)
                or not isinstance(amount, (int, float, Decimal))
                or amount <= 0
            ):
                raise InvalidAmountError(column, amount)
            values[column] = Expression(f"{self.grammar.wrap(column)} {sign} {amount}")
        return await self.update({**values, **(extra or {})})

    async def delete(self, id: Any = None) -> int:
        """Delete matching rows (or the row with ``id``); returns the affected count."""
        query = self if id is None else self.clone().where("id", "=", id)
        sql = self.grammar.compile_delete(query)
        bindings = self.grammar.prepare_bindings_for_delete(query.bindings)
        return await self.get_connection().delete(sql, bindings)

    async def truncate(self) -> None:
        for sql, bindings in self.grammar.compile_truncate(self).items():
            await self.get_connection().statement(sql, bindings)
