"""Grammar abstractions: CompiledSQL and the base Grammar.

The Template Method pattern (GoF) is used:

- ``Grammar`` defines the compile pipeline: an ordered list of per-component
  compilers for SELECT, plus INSERT / UPDATE / DELETE / upsert / truncate
  entry points.
- ``MySqlGrammar``, ``PostgresGrammar`` and ``SQLiteGrammar`` override the
  dialect-specific steps (identifier quoting, placeholder style, pattern
  match casts, RETURNING, date and JSON functions).

The base grammar doubles as the *generic* dialect: ``"``-quoted identifiers
and ``?`` placeholders.

Grammars hold no per-query state.  Every public ``compile_*`` entry point
creates its own :class:`~fluxql.compile.context.CompileContext` and threads
it through the component compilers.  Subqueries are compiled as independent
fragments numbered from the enclosing counter and spliced in by
:meth:`Grammar.splice`; their text is never rewritten.
"""
from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar

from fluxql.compile.context import CompiledFragment, CompileContext
from fluxql.errors import CompilationError
from fluxql.query.components import (
    Aggregate,
    FromRaw,
    FromSub,
    OrderBy,
    RandomOrder,
    RawColumn,
    RawGroup,
    RawOrder,
)
from fluxql.query.expression import Expression
from fluxql.query.predicates import (
    BasicWhere,
    BetweenWhere,
    ColumnWhere,
    DateWhere,
    ExistsWhere,
    FullTextWhere,
    InSubWhere,
    InWhere,
    JsonContainsWhere,
    JsonLengthWhere,
    LikeWhere,
    NestedWhere,
    NotWhere,
    NullWhere,
    RawWhere,
    SubWhere,
)

if TYPE_CHECKING:
    from fluxql.query.builder import Builder
    from fluxql.query.join_clause import JoinClause

_ALIAS_RE = re.compile(r"\s+as\s+", re.IGNORECASE)
_QMARK_RE = re.compile(r"\?")

ConditionCompiler = Callable[[Any, Any, CompileContext], str]


@dataclass
class CompiledSQL:
    """The output of compiling a query.

    Attributes:
        sql: The compiled SQL string with dialect placeholders.
        bindings: Positional values, in placeholder order.
        dialect: The grammar's dialect name.
    """

    sql: str
    bindings: list[Any] = field(default_factory=list)
    dialect: str = "generic"


class Grammar:
    """Compiles query state into generic SQL.

    Args:
        table_prefix: Prefix prepended to every wrapped table name.
    """

    dialect_name: ClassVar[str] = "generic"

    def __init__(self, table_prefix: str = "") -> None:
        self._table_prefix = table_prefix

    @property
    def table_prefix(self) -> str:
        return self._table_prefix

    def set_table_prefix(self, prefix: str) -> Grammar:
        self._table_prefix = prefix
        return self

    # ------------------------------------------------------------------
    # Identifier wrapping
    # ------------------------------------------------------------------

    def wrap_table(self, table: Any) -> str:
        """Wrap a table name, applying the table prefix."""
        if isinstance(table, Expression):
            return table.get_value()
        return self.wrap(self._table_prefix + str(table))

    def wrap(self, value: Any) -> str:
        """Wrap a (possibly dotted, possibly aliased) identifier.

        ``users.id`` becomes ``"users"."id"``; ``users.name as n`` becomes
        ``"users"."name" as "n"``.  Literal markers are returned verbatim.
        """
        if isinstance(value, Expression):
            return value.get_value()
        value = str(value)
        if _ALIAS_RE.search(value):
            return self._wrap_aliased_value(value)
        return self._wrap_segments(value.split("."))

    def _wrap_aliased_value(self, value: str) -> str:
        expression, alias = _ALIAS_RE.split(value, maxsplit=1)
        return f"{self.wrap(expression)} as {self.wrap_value(alias)}"

    def _wrap_segments(self, segments: list[str]) -> str:
        return ".".join(self.wrap_value(segment) for segment in segments)

    def wrap_value(self, value: str) -> str:
        """Quote a single identifier segment."""
        if value == "*":
            return value
        escaped = value.replace('"', '""')
        return f'"{escaped}"'

    def columnize(self, columns: Iterable[Any]) -> str:
        return ", ".join(self.wrap(column) for column in columns)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def placeholder(self, position: int) -> str:
        """Return the placeholder token for the 1-based ``position``."""
        return "?"

    def parameter(self, value: Any, ctx: CompileContext) -> str:
        """Return the placeholder for ``value``, or a literal marker verbatim."""
        if isinstance(value, Expression):
            return value.get_value()
        return self.placeholder(ctx.next_placeholder())

    def parameterize(self, values: Iterable[Any], ctx: CompileContext) -> str:
        return ", ".join(self.parameter(value, ctx) for value in values)

    def compile_raw(self, sql: str, ctx: CompileContext) -> str:
        """Rewrite each ``?`` in a raw fragment, left to right, for this dialect."""
        return _QMARK_RE.sub(lambda _match: self.placeholder(ctx.next_placeholder()), sql)

    # ------------------------------------------------------------------
    # Subqueries
    # ------------------------------------------------------------------

    def compile_select_fragment(self, query: Builder, start: int = 0) -> CompiledFragment:
        """Compile ``query`` with numbering continuing after ``start`` placeholders.

        The fragment reports how many placeholders it emitted itself.
        """
        ctx = CompileContext(placeholders=start)
        sql = self._compile_select(query, ctx)
        return CompiledFragment(sql=sql, placeholders=ctx.placeholders - start)

    def compile_subquery(self, query: Builder, ctx: CompileContext) -> str:
        return self.splice(self.compile_select_fragment(query, start=ctx.placeholders), ctx)

    def splice(self, fragment: CompiledFragment, ctx: CompileContext) -> str:
        """Embed a fragment numbered from the current counter; its text is used as is."""
        ctx.advance(fragment.placeholders)
        return fragment.sql

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def compile_select(self, query: Builder) -> str:
        """Compile a select query into SQL."""
        return self.compile_select_fragment(query).sql

    def _compile_select(self, query: Builder, ctx: CompileContext) -> str:
        if query.unions:
            return self._compile_union_aggregate(query, ctx)
        return self._compile_components(query, ctx)

    def _compile_components(self, query: Builder, ctx: CompileContext) -> str:
        compilers = (
            self._compile_columns,
            self._compile_from,
            self._compile_joins,
            self._compile_wheres,
            self._compile_groups,
            self._compile_havings,
            self._compile_orders,
            self._compile_limit,
            self._compile_offset,
            self._compile_lock,
        )
        parts = []
        for compile_component in compilers:
            sql = compile_component(query, ctx)
            if sql:
                parts.append(sql)
        return " ".join(parts)

    def _compile_union_aggregate(self, query: Builder, ctx: CompileContext) -> str:
        # The component list never includes unions, so this is the base
        # query with its unions left out.
        sql = self._compile_components(query, ctx)
        for union in query.unions:
            keyword = "union all" if union.all else "union"
            sql += f" {keyword} {self.compile_subquery(union.query, ctx)}"
        if query.union_orders:
            sql += f" {self._compile_order_list(query.union_orders, ctx)}"
        return sql

    def _compile_columns(self, query: Builder, ctx: CompileContext) -> str:
        columns = query.columns or ["*"]
        if isinstance(columns[0], Aggregate):
            return self._compile_aggregate(query, columns[0])
        select = "select distinct" if query.is_distinct else "select"
        return f"{select} {', '.join(self._compile_column(c, ctx) for c in columns)}"

    def _compile_column(self, column: Any, ctx: CompileContext) -> str:
        if isinstance(column, RawColumn):
            return self.compile_raw(column.sql, ctx)
        return self.wrap(column)

    def _compile_aggregate(self, query: Builder, aggregate: Aggregate) -> str:
        column = self.columnize(aggregate.columns)
        if query.is_distinct and column != "*":
            column = f"distinct {column}"
        return f"select {aggregate.function}({column}) as aggregate"

    def _compile_from(self, query: Builder, ctx: CompileContext) -> str:
        source = query.from_table
        if source is None:
            return ""
        if isinstance(source, FromRaw):
            return f"from {self.compile_raw(source.sql, ctx)}"
        if isinstance(source, FromSub):
            subquery = self.compile_subquery(source.query, ctx)
            return f"from ({subquery}) as {self.wrap_value(source.alias)}"
        table = self.wrap_table(source)
        if query.from_alias:
            table = f"{table} as {self.wrap_value(query.from_alias)}"
        return f"from {table}"

    def _compile_joins(self, query: Builder, ctx: CompileContext) -> str:
        return " ".join(self._compile_join(query, join, ctx) for join in query.joins)

    def _compile_join(self, query: Builder, join: JoinClause, ctx: CompileContext) -> str:
        table = self.wrap_table(join.table)
        if join.type == "cross" or not join.wheres:
            return f"{join.type} join {table}"
        return f"{join.type} join {table} on {self._compile_conditions(query, join.wheres, ctx)}"

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def _compile_wheres(self, query: Builder, ctx: CompileContext) -> str:
        if not query.wheres:
            return ""
        return f"where {self._compile_conditions(query, query.wheres, ctx)}"

    def _compile_conditions(
        self,
        query: Any,
        conditions: Sequence[Any],
        ctx: CompileContext,
        compile_one: ConditionCompiler | None = None,
    ) -> str:
        """Join compiled conditions, eliding the first node's connector."""
        compile_one = compile_one or self.compile_where
        parts: list[str] = []
        for index, condition in enumerate(conditions):
            sql = compile_one(query, condition, ctx)
            parts.append(sql if index == 0 else f"{condition.boolean} {sql}")
        return " ".join(parts)

    def compile_where(self, query: Any, where: Any, ctx: CompileContext) -> str:
        """Compile one predicate node (without its connector)."""
        match where:
            case BasicWhere():
                return self._where_basic(query, where, ctx)
            case NotWhere():
                return self._where_not(query, where, ctx)
            case NestedWhere():
                return self._where_nested(query, where, ctx)
            case InWhere():
                return self._where_in(query, where, ctx)
            case InSubWhere():
                return self._where_in_sub(query, where, ctx)
            case NullWhere():
                return self._where_null(query, where, ctx)
            case BetweenWhere():
                return self._where_between(query, where, ctx)
            case ExistsWhere():
                return self._where_exists(query, where, ctx)
            case SubWhere():
                return self._where_sub(query, where, ctx)
            case ColumnWhere():
                return self._where_column(query, where, ctx)
            case RawWhere():
                return self.compile_raw(where.sql, ctx)
            case DateWhere():
                return self._where_date(query, where, ctx)
            case JsonContainsWhere():
                return self._where_json_contains(query, where, ctx)
            case JsonLengthWhere():
                return self._where_json_length(query, where, ctx)
            case LikeWhere():
                return self._where_like(query, where, ctx)
            case FullTextWhere():
                return self._where_fulltext(query, where, ctx)
            case _:
                raise CompilationError(
                    f"Unknown where node: {type(where).__name__}", clause="where"
                )

    def _where_basic(self, query: Any, where: BasicWhere, ctx: CompileContext) -> str:
        value = self.parameter(where.value, ctx)
        return f"{self.wrap(where.column)} {where.operator} {value}"

    def _where_not(self, query: Any, where: NotWhere, ctx: CompileContext) -> str:
        value = self.parameter(where.value, ctx)
        return f"not {self.wrap(where.column)} {where.operator} {value}"

    def _where_nested(self, query: Any, where: NestedWhere, ctx: CompileContext) -> str:
        nested = self._compile_conditions(where.query, where.query.wheres, ctx)
        return f"not ({nested})" if where.negated else f"({nested})"

    def _where_in(self, query: Any, where: InWhere, ctx: CompileContext) -> str:
        if not where.values:
            return "1 = 1" if where.negated else "0 = 1"
        operator = "not in" if where.negated else "in"
        return f"{self.wrap(where.column)} {operator} ({self.parameterize(where.values, ctx)})"

    def _where_in_sub(self, query: Any, where: InSubWhere, ctx: CompileContext) -> str:
        operator = "not in" if where.negated else "in"
        return f"{self.wrap(where.column)} {operator} ({self.compile_subquery(where.query, ctx)})"

    def _where_null(self, query: Any, where: NullWhere, ctx: CompileContext) -> str:
        return f"{self.wrap(where.column)} is {'not null' if where.negated else 'null'}"

    def _where_between(self, query: Any, where: BetweenWhere, ctx: CompileContext) -> str:
        return self._between(self.wrap(where.column), where, ctx)

    def _between(self, column: str, where: BetweenWhere, ctx: CompileContext) -> str:
        operator = "not between" if where.negated else "between"
        low = self.parameter(where.values[0], ctx)
        high = self.parameter(where.values[1], ctx)
        return f"{column} {operator} {low} and {high}"

    def _where_exists(self, query: Any, where: ExistsWhere, ctx: CompileContext) -> str:
        keyword = "not exists" if where.negated else "exists"
        return f"{keyword} ({self.compile_subquery(where.query, ctx)})"

    def _where_sub(self, query: Any, where: SubWhere, ctx: CompileContext) -> str:
        subquery = self.compile_subquery(where.query, ctx)
        return f"{self.wrap(where.column)} {where.operator} ({subquery})"

    def _where_column(self, query: Any, where: ColumnWhere, ctx: CompileContext) -> str:
        return f"{self.wrap(where.first)} {where.operator} {self.wrap(where.second)}"

    def _where_date(self, query: Any, where: DateWhere, ctx: CompileContext) -> str:
        value = self.parameter(where.value, ctx)
        return f"{where.part}({self.wrap(where.column)}) {where.operator} {value}"

    def _where_json_contains(
        self, query: Any, where: JsonContainsWhere, ctx: CompileContext
    ) -> str:
        sql = f"json_contains({self.wrap(where.column)}, {self.parameter(where.value, ctx)})"
        return f"not {sql}" if where.negated else sql

    def _where_json_length(self, query: Any, where: JsonLengthWhere, ctx: CompileContext) -> str:
        value = self.parameter(where.value, ctx)
        return f"json_length({self.wrap(where.column)}) {where.operator} {value}"

    def _where_like(self, query: Any, where: LikeWhere, ctx: CompileContext) -> str:
        operator = "not like" if where.negated else "like"
        return f"{self.wrap(where.column)} {operator} {self.parameter(where.value, ctx)}"

    def _where_fulltext(self, query: Any, where: FullTextWhere, ctx: CompileContext) -> str:
        columns = self.columnize(where.columns)
        value = self.parameter(where.value, ctx)
        return f"match ({columns}) against ({value} in natural language mode)"

    # ------------------------------------------------------------------
    # GROUP BY / HAVING
    # ------------------------------------------------------------------

    def _compile_groups(self, query: Builder, ctx: CompileContext) -> str:
        if not query.groups:
            return ""
        groups = ", ".join(
            self.compile_raw(group.sql, ctx) if isinstance(group, RawGroup) else self.wrap(group)
            for group in query.groups
        )
        return f"group by {groups}"

    def _compile_havings(self, query: Builder, ctx: CompileContext) -> str:
        if not query.havings:
            return ""
        sql = self._compile_conditions(query, query.havings, ctx, self.compile_having)
        return f"having {sql}"

    def compile_having(self, query: Builder, having: Any, ctx: CompileContext) -> str:
        """Compile one HAVING node; only Basic, Raw and Between are accepted."""
        match having:
            case RawWhere():
                return self.compile_raw(having.sql, ctx)
            case BetweenWhere():
                return self._between(self._having_column(query, having.column), having, ctx)
            case BasicWhere():
                column = self._having_column(query, having.column)
                return f"{column} {having.operator} {self.parameter(having.value, ctx)}"
            case _:
                raise CompilationError(
                    f"Unsupported having node: {type(having).__name__}", clause="having"
                )

    def _having_column(self, query: Builder, column: Any) -> str:
        """Resolve a select alias to its expression; leave function calls unwrapped."""
        if isinstance(column, str):
            if column in query.select_aliases:
                return query.select_aliases[column]
            if "(" in column:
                return column
        return self.wrap(column)

    # ------------------------------------------------------------------
    # ORDER BY / LIMIT / OFFSET / LOCK
    # ------------------------------------------------------------------

    def _compile_orders(self, query: Builder, ctx: CompileContext) -> str:
        if not query.orders:
            return ""
        return self._compile_order_list(query.orders, ctx)

    def _compile_order_list(self, orders: Sequence[Any], ctx: CompileContext) -> str:
        return f"order by {', '.join(self._compile_order(order, ctx) for order in orders)}"

    def _compile_order(self, order: Any, ctx: CompileContext) -> str:
        match order:
            case OrderBy():
                return f"{self.wrap(order.column)} {order.direction}"
            case RandomOrder():
                return self.compile_random(order.seed)
            case RawOrder():
                return self.compile_raw(order.sql, ctx)
            case _:
                raise CompilationError(
                    f"Unknown order entry: {type(order).__name__}", clause="order"
                )

    def compile_random(self, seed: str | int = "") -> str:
        return "RANDOM()"

    def _compile_limit(self, query: Builder, ctx: CompileContext) -> str:
        if query.limit_value is None:
            return ""
        return f"limit {int(query.limit_value)}"

    def _compile_offset(self, query: Builder, ctx: CompileContext) -> str:
        if not query.offset_value:
            return ""
        return f"offset {int(query.offset_value)}"

    def _compile_lock(self, query: Builder, ctx: CompileContext) -> str:
        lock = query.lock_mode
        if lock is None:
            return ""
        if isinstance(lock, str):
            return lock
        return "for update" if lock else "for share"

    # ------------------------------------------------------------------
    # EXISTS / EXPLAIN
    # ------------------------------------------------------------------

    def compile_exists(self, query: Builder) -> str:
        select = self._compile_select(query, CompileContext())
        return f"select exists({select}) as {self.wrap_value('exists')}"

    def compile_explain(self, sql: str) -> str:
        return f"explain {sql}"

    # ------------------------------------------------------------------
    # INSERT / UPDATE / DELETE
    # ------------------------------------------------------------------

    def compile_insert(self, query: Builder, values: Sequence[Mapping[str, Any]]) -> str:
        """Compile a multi-row insert; column order follows the first record."""
        return self._compile_insert(query, values, CompileContext())

    def _compile_insert(
        self,
        query: Builder,
        values: Sequence[Mapping[str, Any]],
        ctx: CompileContext,
    ) -> str:
        table = self.wrap_table(query.from_table)
        if not values or not values[0]:
            return f"insert into {table} default values"
        columns = list(values[0])
        rows = ", ".join(
            f"({self.parameterize([record[column] for column in columns], ctx)})"
            for record in values
        )
        return f"insert into {table} ({self.columnize(columns)}) values {rows}"

    def compile_insert_get_id(
        self,
        query: Builder,
        values: Mapping[str, Any],
        sequence: str | None = None,
    ) -> str:
        """Plain insert; the id is read back through the driver side channel."""
        return self.compile_insert(query, [values])

    def compile_insert_or_ignore(
        self, query: Builder, values: Sequence[Mapping[str, Any]]
    ) -> str:
        sql = self.compile_insert(query, values)
        return "insert or ignore" + sql[len("insert"):]

    def compile_upsert(
        self,
        query: Builder,
        values: Sequence[Mapping[str, Any]],
        unique_by: Sequence[str],
        update: Sequence[str],
    ) -> str:
        sql = self.compile_insert(query, values)
        columns = self.columnize(unique_by)
        updates = ", ".join(
            f"{self.wrap(column)} = {self.wrap_value('excluded')}.{self.wrap(column)}"
            for column in update
        )
        return f"{sql} on conflict ({columns}) do update set {updates}"

    def compile_update(self, query: Builder, values: Mapping[str, Any]) -> str:
        self._assert_no_joins(query, "update")
        ctx = CompileContext()
        table = self.wrap_table(query.from_table)
        columns = ", ".join(
            f"{self.wrap(key)} = {self.parameter(value, ctx)}" for key, value in values.items()
        )
        where = self._compile_wheres(query, ctx)
        return f"update {table} set {columns} {where}".strip()

    def compile_delete(self, query: Builder) -> str:
        self._assert_no_joins(query, "delete")
        table = self.wrap_table(query.from_table)
        where = self._compile_wheres(query, CompileContext())
        return f"delete from {table} {where}".strip()

    def compile_truncate(self, query: Builder) -> dict[str, list[Any]]:
        """Return the statements (with bindings) that empty the table."""
        return {f"truncate table {self.wrap_table(query.from_table)}": []}

    @staticmethod
    def _assert_no_joins(query: Builder, statement: str) -> None:
        if query.joins:
            raise CompilationError(
                f"Joins are not supported in {statement} statements.", clause=statement
            )

    def prepare_bindings_for_insert(self, values: Sequence[Mapping[str, Any]]) -> list[Any]:
        if not values:
            return []
        columns = list(values[0])
        return [
            record[column]
            for record in values
            for column in columns
            if not isinstance(record[column], Expression)
        ]

    def prepare_bindings_for_update(
        self,
        bindings: Mapping[str, list[Any]],
        values: Mapping[str, Any],
    ) -> list[Any]:
        updates = [value for value in values.values() if not isinstance(value, Expression)]
        return [*updates, *bindings["where"]]

    def prepare_bindings_for_delete(self, bindings: Mapping[str, list[Any]]) -> list[Any]:
        return list(bindings["where"])

    # ------------------------------------------------------------------
    # Debug interpolation
    # ------------------------------------------------------------------

    def substitute_bindings_into_raw_sql(self, sql: str, bindings: Sequence[Any]) -> str:
        """Inline ``bindings`` into ``sql`` for display.  Never execute the result."""
        values = iter(bindings)
        result: list[str] = []
        in_string = False
        for char in sql:
            if char == "'":
                in_string = not in_string
            if char == "?" and not in_string:
                value = next(values, _NO_BINDING)
                result.append(char if value is _NO_BINDING else self.escape(value))
            else:
                result.append(char)
        return "".join(result)

    def escape(self, value: Any) -> str:
        """Render ``value`` as a SQL literal (debug output only)."""
        if value is None:
            return "null"
        if isinstance(value, Expression):
            return value.get_value()
        if isinstance(value, bool):
            return self._escape_bool(value)
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, bytes):
            return f"x'{value.hex()}'"
        if isinstance(value, datetime):
            value = value.isoformat(sep=" ")
        elif isinstance(value, (date, time)):
            value = value.isoformat()
        escaped = str(value).replace("'", "''")
        return f"'{escaped}'"

    def _escape_bool(self, value: bool) -> str:
        return "1" if value else "0"


_NO_BINDING = object()
