"""SQLite dialect grammar."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fluxql.compile.base import Grammar
from fluxql.compile.context import CompileContext
from fluxql.errors import CompilationError
from fluxql.query.predicates import (
    DateWhere,
    FullTextWhere,
    JsonContainsWhere,
    JsonLengthWhere,
)

if TYPE_CHECKING:
    from fluxql.query.builder import Builder

_STRFTIME_FORMATS = {
    "date": "%Y-%m-%d",
    "time": "%H:%M:%S",
    "day": "%d",
    "month": "%m",
    "year": "%Y",
}


class SQLiteGrammar(Grammar):
    """Compiles queries to SQLite.

    Parameter style: ``?`` – compatible with the stdlib ``sqlite3`` module.
    Row locks do not exist in SQLite, so lock clauses compile to nothing.
    """

    dialect_name = "sqlite"

    def _compile_limit(self, query: Builder, ctx: CompileContext) -> str:
        # SQLite requires LIMIT before OFFSET; -1 means unbounded.
        if query.limit_value is None and query.offset_value:
            return "limit -1"
        return super()._compile_limit(query, ctx)

    def _compile_lock(self, query: Builder, ctx: CompileContext) -> str:
        return ""

    def compile_random(self, seed: str | int = "") -> str:
        return "random()"

    def _where_date(self, query: Any, where: DateWhere, ctx: CompileContext) -> str:
        fmt = _STRFTIME_FORMATS[where.part]
        value = self.parameter(where.value, ctx)
        return (
            f"strftime('{fmt}', {self.wrap(where.column)}) {where.operator} cast({value} as text)"
        )

    def _where_json_contains(
        self, query: Any, where: JsonContainsWhere, ctx: CompileContext
    ) -> str:
        raise CompilationError(
            "This database engine does not support JSON contains operations.",
            clause="where",
        )

    def _where_json_length(self, query: Any, where: JsonLengthWhere, ctx: CompileContext) -> str:
        value = self.parameter(where.value, ctx)
        return f"json_array_length({self.wrap(where.column)}) {where.operator} {value}"

    def _where_fulltext(self, query: Any, where: FullTextWhere, ctx: CompileContext) -> str:
        raise CompilationError(
            "This database engine does not support fulltext search operations.",
            clause="where",
        )

    def compile_truncate(self, query: Builder) -> dict[str, list[Any]]:
        return {f"delete from {self.wrap_table(query.from_table)}": []}

    def compile_explain(self, sql: str) -> str:
        return f"explain query plan {sql}"
