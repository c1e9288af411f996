"""MySQL dialect grammar."""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from fluxql.compile.base import Grammar
from fluxql.compile.context import CompileContext

if TYPE_CHECKING:
    from fluxql.query.builder import Builder

# MySQL has no "offset without limit"; this is the documented max row count.
_MAX_ROWS = 18446744073709551615


class MySqlGrammar(Grammar):
    """Compiles queries to MySQL.

    Parameter style: ``?``.  Identifiers are quoted with backticks.
    """

    dialect_name = "mysql"

    def wrap_value(self, value: str) -> str:
        if value == "*":
            return value
        escaped = value.replace("`", "``")
        return f"`{escaped}`"

    def compile_random(self, seed: str | int = "") -> str:
        return f"RAND({seed})"

    def _compile_limit(self, query: Builder, ctx: CompileContext) -> str:
        if query.limit_value is None and query.offset_value:
            return f"limit {_MAX_ROWS}"
        return super()._compile_limit(query, ctx)

    def _compile_lock(self, query: Builder, ctx: CompileContext) -> str:
        if query.lock_mode is False:
            return "lock in share mode"
        return super()._compile_lock(query, ctx)

    def compile_insert_or_ignore(
        self, query: Builder, values: Sequence[Mapping[str, Any]]
    ) -> str:
        sql = self.compile_insert(query, values)
        return "insert ignore" + sql[len("insert"):]

    def compile_upsert(
        self,
        query: Builder,
        values: Sequence[Mapping[str, Any]],
        unique_by: Sequence[str],
        update: Sequence[str],
    ) -> str:
        # MySQL resolves the conflict target from the table's unique keys.
        sql = self.compile_insert(query, values)
        updates = ", ".join(
            f"{self.wrap(column)} = values({self.wrap(column)})" for column in update
        )
        return f"{sql} on duplicate key update {updates}"
