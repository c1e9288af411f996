"""PostgreSQL dialect grammar."""
from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from fluxql.compile.base import Grammar
from fluxql.compile.context import CompileContext
from fluxql.query.predicates import (
    BasicWhere,
    DateWhere,
    FullTextWhere,
    JsonContainsWhere,
    JsonLengthWhere,
    LikeWhere,
)

if TYPE_CHECKING:
    from fluxql.query.builder import Builder

# ``$12`` is one token; ``(?!\d)`` keeps ``$1`` from matching inside ``$12``.
_PLACEHOLDER_RE = re.compile(r"\$(\d+)(?!\d)")

_LIKE_OPERATORS = frozenset({"like", "not like", "ilike", "not ilike"})


class PostgresGrammar(Grammar):
    """Compiles queries to PostgreSQL.

    Parameter style: numbered ``$1, $2, ...`` placeholders, compatible with
    ``asyncpg`` positional execution.  Numbering is strictly increasing in
    textual order across the whole statement, including spliced subqueries.
    """

    dialect_name = "postgres"

    def placeholder(self, position: int) -> str:
        return f"${position}"

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def _where_basic(self, query: Any, where: BasicWhere, ctx: CompileContext) -> str:
        if where.operator.lower() not in _LIKE_OPERATORS:
            return super()._where_basic(query, where, ctx)
        # Pattern operators are only defined on text; cast both sides.
        column = f"CAST({self.wrap(where.column)} AS TEXT)"
        value = f"CAST({self.parameter(where.value, ctx)} AS TEXT)"
        return f"{column} {where.operator} {value}"

    def _where_like(self, query: Any, where: LikeWhere, ctx: CompileContext) -> str:
        operator = "not like" if where.negated else "like"
        column = f"CAST({self.wrap(where.column)} AS TEXT)"
        value = f"CAST({self.parameter(where.value, ctx)} AS TEXT)"
        return f"{column} {operator} {value}"

    def _where_date(self, query: Any, where: DateWhere, ctx: CompileContext) -> str:
        column = self.wrap(where.column)
        if where.part in ("date", "time"):
            expression = f"{column}::{where.part}"
        else:
            expression = f"extract({where.part} from {column})"
        return f"{expression} {where.operator} {self.parameter(where.value, ctx)}"

    def _where_json_contains(
        self, query: Any, where: JsonContainsWhere, ctx: CompileContext
    ) -> str:
        sql = f"({self.wrap(where.column)})::jsonb @> {self.parameter(where.value, ctx)}"
        return f"not {sql}" if where.negated else sql

    def _where_json_length(self, query: Any, where: JsonLengthWhere, ctx: CompileContext) -> str:
        value = self.parameter(where.value, ctx)
        return f"jsonb_array_length(({self.wrap(where.column)})::jsonb) {where.operator} {value}"

    def _where_fulltext(self, query: Any, where: FullTextWhere, ctx: CompileContext) -> str:
        language = where.language.replace("'", "''")
        vectors = " || ".join(
            f"to_tsvector('{language}', {self.wrap(column)})" for column in where.columns
        )
        value = self.parameter(where.value, ctx)
        return f"({vectors}) @@ plainto_tsquery('{language}', {value})"

    def compile_random(self, seed: str | int = "") -> str:
        return "random()"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def compile_insert_get_id(
        self,
        query: Builder,
        values: Mapping[str, Any],
        sequence: str | None = None,
    ) -> str:
        return f"{self.compile_insert(query, [values])} returning {self.wrap(sequence or 'id')}"

    def compile_insert_or_ignore(
        self, query: Builder, values: Sequence[Mapping[str, Any]]
    ) -> str:
        return f"{self.compile_insert(query, values)} on conflict do nothing"

    def compile_truncate(self, query: Builder) -> dict[str, list[Any]]:
        return {f"truncate {self.wrap_table(query.from_table)} restart identity cascade": []}

    # ------------------------------------------------------------------
    # Debug interpolation
    # ------------------------------------------------------------------

    def substitute_bindings_into_raw_sql(self, sql: str, bindings: Sequence[Any]) -> str:
        """Replace each whole ``$n`` token with the n-th binding."""

        def replace(match: re.Match[str]) -> str:
            index = int(match.group(1)) - 1
            if 0 <= index < len(bindings):
                return self.escape(bindings[index])
            return match.group(0)

        return _PLACEHOLDER_RE.sub(replace, sql)

    def _escape_bool(self, value: bool) -> str:
        return "true" if value else "false"
