"""One JOIN and its ON-condition tree.

A :class:`JoinClause` reuses the WHERE node shapes (``ColumnWhere``,
``BasicWhere``, ``NestedWhere``) scoped to the ON clause.  Callable-based
joins receive a fresh ``JoinClause`` directly::

    query.join("contacts", lambda join: (
        join.on("users.id", "=", "contacts.user_id")
            .or_on("users.id", "=", "contacts.owner_id")
    ))
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal

from fluxql.errors import InvalidArgumentError
from fluxql.query.expression import Expression
from fluxql.query.predicates import (
    MISSING,
    BasicWhere,
    Boolean,
    ColumnWhere,
    NestedWhere,
    NullWhere,
    Predicate,
)

JoinType = Literal["inner", "left", "right", "cross"]

JOIN_TYPES: tuple[str, ...] = ("inner", "left", "right", "cross")


class JoinClause:
    """One ``<type> join <table> on ...`` entry.

    Attributes:
        table: Joined table (may carry ``as alias``) or a literal marker.
        type: ``inner``, ``left``, ``right`` or ``cross``.
        wheres: ON-condition nodes; always empty for cross joins.
    """

    def __init__(self, table: str | Expression, type: JoinType = "inner") -> None:
        self.table = table
        self.type = type
        self.wheres: list[Predicate] = []
        self.bindings: list[Any] = []

    def on(
        self,
        first: Any,
        operator: Any = MISSING,
        second: Any = MISSING,
        boolean: Boolean = "and",
    ) -> JoinClause:
        """Add a column-to-column ON condition.

        ``on("a.id", "b.a_id")`` is shorthand for ``on("a.id", "=", "b.a_id")``.

        Raises:
            InvalidArgumentError: If the second column is missing or ``None``.
        """
        if callable(first):
            return self.on_nested(first, boolean)
        operator, second = _operator_and_value(operator, second)
        if second is None:
            raise InvalidArgumentError(
                "A join condition compares two columns; use where() for null checks.", "second"
            )
        self.wheres.append(ColumnWhere(first, operator, second, boolean))
        return self

    def or_on(self, first: Any, operator: Any = MISSING, second: Any = MISSING) -> JoinClause:
        return self.on(first, operator, second, "or")

    def on_nested(
        self,
        callback: Callable[[JoinClause], Any],
        boolean: Boolean = "and",
    ) -> JoinClause:
        """Add a parenthesised group of ON conditions built by ``callback``."""
        join = JoinClause(self.table, self.type)
        callback(join)
        if join.wheres:
            self.wheres.append(NestedWhere(join, boolean))
            self.bindings.extend(join.bindings)
        return self

    def where(
        self,
        first: Any,
        operator: Any = MISSING,
        second: Any = MISSING,
        boolean: Boolean = "and",
    ) -> JoinClause:
        """Add an ON condition comparing a column against a bound value.

        A ``None`` value with ``=``/``!=``/``<>`` becomes ``is [not] null``.
        """
        operator, second = _operator_and_value(operator, second)
        if second is None and operator in ("=", "!=", "<>"):
            self.wheres.append(NullWhere(first, boolean, negated=operator != "="))
            return self
        self.wheres.append(BasicWhere(first, operator, second, boolean))
        if not isinstance(second, Expression):
            self.bindings.append(second)
        return self

    def or_where(self, first: Any, operator: Any = MISSING, second: Any = MISSING) -> JoinClause:
        return self.where(first, operator, second, "or")

    def get_bindings(self) -> list[Any]:
        return list(self.bindings)


def _operator_and_value(operator: Any, value: Any) -> tuple[str, Any]:
    if value is MISSING:
        if operator is MISSING:
            raise InvalidArgumentError("A join condition needs a value to compare.", "second")
        return "=", operator
    return operator.lower() if isinstance(operator, str) else operator, value

