"""Predicate tree nodes shared by WHERE, HAVING and JOIN ... ON.

Every node is a small frozen dataclass carrying its connector (``boolean``,
``"and"`` or ``"or"``).  Grammars dispatch over the concrete node type with
a ``match`` statement, so adding a kind without teaching a grammar about it
fails loudly with :class:`~fluxql.errors.CompilationError` instead of being
silently dropped.

The connector of the first node in any compiled list is never rendered;
the clause keyword is chosen by position.

HAVING accepts only :class:`BasicWhere`, :class:`RawWhere` and
:class:`BetweenWhere`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Union

if TYPE_CHECKING:
    from fluxql.query.builder import Builder
    from fluxql.query.join_clause import JoinClause

Boolean = Literal["and", "or"]

#: Marks an argument that was not passed, so an explicit ``None`` stays a value.
MISSING: Any = object()
DatePart = Literal["date", "time", "day", "month", "year"]


@dataclass(frozen=True)
class BasicWhere:
    """``column <operator> value``."""

    column: Any
    operator: str
    value: Any
    boolean: Boolean = "and"


@dataclass(frozen=True)
class NotWhere:
    """``not column <operator> value``."""

    column: Any
    operator: str
    value: Any
    boolean: Boolean = "and"


@dataclass(frozen=True)
class NestedWhere:
    """A parenthesised group compiled from another predicate list.

    ``query`` is either a :class:`~fluxql.query.builder.Builder` (WHERE
    groups) or a :class:`~fluxql.query.join_clause.JoinClause` (ON groups);
    both expose a ``wheres`` list.
    """

    query: Builder | JoinClause
    boolean: Boolean = "and"
    negated: bool = False


@dataclass(frozen=True)
class InWhere:
    """``column [not] in (values...)``."""

    column: Any
    values: tuple[Any, ...]
    boolean: Boolean = "and"
    negated: bool = False


@dataclass(frozen=True)
class InSubWhere:
    """``column [not] in (<subquery>)``."""

    column: Any
    query: Builder
    boolean: Boolean = "and"
    negated: bool = False


@dataclass(frozen=True)
class NullWhere:
    """``column is [not] null``."""

    column: Any
    boolean: Boolean = "and"
    negated: bool = False


@dataclass(frozen=True)
class BetweenWhere:
    """``column [not] between low and high``."""

    column: Any
    values: tuple[Any, Any]
    boolean: Boolean = "and"
    negated: bool = False


@dataclass(frozen=True)
class ExistsWhere:
    """``[not] exists (<subquery>)``."""

    query: Builder
    boolean: Boolean = "and"
    negated: bool = False


@dataclass(frozen=True)
class SubWhere:
    """``column <operator> (<subquery>)``."""

    column: Any
    operator: str
    query: Builder
    boolean: Boolean = "and"


@dataclass(frozen=True)
class ColumnWhere:
    """``first <operator> second`` comparing two identifiers."""

    first: Any
    operator: str
    second: Any
    boolean: Boolean = "and"


@dataclass(frozen=True)
class RawWhere:
    """A raw fragment; ``?`` marks are rewritten to the dialect placeholder."""

    sql: str
    boolean: Boolean = "and"


@dataclass(frozen=True)
class DateWhere:
    """Compare a date part (``date``, ``time``, ``day``, ``month``, ``year``)."""

    part: DatePart
    column: Any
    operator: str
    value: Any
    boolean: Boolean = "and"


@dataclass(frozen=True)
class JsonContainsWhere:
    """JSON containment; ``negated`` renders the doesn't-contain form."""

    column: Any
    value: Any
    boolean: Boolean = "and"
    negated: bool = False


@dataclass(frozen=True)
class JsonLengthWhere:
    """Compare the length of a JSON array column."""

    column: Any
    operator: str
    value: Any
    boolean: Boolean = "and"


@dataclass(frozen=True)
class LikeWhere:
    """``column [not] like value``."""

    column: Any
    value: Any
    boolean: Boolean = "and"
    negated: bool = False


@dataclass(frozen=True)
class FullTextWhere:
    """Full-text match over one or more columns."""

    columns: tuple[Any, ...]
    value: Any
    boolean: Boolean = "and"
    language: str = "english"


Predicate = Union[
    BasicWhere,
    NotWhere,
    NestedWhere,
    InWhere,
    InSubWhere,
    NullWhere,
    BetweenWhere,
    ExistsWhere,
    SubWhere,
    ColumnWhere,
    RawWhere,
    DateWhere,
    JsonContainsWhere,
    JsonLengthWhere,
    LikeWhere,
    FullTextWhere,
]

#: Node kinds accepted by HAVING.
HavingPredicate = Union[BasicWhere, RawWhere, BetweenWhere]
