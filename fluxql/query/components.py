"""Non-predicate query components: columns, sources, orders, groups, unions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Union

if TYPE_CHECKING:
    from fluxql.query.builder import Builder

Direction = Literal["asc", "desc"]


# ---------------------------------------------------------------------------
# SELECT columns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawColumn:
    """A ``select_raw`` fragment; its bindings live in the ``select`` bucket."""

    sql: str


@dataclass(frozen=True)
class Aggregate:
    """Synthetic aggregate column installed by ``count``/``sum``/... ."""

    function: str
    columns: tuple[Any, ...] = ("*",)


# ---------------------------------------------------------------------------
# FROM sources
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FromRaw:
    """A raw FROM fragment; its bindings live in the ``from`` bucket."""

    sql: str


@dataclass(frozen=True)
class FromSub:
    """A derived table: ``(<subquery>) as alias``."""

    query: Builder
    alias: str


# ---------------------------------------------------------------------------
# ORDER BY / GROUP BY
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderBy:
    column: Any
    direction: Direction = "asc"


@dataclass(frozen=True)
class RandomOrder:
    seed: str | int = ""


@dataclass(frozen=True)
class RawOrder:
    sql: str


Order = Union[OrderBy, RandomOrder, RawOrder]


@dataclass(frozen=True)
class RawGroup:
    sql: str


# ---------------------------------------------------------------------------
# UNION
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UnionEntry:
    """A query appended with ``union`` (``all=False``) or ``union all``."""

    query: Builder
    all: bool = False
