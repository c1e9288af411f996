"""Connection port consumed by the query builder.

A :class:`Connection` executes compiled ``(sql, bindings)`` pairs.  Concrete
adapters implement the abstract coroutine methods; the base class supplies
builder construction, the grammar and processor for the configured driver,
and query logging.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from fluxql.compile.base import Grammar
from fluxql.compile.registry import GrammarFactory
from fluxql.config import ConnectionConfig
from fluxql.query.builder import Builder
from fluxql.query.expression import Expression
from fluxql.query.processors import Processor

logger = logging.getLogger(__name__)


@dataclass
class QueryLogEntry:
    """One executed statement recorded by the query log."""

    sql: str
    bindings: list[Any] = field(default_factory=list)
    time_ms: float = 0.0


class Connection(ABC):
    """Abstract database connection.

    Args:
        config: Connection settings; ``config.driver`` selects the grammar.
    """

    def __init__(self, config: ConnectionConfig) -> None:
        self.config = config
        self._query_grammar = GrammarFactory.create(config.driver, table_prefix=config.prefix)
        self._post_processor = GrammarFactory.create_processor(config.driver)
        self._logging_queries = config.log_queries
        self._query_log: list[QueryLogEntry] = []

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def driver_name(self) -> str:
        return self.config.driver

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def query(self) -> Builder:
        return Builder(self, self._query_grammar, self._post_processor)

    def table(self, table: str | Expression, alias: str | None = None) -> Builder:
        """Begin a fluent query against ``table``."""
        return self.query().from_(table, alias)

    def raw(self, value: Any) -> Expression:
        return Expression(value)

    def get_query_grammar(self) -> Grammar:
        return self._query_grammar

    def get_post_processor(self) -> Processor:
        return self._post_processor

    def get_table_prefix(self) -> str:
        return self._query_grammar.table_prefix

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def select_one(self, sql: str, bindings: Sequence[Any] = ()) -> dict[str, Any] | None:
        rows = await self.select(sql, bindings)
        return rows[0] if rows else None

    async def scalar(self, sql: str, bindings: Sequence[Any] = ()) -> Any:
        """Return the first column of the first row, or ``None``."""
        row = await self.select_one(sql, bindings)
        return next(iter(row.values())) if row else None

    @abstractmethod
    async def select(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a select statement and return its rows as dicts."""

    @abstractmethod
    async def insert(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        """Run an insert statement."""

    @abstractmethod
    async def update(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        """Run an update statement and return the affected row count."""

    @abstractmethod
    async def delete(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        """Run a delete statement and return the affected row count."""

    @abstractmethod
    async def statement(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        """Run a statement that returns no rows."""

    @abstractmethod
    async def affecting_statement(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        """Run a statement and return the affected row count."""

    async def last_insert_id(self) -> Any:
        """Return the id generated by the last insert, when the driver exposes one."""
        return None

    async def disconnect(self) -> None:
        return None

    # ------------------------------------------------------------------
    # Query log
    # ------------------------------------------------------------------

    def log_query(self, sql: str, bindings: Sequence[Any], time_ms: float) -> None:
        logger.debug("[%s] %s %s (%.2f ms)", self.name, sql, list(bindings), time_ms)
        if self._logging_queries:
            self._query_log.append(QueryLogEntry(sql, list(bindings), time_ms))

    def enable_query_log(self) -> None:
        self._logging_queries = True

    def disable_query_log(self) -> None:
        self._logging_queries = False

    def is_logging_queries(self) -> bool:
        return self._logging_queries

    def get_query_log(self) -> list[QueryLogEntry]:
        return list(self._query_log)

    def flush_query_log(self) -> None:
        self._query_log.clear()
