"""fluxQL – a fluent SQL query builder and dialect compiler.

Build queries with chainable calls; compile them to dialect SQL plus an
ordered list of positional bindings; execute them through an async
connection.

Public API
----------
``connect``
    Create a connection from a ``ConnectionConfig`` or keyword options.

``Builder``
    The fluent query state.  ``to_sql()``, ``get_bindings()`` and
    ``compile()`` expose the compiled statement without a connection.

Re-exported types
-----------------
``Expression`` / ``raw``, ``JoinClause``, ``CompiledSQL``, the grammars,
``GrammarFactory``, ``ConnectionConfig``, ``Connection``,
``SQLiteConnection``, ``ConnectionFactory``, the pagination models, and all
error classes.

Extensibility
-------------
New dialects register a grammar (and optionally a processor)::

    from fluxql.compile.registry import GrammarFactory

    @GrammarFactory.register("oracle")
    class OracleGrammar(Grammar):
        ...

New drivers register a connection class with ``ConnectionFactory``.
"""
from __future__ import annotations

from typing import Any

from fluxql.compile.base import CompiledSQL, Grammar
from fluxql.compile.mysql import MySqlGrammar
from fluxql.compile.postgres import PostgresGrammar
from fluxql.compile.registry import GrammarFactory
from fluxql.compile.sqlite import SQLiteGrammar
from fluxql.query.processors import PostgresProcessor, Processor

# ---------------------------------------------------------------------------
# Register built-in grammars before ConnectionConfig validates driver names
# ---------------------------------------------------------------------------

GrammarFactory.register_class("generic", Grammar)
GrammarFactory.register_class("mysql", MySqlGrammar)
GrammarFactory.register_class("postgres", PostgresGrammar, PostgresProcessor)
GrammarFactory.register_class("sqlite", SQLiteGrammar)

from fluxql.config import ConnectionConfig  # noqa: E402
from fluxql.connection.base import Connection, QueryLogEntry  # noqa: E402
from fluxql.connection.factory import ConnectionFactory  # noqa: E402
from fluxql.connection.sqlite import SQLiteConnection  # noqa: E402
from fluxql.errors import (  # noqa: E402
    CompilationError,
    FluxQLError,
    InvalidAmountError,
    InvalidArgumentError,
    InvalidBindingTypeError,
    InvalidCursorError,
    MissingConnectionError,
    RecordNotFoundError,
)
from fluxql.query.builder import BINDING_TYPES, Builder  # noqa: E402
from fluxql.query.expression import Expression, raw  # noqa: E402
from fluxql.query.join_clause import JoinClause  # noqa: E402
from fluxql.query.pagination import (  # noqa: E402
    Cursor,
    CursorPage,
    LengthAwarePage,
    SimplePage,
)

ConnectionFactory.register_class("sqlite", SQLiteConnection)

__all__ = [
    "connect",
    # Query state
    "Builder",
    "BINDING_TYPES",
    "Expression",
    "raw",
    "JoinClause",
    # Compilation
    "CompiledSQL",
    "Grammar",
    "GrammarFactory",
    "MySqlGrammar",
    "PostgresGrammar",
    "SQLiteGrammar",
    "Processor",
    "PostgresProcessor",
    # Connections
    "Connection",
    "ConnectionConfig",
    "ConnectionFactory",
    "QueryLogEntry",
    "SQLiteConnection",
    # Pagination
    "Cursor",
    "CursorPage",
    "LengthAwarePage",
    "SimplePage",
    # Errors
    "FluxQLError",
    "InvalidArgumentError",
    "InvalidBindingTypeError",
    "InvalidAmountError",
    "RecordNotFoundError",
    "CompilationError",
    "InvalidCursorError",
    "MissingConnectionError",
]


def connect(config: ConnectionConfig | None = None, **options: Any) -> Connection:
    """Create a connection.

    Example::

        db = fluxql.connect(driver="sqlite", database=":memory:")
        rows = await db.table("users").where("active", True).get()

    Args:
        config: Connection settings; built from ``options`` when omitted.
        **options: ``ConnectionConfig`` fields.

    Raises:
        pydantic.ValidationError: If the options are invalid.
        FluxQLError: If no connection class is registered for the driver.
    """
    return ConnectionFactory.make(config, **options)
