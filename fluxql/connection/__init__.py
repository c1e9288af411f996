"""Connection port and adapters."""
from __future__ import annotations

from fluxql.connection.base import Connection, QueryLogEntry
from fluxql.connection.factory import ConnectionFactory
from fluxql.connection.sqlite import SQLiteConnection

__all__ = ["Connection", "ConnectionFactory", "QueryLogEntry", "SQLiteConnection"]
