"""Custom exception hierarchy for fluxQL.

All public errors inherit from FluxQLError so callers can catch the base
class for any fluxQL-specific failure.  Driver errors raised by a
connection are never wrapped; they propagate unmodified.
"""
from __future__ import annotations

from typing import Any


class FluxQLError(Exception):
    """Base exception for all fluxQL errors."""


class InvalidArgumentError(FluxQLError, ValueError):
    """Raised when a fluent call receives an argument it cannot accept.

    Args:
        message: Human-readable description.
        argument: Name of the offending argument (e.g. ``"operator"``).
    """

    def __init__(self, message: str, argument: str | None = None) -> None:
        super().__init__(message)
        self.argument = argument


class InvalidBindingTypeError(InvalidArgumentError):
    """Raised when a binding is added to an unknown bucket category."""

    def __init__(self, category: str, allowed: list[str]) -> None:
        super().__init__(
            f"Invalid binding type: '{category}'. Expected one of {allowed}.",
            argument="type",
        )
        self.category = category
        self.allowed = allowed


class InvalidAmountError(InvalidArgumentError):
    """Raised when an increment or decrement amount is not a positive number."""

    def __init__(self, column: str, amount: Any) -> None:
        super().__init__(
            f"Increment/decrement amount for '{column}' must be a positive number, "
            f"got {amount!r}.",
            argument="amount",
        )
        self.column = column
        self.amount = amount


class RecordNotFoundError(FluxQLError):
    """Raised by the ``*_or_fail`` family when the query returns no row.

    Args:
        message: Human-readable description.
        sql: The SQL that produced no rows.
        bindings: The bindings sent with ``sql``.
    """

    def __init__(
        self,
        message: str,
        sql: str | None = None,
        bindings: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.sql = sql
        self.bindings: list[Any] = bindings or []


class CompilationError(FluxQLError):
    """Raised when query state cannot be compiled for the active dialect.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class InvalidCursorError(FluxQLError):
    """Raised when a pagination cursor token cannot be decoded.

    Args:
        message: Human-readable description.
        token: The token that failed to decode.
    """

    def __init__(self, message: str, token: str | None = None) -> None:
        super().__init__(message)
        self.token = token


class MissingConnectionError(FluxQLError):
    """Raised when an execution method runs on a builder with no connection."""
