"""Pagination result models and the opaque cursor token.

All models are pydantic v2 models.  A :class:`Cursor` encodes the boundary
values of a page as URL-safe base64 of a JSON document, so any JSON scalar
(strings, ints of any size, floats, booleans, ``None``) round-trips exactly.
Dates, times and decimals are stored as strings.
"""
from __future__ import annotations

import base64
import json
import math
from datetime import date, time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict

from fluxql.errors import InvalidCursorError


class Cursor(BaseModel):
    """Boundary values of a cursor-paginated page.

    Attributes:
        parameters: Column key → boundary value.
        points_to_next_items: ``True`` for a next-page cursor, ``False`` for
            a previous-page cursor.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    parameters: dict[str, Any]
    points_to_next_items: bool = True

    def parameter(self, name: str) -> Any:
        """Return the boundary value for ``name``.

        Raises:
            InvalidCursorError: If the cursor carries no value for ``name``.
        """
        if name not in self.parameters:
            raise InvalidCursorError(f"Unable to find parameter [{name}] in pagination cursor.")
        return self.parameters[name]

    def points_to_previous_items(self) -> bool:
        return not self.points_to_next_items

    def encode(self) -> str:
        """Return the URL-safe token for this cursor.

        Dates, times and datetimes are stored as ISO-8601 strings and decimals
        as strings, so they decode as strings.

        Raises:
            InvalidCursorError: If a boundary value cannot be serialised.
        """
        try:
            payload = json.dumps(
                {"parameters": self.parameters, "next": self.points_to_next_items},
                separators=(",", ":"),
                default=_json_default,
            )
        except (TypeError, ValueError) as exc:
            raise InvalidCursorError(f"Cursor value cannot be encoded: {exc}") from exc
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str | None) -> Cursor | None:
        """Decode a token produced by :meth:`encode`; ``None`` for an empty token.

        Raises:
            InvalidCursorError: If the token is not a valid cursor.
        """
        if not token:
            return None
        padded = token + "=" * (-len(token) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
            return cls(parameters=data["parameters"], points_to_next_items=data["next"])
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidCursorError("Malformed pagination cursor.", token=token) from exc


def _json_default(value: Any) -> str:
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"{type(value).__name__} is not a supported cursor value")


class LengthAwarePage(BaseModel):
    """Offset page with a total row count."""

    data: list[Any]
    total: int
    per_page: int
    current_page: int = 1

    @property
    def last_page(self) -> int:
        return max(math.ceil(self.total / self.per_page), 1)

    @property
    def has_more_pages(self) -> bool:
        return self.current_page < self.last_page


class SimplePage(BaseModel):
    """Offset page that only knows whether another page follows."""

    data: list[Any]
    per_page: int
    current_page: int = 1
    has_more: bool = False


class CursorPage(BaseModel):
    """Keyset page with encoded next/previous cursors."""

    data: list[Any]
    per_page: int
    has_more: bool = False
    cursor: str | None = None
    next_cursor: str | None = None
    previous_cursor: str | None = None
