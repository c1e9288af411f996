"""Literal SQL marker.

An :class:`Expression` wraps a pre-rendered SQL fragment.  Grammars emit it
verbatim: it is never quoted as an identifier and never bound as a
parameter.  Use it for trusted SQL only.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Expression:
    """A raw SQL fragment that bypasses quoting and binding."""

    value: Any

    def get_value(self) -> str:
        return str(self.value)

    def __str__(self) -> str:
        return self.get_value()


def raw(value: Any) -> Expression:
    """Return an :class:`Expression` for ``value``."""
    return Expression(value)
