"""Compilation context value objects.

A :class:`CompileContext` is created at every top-level compile entry point
(select, insert, update, delete, exists, ...) and threaded through every
component compiler of that one call.  The placeholder counter therefore
never lives on a grammar instance, so one grammar can compile any number of
independent queries, sequentially or concurrently, without numbering
leaking between them.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CompileContext:
    """Per-call placeholder accumulator.

    Attributes:
        placeholders: Number of placeholders emitted so far in this call.
    """

    placeholders: int = 0

    def next_placeholder(self) -> int:
        """Reserve one placeholder and return its 1-based position."""
        self.placeholders += 1
        return self.placeholders

    def advance(self, count: int) -> None:
        """Account for ``count`` placeholders emitted by a spliced fragment."""
        self.placeholders += count


@dataclass(frozen=True)
class CompiledFragment:
    """SQL produced by an independent compile, plus its placeholder count.

    A subquery fragment is numbered from the enclosing counter, so its text
    is spliced unchanged; the enclosing compile advances its own counter by
    ``placeholders`` without inspecting the SQL text.
    """

    sql: str
    placeholders: int
