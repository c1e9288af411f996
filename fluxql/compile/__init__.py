"""Grammars that compile builder state into dialect SQL."""
from __future__ import annotations

from fluxql.compile.base import CompiledSQL, Grammar
from fluxql.compile.context import CompiledFragment, CompileContext
from fluxql.compile.mysql import MySqlGrammar
from fluxql.compile.postgres import PostgresGrammar
from fluxql.compile.registry import GrammarFactory
from fluxql.compile.sqlite import SQLiteGrammar

__all__ = [
    "CompileContext",
    "CompiledFragment",
    "CompiledSQL",
    "Grammar",
    "GrammarFactory",
    "MySqlGrammar",
    "PostgresGrammar",
    "SQLiteGrammar",
]
