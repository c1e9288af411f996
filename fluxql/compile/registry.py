"""Grammar registry (Open/Closed Principle).

``GrammarFactory`` maps driver names to a :class:`~fluxql.compile.base.Grammar`
class and its matching :class:`~fluxql.query.processors.Processor`.  A new
dialect is registered once; connections look it up by driver name without
any core module being edited.

Usage::

    from fluxql.compile.registry import GrammarFactory

    @GrammarFactory.register("oracle")
    class OracleGrammar(Grammar):
        ...
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import ClassVar

from fluxql.compile.base import Grammar
from fluxql.errors import CompilationError
from fluxql.query.processors import Processor

logger = logging.getLogger(__name__)

#: Alternative spellings accepted for registered drivers.
DRIVER_ALIASES: dict[str, str] = {
    "pgsql": "postgres",
    "postgresql": "postgres",
    "sqlite3": "sqlite",
}


class GrammarFactory:
    """Registry mapping driver names to grammar and processor classes.

    Example::

        GrammarFactory.register_class("postgres", PostgresGrammar, PostgresProcessor)

        grammar = GrammarFactory.create("postgres", table_prefix="app_")
    """

    _grammars: ClassVar[dict[str, type[Grammar]]] = {}
    _processors: ClassVar[dict[str, type[Processor]]] = {}

    @classmethod
    def register(
        cls, name: str, processor_cls: type[Processor] = Processor
    ) -> Callable[[type[Grammar]], type[Grammar]]:
        """Decorator that registers a grammar class under ``name``.

        Args:
            name: The driver name (e.g. ``"postgres"``).
            processor_cls: Processor paired with the grammar.

        Returns:
            A decorator that registers and returns the grammar class.
        """

        def decorator(grammar_cls: type[Grammar]) -> type[Grammar]:
            cls.register_class(name, grammar_cls, processor_cls)
            return grammar_cls

        return decorator

    @classmethod
    def register_class(
        cls,
        name: str,
        grammar_cls: type[Grammar],
        processor_cls: type[Processor] = Processor,
    ) -> None:
        """Register a grammar class without using the decorator form."""
        cls._grammars[name] = grammar_cls
        cls._processors[name] = processor_cls
        logger.debug("Registered grammar %s for driver '%s'", grammar_cls.__name__, name)

    @classmethod
    def resolve(cls, name: str) -> str:
        """Return the canonical driver name for ``name``.

        Raises:
            CompilationError: If no grammar is registered for ``name``.
        """
        canonical = DRIVER_ALIASES.get(name.lower(), name.lower())
        if canonical not in cls._grammars:
            raise CompilationError(
                f"Unsupported dialect target: '{name}'. "
                f"Registered targets: {cls.registered_targets()}."
            )
        return canonical

    @classmethod
    def create(cls, name: str, table_prefix: str = "") -> Grammar:
        """Instantiate the grammar registered for ``name``.

        Args:
            name: The driver name or one of its aliases.
            table_prefix: Prefix applied to every wrapped table.

        Raises:
            CompilationError: If no grammar is registered for ``name``.
        """
        return cls._grammars[cls.resolve(name)](table_prefix=table_prefix)

    @classmethod
    def create_processor(cls, name: str) -> Processor:
        return cls._processors[cls.resolve(name)]()

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return DRIVER_ALIASES.get(name.lower(), name.lower()) in cls._grammars

    @classmethod
    def registered_targets(cls) -> list[str]:
        """Return the sorted list of registered driver names."""
        return sorted(cls._grammars)
