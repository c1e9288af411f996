"""Connection registry.

``ConnectionFactory`` maps driver names to :class:`Connection` classes.
Adapters for other drivers register once and are created from a
:class:`~fluxql.config.ConnectionConfig`::

    @ConnectionFactory.register("postgres")
    class AsyncpgConnection(Connection):
        ...
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, ClassVar

from fluxql.config import ConnectionConfig
from fluxql.connection.base import Connection
from fluxql.errors import FluxQLError

logger = logging.getLogger(__name__)


class ConnectionFactory:
    """Registry mapping driver names to connection classes."""

    _connections: ClassVar[dict[str, type[Connection]]] = {}

    @classmethod
    def register(cls, driver: str) -> Callable[[type[Connection]], type[Connection]]:
        """Decorator that registers a connection class for ``driver``."""

        def decorator(connection_cls: type[Connection]) -> type[Connection]:
            cls.register_class(driver, connection_cls)
            return connection_cls

        return decorator

    @classmethod
    def register_class(cls, driver: str, connection_cls: type[Connection]) -> None:
        cls._connections[driver] = connection_cls
        logger.debug("Registered connection %s for driver '%s'", connection_cls.__name__, driver)

    @classmethod
    def make(cls, config: ConnectionConfig | None = None, **options: Any) -> Connection:
        """Create a connection from ``config`` (or from keyword options).

        Raises:
            FluxQLError: If no connection class is registered for the driver.
        """
        config = config or ConnectionConfig(**options)
        connection_cls = cls._connections.get(config.driver)
        if connection_cls is None:
            raise FluxQLError(
                f"No connection registered for driver '{config.driver}'. "
                f"Registered drivers: {cls.registered_drivers()}."
            )
        return connection_cls(config)

    @classmethod
    def registered_drivers(cls) -> list[str]:
        return sorted(cls._connections)
