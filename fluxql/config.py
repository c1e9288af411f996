"""Connection configuration."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

from fluxql.compile.registry import GrammarFactory


class ConnectionConfig(BaseModel):
    """Settings for one named database connection.

    Attributes:
        driver: Registered driver name (``sqlite``, ``mysql``, ``postgres``...).
        database: Database name or path; SQLite accepts ``":memory:"``.
        name: Connection name used in log records.
        prefix: Table prefix applied by the grammar to every wrapped table.
        log_queries: Keep an in-memory log of executed statements.
        host: Server host, for network drivers.
        port: Server port, for network drivers.
        username: Login user, for network drivers.
        password: Login password, for network drivers.
    """

    model_config = ConfigDict(extra="forbid")

    driver: str = "sqlite"
    database: str = ":memory:"
    name: str = "default"
    prefix: str = ""
    log_queries: bool = False
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None

    @field_validator("driver")
    @classmethod
    def _known_driver(cls, value: str) -> str:
        if not GrammarFactory.is_registered(value):
            raise ValueError(
                f"Unsupported driver '{value}'. "
                f"Registered drivers: {GrammarFactory.registered_targets()}."
            )
        return GrammarFactory.resolve(value)
