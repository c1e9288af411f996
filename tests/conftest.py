"""Shared pytest fixtures for fluxQL unit and integration tests."""
from __future__ import annotations

import pytest

from tests.fixtures import RecordingConnection


@pytest.fixture()
def conn() -> RecordingConnection:
    """Recording connection compiling with the generic grammar."""
    return RecordingConnection()


@pytest.fixture()
def pg_conn() -> RecordingConnection:
    """Recording connection compiling with the Postgres grammar."""
    return RecordingConnection(driver="postgres")
