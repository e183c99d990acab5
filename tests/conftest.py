"""
Shared fixtures for the unit suite.

``mock_pool`` / ``mock_store`` run real Pool and EventStore code over a
MagicMock asyncpg pool whose single connection is ``mock_connection``.
``fake_store`` is the in-memory store from ``fakes.py`` used by service tests.
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakes import FakeEventStore

from timetrace.core.pool import DatabaseConfig, Pool, PoolConfig
from timetrace.core.store import EventStore


@pytest.fixture(scope="session", autouse=True)
def debug_logging() -> None:
    logging.basicConfig(level=logging.DEBUG)


@pytest.fixture
def mock_connection() -> MagicMock:
    conn = MagicMock(name="connection")
    for method, result in (("fetch", []), ("fetchrow", None), ("fetchval", 1), ("execute", "OK")):
        setattr(conn, method, AsyncMock(return_value=result))
    return conn


@pytest.fixture
def mock_asyncpg_pool(mock_connection: MagicMock) -> MagicMock:
    borrowed = MagicMock(name="acquire")
    borrowed.__aenter__ = AsyncMock(return_value=mock_connection)
    borrowed.__aexit__ = AsyncMock(return_value=None)

    pool = MagicMock(name="asyncpg_pool")
    pool.acquire = MagicMock(return_value=borrowed)
    pool.close = AsyncMock()
    return pool


@pytest.fixture
def mock_pool(mock_asyncpg_pool: MagicMock, monkeypatch: pytest.MonkeyPatch) -> Pool:
    """A Pool that believes it is connected."""
    monkeypatch.setenv("DB_PASSWORD", "test_password")
    pool = Pool(PoolConfig(database=DatabaseConfig(database="test_db", user="test_user")))
    pool._pool = mock_asyncpg_pool
    return pool


@pytest.fixture
def mock_store(mock_pool: Pool) -> EventStore:
    return EventStore(pool=mock_pool)


@pytest.fixture
def fake_store() -> FakeEventStore:
    return FakeEventStore()
