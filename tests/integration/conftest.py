"""PostgreSQL fixtures for the integration suite.

One throwaway ``postgres:16-alpine`` container serves the whole session; each
test gets the schema rebuilt from ``deployments/timetrace/postgres/init``.
"""

from __future__ import annotations

from pathlib import Path

import asyncpg
import pytest
from pydantic import SecretStr
from testcontainers.postgres import PostgresContainer

from timetrace.core.pool import DatabaseConfig, Pool, PoolConfig
from timetrace.core.store import EventStore


INIT_SCRIPTS = sorted(
    (Path(__file__).resolve().parents[2] / "deployments/timetrace/postgres/init").glob("*.sql")
)


@pytest.fixture(scope="session")
def database_config():
    with PostgresContainer("postgres:16-alpine") as container:
        yield DatabaseConfig(
            host=container.get_container_host_ip(),
            port=int(container.get_exposed_port(5432)),
            database=container.dbname,
            user=container.username,
            password=SecretStr(container.password),
        )


async def _reset_schema(db: DatabaseConfig) -> None:
    conn = await asyncpg.connect(
        host=db.host,
        port=db.port,
        database=db.database,
        user=db.user,
        password=db.password.get_secret_value(),
    )
    try:
        await conn.execute("DROP SCHEMA public CASCADE; CREATE SCHEMA public;")
        for script in INIT_SCRIPTS:
            await conn.execute(script.read_text())
    finally:
        await conn.close()


@pytest.fixture
async def store(database_config: DatabaseConfig):
    """Connected EventStore over an empty, freshly initialised schema."""
    await _reset_schema(database_config)
    async with EventStore(pool=Pool(PoolConfig(database=database_config))) as event_store:
        yield event_store
