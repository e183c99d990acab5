"""
asyncpg connection pool for the event store.

[Pool][timetrace.core.pool.Pool] owns one ``asyncpg.Pool`` sized by
[PoolSizeConfig][timetrace.core.pool.PoolSizeConfig]. Opening the pool and
running a query share the same retry policy: connection-level failures are
retried with backoff and, once the attempts run out, surface as
[StoreUnavailableError][timetrace.core.exceptions.StoreUnavailableError].
Errors raised by PostgreSQL for the statement itself (syntax, constraints)
are never retried and propagate as ``asyncpg.PostgresError``.

JSON and JSONB columns are decoded to plain Python values on every pooled
connection, so typed property values need no manual (de)serialization.

Examples:
    ```python
    pool = Pool.from_yaml("config/store.yaml")

    async with pool:
        total = await pool.fetchval("SELECT count(*) FROM event")
    ```

See Also:
    [EventStore][timetrace.core.store.EventStore]: Owns the SQL and maps
        asyncpg errors onto the timetrace exception hierarchy.
"""

from __future__ import annotations

import asyncio
import json
import os
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any, Literal, TypeVar, cast

import asyncpg
from pydantic import BaseModel, Field, SecretStr, model_validator

from .exceptions import StoreUnavailableError
from .logger import Logger
from .yaml import load_yaml


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


T = TypeVar("T")

_DEFAULT_PASSWORD_ENV = "DB_PASSWORD"  # pragma: allowlist secret

# Raised when the server cannot be reached (or went away) while a query
# borrows a connection; OSError covers refused and reset sockets
_QUERY_TRANSIENT = (
    asyncpg.InterfaceError,
    asyncpg.ConnectionDoesNotExistError,
    asyncpg.CannotConnectNowError,
    asyncpg.TooManyConnectionsError,
    OSError,
)

# Statement timeouts are never retried (TimeoutError subclasses OSError)
_QUERY_PERMANENT = (TimeoutError,)

# Raised while the server is starting, refusing or unreachable
_CONNECT_TRANSIENT = (asyncpg.PostgresError, OSError)


async def _register_json_codecs(conn: asyncpg.Connection[asyncpg.Record]) -> None:
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name, schema="pg_catalog", encoder=json.dumps, decoder=json.loads
        )


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseModel):
    """Where the event database lives and whom to log in as.

    Only the *name* of the environment variable holding the password is
    configured (``password_env``, default ``DB_PASSWORD``); the secret itself
    never appears in YAML.
    """

    host: str = Field(default="localhost", min_length=1, description="Server host")
    port: int = Field(default=5432, ge=1, le=65535, description="Server port")
    database: str = Field(default="timetrace", min_length=1, description="Database to open")
    user: str = Field(default="timetrace", min_length=1, description="Login role")
    password_env: str = Field(
        default=_DEFAULT_PASSWORD_ENV,
        min_length=1,
        description="Name of the environment variable that holds the password",
    )
    password: SecretStr = Field(description="Resolved from password_env at load time")

    @model_validator(mode="before")
    @classmethod
    def _password_from_env(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "password" in data:
            return data
        env_var = data.get("password_env", _DEFAULT_PASSWORD_ENV)
        secret = os.getenv(env_var)
        if not secret:
            raise ValueError(f"{env_var} environment variable not set")
        return {**data, "password": SecretStr(secret)}


class PoolSizeConfig(BaseModel):
    """How many connections the pool keeps and for how long.

    A connection is replaced after ``recycle_after_queries`` statements or
    ``idle_timeout`` seconds without use.
    """

    min_size: int = Field(default=1, ge=1, le=100, description="Connections opened eagerly")
    max_size: int = Field(default=5, ge=1, le=100, description="Upper bound on open connections")
    recycle_after_queries: int = Field(default=50_000, ge=100)
    idle_timeout: float = Field(default=300.0, ge=0.0, description="Seconds (0 = never close)")

    @model_validator(mode="after")
    def _check_bounds(self) -> PoolSizeConfig:
        if self.max_size < self.min_size:
            raise ValueError(f"max_size ({self.max_size}) must be >= min_size ({self.min_size})")
        return self


class RetryConfig(BaseModel):
    """Backoff between attempts to open the pool or rerun a dropped query."""

    attempts: int = Field(default=3, ge=1, le=10, description="Tries before giving up")
    base_delay: float = Field(default=1.0, ge=0.0, description="Delay after the first failure")
    max_delay: float = Field(default=10.0, ge=0.0, description="Cap on any single delay")
    backoff: Literal["exponential", "linear"] = "exponential"

    @model_validator(mode="after")
    def _check_delays(self) -> RetryConfig:
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        return self

    def delay(self, failures: int) -> float:
        """Seconds to wait after ``failures`` consecutive failed attempts (1-based)."""
        if self.backoff == "exponential":
            raw = self.base_delay * 2 ** (failures - 1)
        else:
            raw = self.base_delay * failures
        return float(min(raw, self.max_delay))


class ServerSettingsConfig(BaseModel):
    """Session GUCs applied to every pooled connection."""

    application_name: str = Field(default="timetrace", description="Shown in pg_stat_activity")
    timezone: str = Field(default="UTC")
    statement_timeout: int = Field(default=60_000, ge=0, description="Milliseconds, 0 disables")


class PoolConfig(BaseModel):
    """Everything [Pool][timetrace.core.pool.Pool] needs to open and use connections."""

    database: DatabaseConfig = Field(default_factory=lambda: DatabaseConfig.model_validate({}))
    size: PoolSizeConfig = Field(default_factory=PoolSizeConfig)
    acquire_timeout: float = Field(default=10.0, ge=0.1, description="Seconds to wait for a connection")
    retry: RetryConfig = Field(default_factory=RetryConfig)
    server_settings: ServerSettingsConfig = Field(default_factory=ServerSettingsConfig)


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class Pool:
    """Lazily opened asyncpg pool with retrying query helpers.

    A new instance is disconnected. [connect()][timetrace.core.pool.Pool.connect]
    (or ``async with``) opens it; [close()][timetrace.core.pool.Pool.close]
    releases it. Both are idempotent.
    """

    def __init__(self, config: PoolConfig | None = None) -> None:
        self._config = config or PoolConfig()
        self._pool: asyncpg.Pool[asyncpg.Record] | None = None
        self._lifecycle_lock = asyncio.Lock()
        self._logger = Logger("pool")

    @classmethod
    def from_yaml(cls, config_path: str) -> Pool:
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> Pool:
        return cls(config=PoolConfig.model_validate(config_dict))

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def _with_retry(
        self,
        operation: str,
        attempt: Callable[[], Awaitable[T]],
        transient: tuple[type[BaseException], ...],
        permanent: tuple[type[BaseException], ...] = (),
    ) -> T:
        """Await ``attempt()`` until it succeeds or the retry budget is spent.

        Errors in ``permanent`` are re-raised at once even when they also
        subclass one of the ``transient`` types.

        Raises:
            StoreUnavailableError: After the last failed attempt.
        """
        policy = self._config.retry
        for failures in range(1, policy.attempts + 1):
            try:
                return await attempt()
            except permanent:
                raise
            except transient as e:
                if failures == policy.attempts:
                    self._logger.error(
                        "store_unreachable", operation=operation, attempts=failures, error=str(e)
                    )
                    raise StoreUnavailableError(
                        f"{operation} failed after {failures} attempts: {e}"
                    ) from e
                wait_s = policy.delay(failures)
                self._logger.warning(
                    "store_retry", operation=operation, attempt=failures, delay_s=wait_s, error=str(e)
                )
                await asyncio.sleep(wait_s)
        raise AssertionError("retry loop exited without a result")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the pool.

        Raises:
            StoreUnavailableError: If the server stayed unreachable for every
                retry attempt.
        """
        async with self._lifecycle_lock:
            if self._pool is not None:
                return

            db = self._config.database
            size = self._config.size
            gucs = self._config.server_settings

            async def open_pool() -> asyncpg.Pool[asyncpg.Record]:
                return await asyncpg.create_pool(
                    host=db.host,
                    port=db.port,
                    database=db.database,
                    user=db.user,
                    password=db.password.get_secret_value(),
                    min_size=size.min_size,
                    max_size=size.max_size,
                    max_queries=size.recycle_after_queries,
                    max_inactive_connection_lifetime=size.idle_timeout,
                    timeout=self._config.acquire_timeout,
                    init=_register_json_codecs,
                    server_settings={
                        "application_name": gucs.application_name,
                        "timezone": gucs.timezone,
                        "statement_timeout": str(gucs.statement_timeout),
                    },
                )

            self._logger.info("pool_opening", host=db.host, port=db.port, database=db.database)
            self._pool = await self._with_retry("connect", open_pool, _CONNECT_TRANSIENT)
            self._logger.info("pool_opened", min_size=size.min_size, max_size=size.max_size)

    async def close(self) -> None:
        async with self._lifecycle_lock:
            pool, self._pool = self._pool, None
            if pool is not None:
                await pool.close()
                self._logger.info("pool_closed")

    def acquire(self) -> AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]:
        """Borrow a connection for the duration of an ``async with`` block.

        Raises:
            StoreUnavailableError: If the pool is not open.
        """
        if self._pool is None:
            raise StoreUnavailableError("Pool not connected. Call connect() first.")
        return cast(
            "AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]",
            self._pool.acquire(),
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def _query(
        self,
        method: Literal["fetch", "fetchrow", "fetchval", "execute"],
        query: str,
        args: tuple[Any, ...],
        timeout: float | None,  # noqa: ASYNC109
    ) -> Any:
        # Each attempt borrows its own connection so a dead socket is dropped
        async def attempt() -> Any:
            async with self.acquire() as conn:
                return await getattr(conn, method)(query, *args, timeout=timeout)

        return await self._with_retry(method, attempt, _QUERY_TRANSIENT, _QUERY_PERMANENT)

    async def fetch(
        self, query: str, *args: Any, timeout: float | None = None  # noqa: ASYNC109
    ) -> list[asyncpg.Record]:
        return cast("list[asyncpg.Record]", await self._query("fetch", query, args, timeout))

    async def fetchrow(
        self, query: str, *args: Any, timeout: float | None = None  # noqa: ASYNC109
    ) -> asyncpg.Record | None:
        return cast("asyncpg.Record | None", await self._query("fetchrow", query, args, timeout))

    async def fetchval(
        self, query: str, *args: Any, timeout: float | None = None  # noqa: ASYNC109
    ) -> Any:
        return await self._query("fetchval", query, args, timeout)

    async def execute(
        self, query: str, *args: Any, timeout: float | None = None  # noqa: ASYNC109
    ) -> str:
        """Run a statement and return its status tag, e.g. ``"INSERT 0 1"``."""
        return cast("str", await self._query("execute", query, args, timeout))

    async def __aenter__(self) -> Pool:
        await self.connect()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        db = self._config.database
        return f"Pool(host={db.host}, database={db.database}, connected={self.is_connected})"
