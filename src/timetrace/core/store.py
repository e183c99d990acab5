"""
Durable event and property storage built on stored procedures.

[EventStore][timetrace.core.store.EventStore] is the only component that
speaks SQL. It owns a [Pool][timetrace.core.pool.Pool], calls the stored
procedures shipped in ``deployments/timetrace/postgres/init`` and translates
database failures into the typed hierarchy of
[timetrace.core.exceptions][]:

* ``asyncpg.PostgresError`` and ``TimeoutError`` raised by a read become
  [StoreReadError][timetrace.core.exceptions.StoreReadError]; raised by a
  write they become
  [StoreWriteError][timetrace.core.exceptions.StoreWriteError].
* Lost connections are retried by the pool and surface as
  [StoreUnavailableError][timetrace.core.exceptions.StoreUnavailableError],
  which passes through unchanged.

Bulk writes use one array per column (see ``_transpose_to_columns``) and are
split into chunks of at most ``batch.max_size`` rows.

Examples:
    ```python
    store = EventStore.from_yaml("config/store.yaml")

    async with store:
        inserted = await store.insert_event([Event(time=0, source="macos", name="boot")])
        events = await store.select_events_since("macos", since=0)
    ```
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import asyncpg
from pydantic import BaseModel, Field, field_validator

from timetrace.models import (
    Event,
    EventDbParams,
    EventKey,
    EventName,
    Property,
    PropertyDbParams,
)

from .exceptions import (
    DatabaseError,
    InvalidPropertyError,
    StoreReadError,
    StoreUnavailableError,
    StoreWriteError,
)
from .logger import Logger
from .pool import Pool, PoolConfig
from .yaml import load_yaml


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence


_MIN_TIMEOUT_SECONDS = 0.1

_DATABASE_ERRORS = (asyncpg.PostgresError, TimeoutError)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class BatchConfig(BaseModel):
    """Rows per bulk statement; larger inputs are split."""

    max_size: int = Field(default=1000, ge=1, le=100_000)


class StoreTimeoutsConfig(BaseModel):
    """Per-statement client timeouts in seconds. ``None`` waits forever."""

    query: float | None = Field(default=30.0, description="Lookups and window reads")
    batch: float | None = Field(default=60.0, description="Bulk inserts and upserts")

    @field_validator("query", "batch", mode="after")
    @classmethod
    def _at_least_minimum(cls, seconds: float | None) -> float | None:
        if seconds is None or seconds >= _MIN_TIMEOUT_SECONDS:
            return seconds
        raise ValueError(f"timeout must be null or at least {_MIN_TIMEOUT_SECONDS}s, got {seconds}")


class EventStoreConfig(BaseModel):
    """Store settings other than the pool (which has its own ``pool:`` section)."""

    batch: BatchConfig = Field(default_factory=BatchConfig)
    timeouts: StoreTimeoutsConfig = Field(default_factory=StoreTimeoutsConfig)


# ---------------------------------------------------------------------------
# EventStore
# ---------------------------------------------------------------------------


class EventStore:
    """PostgreSQL-backed store for events and typed properties.

    Events are keyed by ``(time, name, source)``: inserts of an existing key
    are skipped by the table's unique constraint, which makes
    [insert_event()][timetrace.core.store.EventStore.insert_event]
    idempotent and safe under concurrent writers.
    """

    def __init__(self, pool: Pool | None = None, config: EventStoreConfig | None = None) -> None:
        self._pool = pool if pool is not None else Pool()
        self._config = config if config is not None else EventStoreConfig()
        self._logger = Logger("store")

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> EventStore:
        """Build from the mapping found in ``config/store.yaml``.

        ``pool`` configures the [Pool][timetrace.core.pool.Pool]; every other
        key belongs to [EventStoreConfig][timetrace.core.store.EventStoreConfig].
        """
        settings = dict(config_dict)
        pool_dict = settings.pop("pool", None)
        return cls(
            pool=None if pool_dict is None else Pool.from_dict(pool_dict),
            config=EventStoreConfig.model_validate(settings),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> EventStore:
        return cls.from_dict(load_yaml(config_path))

    @property
    def config(self) -> EventStoreConfig:
        return self._config

    @property
    def pool_config(self) -> PoolConfig:
        return self._pool.config

    @property
    def is_connected(self) -> bool:
        return self._pool.is_connected

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _translate_errors(
        self, operation: str, error_cls: type[DatabaseError]
    ) -> Iterator[None]:
        try:
            yield
        except StoreUnavailableError:
            raise
        except _DATABASE_ERRORS as e:
            self._logger.error("store_operation_failed", operation=operation, error=str(e))
            raise error_cls(f"{operation} failed: {e}") from e

    def _chunks(self, items: Sequence[Any]) -> Iterator[Sequence[Any]]:
        size = self._config.batch.max_size
        for i in range(0, len(items), size):
            yield items[i : i + size]

    @staticmethod
    def _transpose_to_columns(params: Sequence[tuple[Any, ...]]) -> tuple[list[Any], ...]:
        """Turn ``[(a1, b1), (a2, b2)]`` into ``([a1, a2], [b1, b2])``.

        Raises:
            ValueError: If the rows are not all the same width.
        """
        if not params:
            return ()
        widths = {len(row) for row in params}
        if len(widths) > 1:
            raise ValueError(f"rows have mixed widths {sorted(widths)}")
        return tuple(map(list, zip(*params, strict=True)))

    # -------------------------------------------------------------------------
    # Event Operations
    # -------------------------------------------------------------------------

    async def exists_event(self, key: EventKey) -> bool:
        """Return whether an event with ``key`` is stored.

        Raises:
            StoreReadError: On database errors.
        """
        with self._translate_errors("exists_event", StoreReadError):
            found = await self._pool.fetchval(
                "SELECT EXISTS (SELECT 1 FROM event WHERE time = $1 AND name = $2 AND source = $3)",
                key.time,
                str(key.name),
                key.source,
                timeout=self._config.timeouts.query,
            )
        return bool(found)

    async def filter_existing(self, keys: Iterable[EventKey]) -> set[EventKey]:
        """Return the subset of ``keys`` already stored, in batched queries.

        Raises:
            StoreReadError: On database errors.
        """
        unique = list(dict.fromkeys(keys))
        existing: set[EventKey] = set()

        for chunk in self._chunks(unique):
            times, names, sources = self._transpose_to_columns(
                [(k.time, str(k.name), k.source) for k in chunk]
            )
            with self._translate_errors("filter_existing", StoreReadError):
                rows = await self._pool.fetch(
                    """
                    SELECT e.time, e.name, e.source
                    FROM unnest($1::bigint[], $2::text[], $3::text[]) AS k(time, name, source)
                    JOIN event e
                      ON e.time = k.time AND e.name = k.name AND e.source = k.source
                    """,
                    times,
                    names,
                    sources,
                    timeout=self._config.timeouts.query,
                )
            for row in rows:
                try:
                    name = EventName(row["name"])
                except ValueError:
                    self._logger.warning(
                        "invalid_event_row", source=row["source"], time=row["time"], name=row["name"]
                    )
                    continue
                existing.add(EventKey(row["time"], name, row["source"]))

        return existing

    async def insert_event(self, records: Sequence[Event]) -> int:
        """Bulk-insert events, skipping keys that are already stored.

        Args:
            records: Validated [Event][timetrace.models.event.Event] instances.

        Returns:
            Number of rows actually inserted. Conflicts are not counted.

        Raises:
            StoreWriteError: On database errors. Chunks written before the
                failing one stay committed.
        """
        if not records:
            return 0

        inserted = 0
        for chunk in self._chunks(records):
            columns = self._transpose_to_columns([event.to_db_params() for event in chunk])
            with self._translate_errors("insert_event", StoreWriteError):
                inserted += (
                    await self._pool.fetchval(
                        "SELECT event_insert($1, $2, $3, $4)",
                        *columns,
                        timeout=self._config.timeouts.batch,
                    )
                    or 0
                )

        self._logger.debug("event_inserted", count=inserted, attempted=len(records))
        return inserted

    async def select_events_since(self, source: str, since: int) -> list[Event]:
        """Return stored events of ``source`` with ``time >= since``, ascending.

        Rows that no longer validate as [Event][timetrace.models.event.Event]
        (e.g. an event kind unknown to this version) are skipped with a
        warning.

        Raises:
            StoreReadError: On database errors.
        """
        with self._translate_errors("select_events_since", StoreReadError):
            rows = await self._pool.fetch(
                """
                SELECT time, source, name, details
                FROM event
                WHERE source = $1 AND time >= $2
                ORDER BY time ASC, name ASC
                """,
                source,
                since,
                timeout=self._config.timeouts.query,
            )

        events: list[Event] = []
        for row in rows:
            try:
                events.append(
                    Event.from_db_params(
                        EventDbParams(row["time"], row["source"], row["name"], row["details"])
                    )
                )
            except (TypeError, ValueError) as e:
                self._logger.warning(
                    "invalid_event_row", source=source, time=row["time"], error=str(e)
                )
        return events

    # -------------------------------------------------------------------------
    # Property Operations
    # -------------------------------------------------------------------------

    async def get_property(self, name: str) -> Property | None:
        """Return the property called ``name``, or None if absent.

        Raises:
            StoreReadError: On database errors.
            InvalidPropertyError: If the stored value does not match its
                type tag.
        """
        with self._translate_errors("get_property", StoreReadError):
            row = await self._pool.fetchrow(
                "SELECT property_name, property_type, property_value FROM property_get($1)",
                name,
                timeout=self._config.timeouts.query,
            )
        if row is None:
            return None

        try:
            return Property.from_db_params(
                PropertyDbParams(row["property_name"], row["property_type"], row["property_value"])
            )
        except (TypeError, ValueError) as e:
            raise InvalidPropertyError(f"property {name!r} holds an invalid value: {e}") from e

    async def upsert_property(self, records: Sequence[Property]) -> int:
        """Insert or replace properties.

        Returns:
            Number of rows written.

        Raises:
            StoreWriteError: On database errors.
        """
        if not records:
            return 0

        written = 0
        for chunk in self._chunks(records):
            names, types, values = self._transpose_to_columns([p.to_db_params() for p in chunk])
            with self._translate_errors("upsert_property", StoreWriteError):
                written += (
                    await self._pool.fetchval(
                        "SELECT property_upsert($1::text[], $2::smallint[], $3::jsonb[])",
                        names,
                        types,
                        values,
                        timeout=self._config.timeouts.batch,
                    )
                    or 0
                )

        self._logger.debug("property_upserted", count=written)
        return written

    async def advance_property(self, name: str, value: int) -> int:
        """Set integer property ``name`` to ``value`` unless it would regress.

        Inserts when absent; otherwise updates only when ``value`` is
        strictly greater than the stored integer. Runs as one statement,
        so concurrent advances never move the value backwards.

        Returns:
            1 if the stored value changed, 0 otherwise.

        Raises:
            StoreWriteError: On database errors.
        """
        params = Property.integer(name, value).to_db_params()
        with self._translate_errors("advance_property", StoreWriteError):
            changed = await self._pool.fetchval(
                "SELECT property_advance($1, $2)",
                params.name,
                params.value,
                timeout=self._config.timeouts.query,
            )
        return int(changed or 0)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the pool (no-op if already open).

        Raises:
            StoreUnavailableError: If the database stays unreachable.
        """
        await self._pool.connect()

    async def close(self) -> None:
        await self._pool.close()

    async def __aenter__(self) -> EventStore:
        await self.connect()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"EventStore({self._pool!r})"
