"""timetrace exception hierarchy.

Provides typed exceptions for all error categories so that callers can tell
a per-source failure (logged, pass continues) from a store-level failure
(fatal, propagates out of the synchronization pass) and let
``CancelledError`` propagate untouched.

Exception hierarchy:

```text
TimeTraceError (base -- never raised directly)
├── ConfigurationError        -- config validation, missing keys, bad YAML
├── DatabaseError              -- pool/store/query failures
│   ├── StoreUnavailableError  -- fatal: pool not connected, retries exhausted
│   ├── StoreReadError         -- a read query failed
│   │   └── InvalidPropertyError -- a stored property value is malformed
│   └── StoreWriteError        -- an insert or upsert failed
└── FetchError                 -- an event source could not deliver events
    └── FetchTimeoutError      -- the source query timed out
```

See Also:
    [Pool][timetrace.core.pool.Pool]: Raises
        [StoreUnavailableError][timetrace.core.exceptions.StoreUnavailableError]
        when it cannot hand out a connection.
    [EventStore][timetrace.core.store.EventStore]: Translates asyncpg errors
        into [StoreReadError][timetrace.core.exceptions.StoreReadError] and
        [StoreWriteError][timetrace.core.exceptions.StoreWriteError].
    [EventSource.fetch()][timetrace.sources.base.EventSource.fetch]: Raises
        [FetchError][timetrace.core.exceptions.FetchError].
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable

    from timetrace.models import Event, EventName


class TimeTraceError(Exception):
    """Base exception for all timetrace errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(TimeTraceError):
    """Invalid or missing configuration (YAML, env vars, CLI flags).

    See Also:
        [load_yaml()][timetrace.core.yaml.load_yaml]: YAML loading function
            that may trigger configuration errors.
    """


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


class DatabaseError(TimeTraceError):
    """Base for all database-related errors.

    See Also:
        [StoreUnavailableError][timetrace.core.exceptions.StoreUnavailableError]:
            The store cannot be reached at all.
        [StoreReadError][timetrace.core.exceptions.StoreReadError]: A read
            query failed.
        [StoreWriteError][timetrace.core.exceptions.StoreWriteError]: A write
            query failed.
    """


class StoreUnavailableError(DatabaseError, ConnectionError):
    """The store cannot be reached: pool not connected or retries exhausted.

    Fatal for a synchronization pass: it propagates out of
    [Synchronizer.sync()][timetrace.services.synchronizer.Synchronizer.sync]
    instead of being recorded as a per-source failure.
    """


class StoreReadError(DatabaseError):
    """A read query (existence check, window read, property read) failed.

    The affected source contributes no events to the current pass.
    """


class StoreWriteError(DatabaseError):
    """An insert or property upsert failed.

    The watermark of the affected source is not advanced.
    """


class InvalidPropertyError(StoreReadError):
    """A stored property value does not match its type tag."""


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class FetchError(TimeTraceError):
    """An event source failed to deliver events.

    Sources that query kind by kind keep going after one kind fails and
    attach what they did fetch, so the caller can still store it.

    Attributes:
        source_name: Name of the failing source.
        cause: Human-readable description of the failure.
        partial: Events fetched successfully before or despite the failure.
        failed_kinds: Event kinds whose query failed (empty when the whole
            call failed).
    """

    def __init__(
        self,
        source_name: str,
        cause: str,
        *,
        partial: Iterable[Event] = (),
        failed_kinds: Iterable[EventName] = (),
    ) -> None:
        self.source_name = source_name
        self.cause = cause
        self.partial: list[Event] = list(partial)
        self.failed_kinds: frozenset[EventName] = frozenset(failed_kinds)
        super().__init__(f"{source_name}: {cause}")


class FetchTimeoutError(FetchError):
    """The source query (subprocess or HTTP request) timed out."""
