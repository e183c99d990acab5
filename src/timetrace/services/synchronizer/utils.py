"""Synchronizer result and bookkeeping types.

Contains the per-source [SourceReport][timetrace.services.synchronizer.utils.SourceReport],
the pass result [SyncResult][timetrace.services.synchronizer.utils.SyncResult]
and the cycle counters shared by ``TaskGroup`` workers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, overload


if TYPE_CHECKING:
    from collections.abc import Iterator

    from timetrace.models import Event, EventName


class SyncOutcome(StrEnum):
    """How one source's branch of a pass ended.

    Attributes:
        SYNCED: Fetch, insert and watermark advance all succeeded (or there
            was nothing to fetch).
        INACTIVE: The source is unavailable on this host or unconfigured.
        FETCH_FAILED: The source raised ``FetchError``; any partial events
            were stored but the watermark was kept.
        WRITE_FAILED: Inserting events or advancing the watermark failed.
        READ_FAILED: Reading the watermark, the existence check or the
            window read-back failed; the branch contributed nothing.
        ERROR: The branch raised an unexpected exception.
    """

    SYNCED = "synced"
    INACTIVE = "inactive"
    FETCH_FAILED = "fetch_failed"
    WRITE_FAILED = "write_failed"
    READ_FAILED = "read_failed"
    ERROR = "error"

    @property
    def is_failure(self) -> bool:
        return self not in (SyncOutcome.SYNCED, SyncOutcome.INACTIVE)


@dataclass(frozen=True, slots=True)
class SourceReport:
    """Advisory summary of one source's branch.

    Attributes:
        source: Source name.
        outcome: How the branch ended.
        since: Start bound the fetch used (None when the branch stopped
            before resolving it).
        watermark: Watermark after the pass (None if never advanced).
        fetched: Number of events the source returned (partial included).
        inserted: Number of rows actually inserted.
        merged: Number of events the branch contributed to the merged view.
        error: Error text for failed outcomes.
        failed_kinds: Kinds whose query failed on a partial fetch.
    """

    source: str
    outcome: SyncOutcome
    since: int | None = None
    watermark: int | None = None
    fetched: int = 0
    inserted: int = 0
    merged: int = 0
    error: str | None = None
    failed_kinds: frozenset[EventName] = frozenset()


@dataclass(frozen=True, slots=True)
class SyncResult(Sequence["Event"]):
    """Merged view of one pass plus its per-source reports.

    Behaves as the read-only sequence of merged events, ascending by time.

    Attributes:
        events: Deduplicated, time-ordered events of all sources in the window.
        reports: One [SourceReport][timetrace.services.synchronizer.utils.SourceReport]
            per registered source.
    """

    events: tuple[Event, ...] = ()
    reports: tuple[SourceReport, ...] = ()

    @overload
    def __getitem__(self, index: int) -> Event: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[Event, ...]: ...

    def __getitem__(self, index: int | slice) -> Event | tuple[Event, ...]:
        return self.events[index]

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events)

    def report(self, source: str) -> SourceReport | None:
        """Return the report of ``source``, or None if it was not part of the pass."""
        for report in self.reports:
            if report.source == source:
                return report
        return None

    @property
    def failed(self) -> tuple[SourceReport, ...]:
        """Reports whose outcome is a failure."""
        return tuple(r for r in self.reports if r.outcome.is_failure)


@dataclass(slots=True)
class SyncCycleCounters:
    """Per-cycle synchronization counters.

    Groups source/event outcome counts and the lock that guards
    concurrent updates from ``TaskGroup`` workers.

    See Also:
        [Synchronizer][timetrace.services.synchronizer.Synchronizer]:
            Service that owns an instance of this dataclass.
    """

    synced_sources: int = 0
    failed_sources: int = 0
    inactive_sources: int = 0
    events_fetched: int = 0
    events_inserted: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def reset(self) -> None:
        self.synced_sources = 0
        self.failed_sources = 0
        self.inactive_sources = 0
        self.events_fetched = 0
        self.events_inserted = 0

    async def record(self, report: SourceReport) -> None:
        """Fold one branch report into the counters."""
        async with self.lock:
            if report.outcome is SyncOutcome.INACTIVE:
                self.inactive_sources += 1
            elif report.outcome.is_failure:
                self.failed_sources += 1
            else:
                self.synced_sources += 1
            self.events_fetched += report.fetched
            self.events_inserted += report.inserted
