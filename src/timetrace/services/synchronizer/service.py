"""Synchronizer service for timetrace.

Pulls activity events from every registered
[EventSource][timetrace.sources.base.EventSource], stores the new ones and
returns a deduplicated, time-ordered view of the rolling window. Uses
``asyncio.TaskGroup`` with one task per source.

The synchronization workflow for each source proceeds as follows:

1. Skip the source if it reports itself inactive.
2. Resolve the start bound: the stored watermark, or ``now - lookback``.
3. Fetch events since that bound.
4. Drop events whose key is already stored (one batched existence check).
5. Batch-insert the remaining events.
6. If the fetch was complete, non-empty and stored, advance the watermark to
   the largest fetched time.
7. Read back the stored events of the window.

The per-source results are then merged by
[merge_events][timetrace.services.synchronizer.merge.merge_events].

Note:
    Check-then-insert is not atomic. Two concurrent passes may both decide
    an event is new; the unique constraint on ``(time, name, source)`` and
    ``ON CONFLICT DO NOTHING`` make the second insert a no-op.

    Every failure is contained in its branch except
    [StoreUnavailableError][timetrace.core.exceptions.StoreUnavailableError],
    which aborts the pass.

See Also:
    [SynchronizerConfig][timetrace.services.synchronizer.SynchronizerConfig]:
        Configuration model for lookback and sources.
    [BaseService][timetrace.core.base_service.BaseService]: Abstract base
        class providing ``run()``, ``run_forever()``, and ``from_yaml()``.
    [EventStore][timetrace.core.store.EventStore]: Persistence used for
        events and watermarks.
    [WatermarkStore][timetrace.services.synchronizer.watermark.WatermarkStore]:
        Per-source watermark access.

Examples:
    ```python
    from timetrace.core import EventStore
    from timetrace.services import Synchronizer

    store = EventStore.from_yaml("config/store.yaml")
    sync = Synchronizer.from_yaml("config/services/synchronizer.yaml", store=store)

    async with store:
        async with sync:
            result = await sync.sync()
    ```
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, ClassVar

from timetrace.core.base_service import BaseService
from timetrace.core.exceptions import (
    FetchError,
    FetchTimeoutError,
    StoreReadError,
    StoreUnavailableError,
    StoreWriteError,
)
from timetrace.core.metrics import SOURCE_OUTCOMES
from timetrace.models import MS_PER_SECOND
from timetrace.models.constants import ServiceName
from timetrace.sources import build_registry

from .configs import SynchronizerConfig
from .merge import merge_events
from .utils import SourceReport, SyncCycleCounters, SyncOutcome, SyncResult
from .watermark import WatermarkStore


if TYPE_CHECKING:
    from collections.abc import Callable

    from timetrace.core.store import EventStore
    from timetrace.models import Event, EventKey
    from timetrace.sources import EventSource, SourceRegistry


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * MS_PER_SECOND)


class Synchronizer(BaseService[SynchronizerConfig]):
    """Multi-source incremental event synchronization service.

    Each pass fans out one branch per registered source, stores the events
    each source returns since its watermark, and fans in a merged view of
    the last ``lookback_seconds``.

    The source registry and the clock are injectable; by default the
    registry is built from ``config.sources`` and the clock is the system
    wall clock in epoch milliseconds.

    See Also:
        [SynchronizerConfig][timetrace.services.synchronizer.SynchronizerConfig]:
            Configuration model for this service.
        [SourceRegistry][timetrace.sources.base.SourceRegistry]: Collection
            of sources synchronized by each pass.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.SYNCHRONIZER
    CONFIG_CLASS: ClassVar[type[SynchronizerConfig]] = SynchronizerConfig

    def __init__(
        self,
        store: EventStore,
        config: SynchronizerConfig | None = None,
        *,
        sources: SourceRegistry | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        config = config or SynchronizerConfig()
        super().__init__(store=store, config=config)
        self._config: SynchronizerConfig
        self._sources = sources if sources is not None else build_registry(config.sources)
        self._watermarks = WatermarkStore(store)
        self._clock = clock or now_ms
        self._counters = SyncCycleCounters()

    @property
    def sources(self) -> SourceRegistry:
        return self._sources

    @property
    def watermarks(self) -> WatermarkStore:
        return self._watermarks

    async def run(self) -> None:
        """Execute one synchronization pass with cycle-level logging and metrics.

        Delegates the core work to ``sync``.
        """
        self._logger.info(
            "cycle_started",
            sources=len(self._sources),
            lookback_seconds=self._config.lookback_seconds,
        )

        cycle_start = time.monotonic()
        result = await self.sync()

        self.set_gauge("synced_sources", self._counters.synced_sources)
        self.set_gauge("failed_sources", self._counters.failed_sources)
        self.set_gauge("inactive_sources", self._counters.inactive_sources)
        self.set_gauge("merged_events", len(result))
        self.inc_counter("total_events_fetched", self._counters.events_fetched)
        self.inc_counter("total_events_inserted", self._counters.events_inserted)

        self._logger.info(
            "cycle_completed",
            synced_sources=self._counters.synced_sources,
            failed_sources=self._counters.failed_sources,
            inactive_sources=self._counters.inactive_sources,
            events_fetched=self._counters.events_fetched,
            events_inserted=self._counters.events_inserted,
            merged_events=len(result),
            duration_s=round(time.monotonic() - cycle_start, 2),
        )

    async def sync(self) -> SyncResult:
        """Synchronize every registered source and return the merged window.

        Individual source failures never raise; they are logged and reported
        in ``SyncResult.reports``.

        Returns:
            [SyncResult][timetrace.services.synchronizer.utils.SyncResult]
            whose events are deduplicated and ascending by time.

        Raises:
            StoreUnavailableError: If the store is unreachable. No partial
                merge is returned.
        """
        self._counters.reset()
        now = self._clock()
        window_start = max(0, now - self._config.lookback_seconds * MS_PER_SECOND)
        sources = list(self._sources)

        if not sources:
            self._logger.info("no_sources_registered")
            return SyncResult()

        self._logger.info("sync_started", source_count=len(sources), window_start=window_start)

        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [
                    tg.create_task(self._sync_source_safe(source, window_start))
                    for source in sources
                ]
        except ExceptionGroup as eg:
            unavailable = eg.subgroup(StoreUnavailableError)
            if unavailable is not None:
                self._logger.error("store_unavailable", error=str(unavailable.exceptions[0]))
                raise unavailable.exceptions[0] from eg
            raise

        reports: list[SourceReport] = []
        groups: list[list[Event]] = []
        for task in tasks:
            report, events = task.result()
            reports.append(report)
            groups.append(events)

        merged = merge_events(*groups, since=window_start)

        self._logger.info(
            "sync_completed",
            merged_events=len(merged),
            failed_sources=self._counters.failed_sources,
        )
        return SyncResult(events=tuple(merged), reports=tuple(reports))

    async def _sync_source_safe(
        self, source: EventSource, window_start: int
    ) -> tuple[SourceReport, list[Event]]:
        """Run one branch, containing everything but store unavailability.

        An unexpected exception in one branch must not cancel its siblings
        in the ``TaskGroup``.
        """
        try:
            report, events = await self._sync_source(source, window_start)
        except (StoreUnavailableError, asyncio.CancelledError):
            raise
        except Exception as e:  # per-source error boundary
            self._logger.error(
                "worker_unexpected_exception",
                source=source.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            report = SourceReport(source=source.name, outcome=SyncOutcome.ERROR, error=str(e))
            events = []

        await self._counters.record(report)
        if self._config.metrics.enabled:
            SOURCE_OUTCOMES.labels(
                service=self.SERVICE_NAME, source=source.name, outcome=report.outcome
            ).inc()
        return report, events

    async def _sync_source(
        self, source: EventSource, window_start: int
    ) -> tuple[SourceReport, list[Event]]:
        """Steps 1-7 of one source's branch; returns its report and window contribution."""
        name = source.name
        log = self._logger.bind(source=name)

        if not source.is_active():
            log.debug("source_inactive")
            return SourceReport(source=name, outcome=SyncOutcome.INACTIVE), []

        try:
            watermark = await self._watermarks.get(name)
        except StoreReadError as e:
            log.warning("watermark_read_failed", error=str(e), error_type=type(e).__name__)
            return SourceReport(source=name, outcome=SyncOutcome.READ_FAILED, error=str(e)), []

        since = watermark if watermark is not None else window_start

        fetch_error: FetchError | None = None
        try:
            fetched = await source.fetch(source.kinds, since)
        except FetchError as e:
            fetch_error = e
            fetched = e.partial
            log.warning(
                "source_fetch_failed",
                error=e.cause,
                error_type=type(e).__name__,
                timeout=isinstance(e, FetchTimeoutError),
                partial=len(fetched),
                failed_kinds=",".join(sorted(e.failed_kinds)) or None,
            )
        else:
            log.debug("source_fetched", since=since, count=len(fetched))

        write_error: StoreWriteError | None = None
        new_events: list[Event] = []
        inserted = 0
        if fetched:
            try:
                new_events, inserted = await self._store_new_events(fetched)
            except StoreReadError as e:
                log.warning("existence_check_failed", error=str(e), error_type=type(e).__name__)
                return SourceReport(
                    source=name,
                    outcome=SyncOutcome.READ_FAILED,
                    since=since,
                    watermark=watermark,
                    fetched=len(fetched),
                    error=str(e),
                ), []
            except StoreWriteError as e:
                write_error = e
                log.warning("event_insert_failed", error=str(e), error_type=type(e).__name__)

        if fetched and fetch_error is None and write_error is None:
            candidate = max(event.time for event in fetched)
            try:
                if await self._watermarks.advance(name, candidate):
                    log.debug("watermark_advanced", previous=watermark, watermark=candidate)
                    watermark = candidate
            except StoreWriteError as e:
                write_error = e
                log.warning("watermark_advance_failed", error=str(e), error_type=type(e).__name__)

        try:
            window = await self._store.select_events_since(name, window_start)
        except StoreReadError as e:
            log.warning("window_read_failed", error=str(e), error_type=type(e).__name__)
            return SourceReport(
                source=name,
                outcome=SyncOutcome.READ_FAILED,
                since=since,
                watermark=watermark,
                fetched=len(fetched),
                inserted=inserted,
                error=str(e),
            ), []

        contribution = merge_events(window, new_events, since=window_start)

        if fetch_error is not None:
            outcome, error = SyncOutcome.FETCH_FAILED, fetch_error.cause
        elif write_error is not None:
            outcome, error = SyncOutcome.WRITE_FAILED, str(write_error)
        else:
            outcome, error = SyncOutcome.SYNCED, None

        log.info(
            "source_synced",
            outcome=outcome,
            since=since,
            fetched=len(fetched),
            inserted=inserted,
            merged=len(contribution),
            watermark=watermark,
        )
        return SourceReport(
            source=name,
            outcome=outcome,
            since=since,
            watermark=watermark,
            fetched=len(fetched),
            inserted=inserted,
            merged=len(contribution),
            error=error,
            failed_kinds=fetch_error.failed_kinds if fetch_error is not None else frozenset(),
        ), contribution

    async def _store_new_events(self, fetched: list[Event]) -> tuple[list[Event], int]:
        """Insert the fetched events that are not stored yet.

        Keys repeated within ``fetched`` collapse to their first occurrence.

        Returns:
            The events selected for insertion and the number of rows
            actually inserted (lower if a concurrent writer won a race).

        Raises:
            StoreReadError: If the existence check failed.
            StoreWriteError: If the insert failed.
        """
        unique: dict[EventKey, Event] = {}
        for event in fetched:
            unique.setdefault(event.key, event)

        existing = await self._store.filter_existing(unique.keys())
        new_events = [event for key, event in unique.items() if key not in existing]
        if not new_events:
            return [], 0

        inserted = await self._store.insert_event(new_events)
        return new_events, inserted
