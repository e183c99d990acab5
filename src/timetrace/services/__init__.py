"""Long-running services built on [BaseService][timetrace.core.base_service.BaseService].

Services are the top layer, depending on [timetrace.core][timetrace.core],
[timetrace.sources][timetrace.sources] and [timetrace.models][timetrace.models].
Each service implements ``async def run()`` for one cycle of work.

Attributes:
    Synchronizer: Incremental multi-source event collection with per-source
        watermarks and a merged rolling-window view.

Examples:
    ```python
    from timetrace.core import EventStore
    from timetrace.services import Synchronizer

    store = EventStore.from_yaml("config/store.yaml")
    sync = Synchronizer.from_yaml("config/services/synchronizer.yaml", store=store)

    async with store:
        async with sync:
            await sync.run_forever()
    ```
"""

from .synchronizer import (
    SourceReport,
    SyncOutcome,
    SyncResult,
    Synchronizer,
    SynchronizerConfig,
    WatermarkStore,
)


__all__ = [
    "SourceReport",
    "SyncOutcome",
    "SyncResult",
    "Synchronizer",
    "SynchronizerConfig",
    "WatermarkStore",
]
