"""Synchronizer service package.

Re-exports all public symbols::

    from timetrace.services.synchronizer import Synchronizer, SynchronizerConfig
"""

from .configs import SynchronizerConfig
from .merge import merge_events
from .service import Synchronizer, now_ms
from .utils import SourceReport, SyncCycleCounters, SyncOutcome, SyncResult
from .watermark import WatermarkStore


__all__ = [
    "SourceReport",
    "SyncCycleCounters",
    "SyncOutcome",
    "SyncResult",
    "Synchronizer",
    "SynchronizerConfig",
    "WatermarkStore",
    "merge_events",
    "now_ms",
]
