r"""timetrace -- Incremental activity-event synchronization.

Collects activity events (boots, logons, standby transitions, issue
changes) from several sources, stores them once in PostgreSQL and serves a
deduplicated, time-ordered view of a rolling window.

Imports flow strictly downward:

```text
              services         Synchronization orchestration
               /    \
            core   sources     Storage, logging, metrics / event adapters
               \    /
               models          Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Pure frozen dataclasses. Zero I/O, depends only on stdlib.
    core: Connection pool, event store, base service, exceptions,
        logging, metrics.
    sources: Event source abstraction, registry and built-in adapters.
    services: The synchronizer service.

Note:
    Top-level imports (``from timetrace import Event``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("timetrace")

__all__ = [
    "BaseService",
    "Event",
    "EventKey",
    "EventName",
    "EventSource",
    "EventStore",
    "EventStoreConfig",
    "Logger",
    "Pool",
    "PoolConfig",
    "Property",
    "PropertyType",
    "SourceRegistry",
    "SyncResult",
    "Synchronizer",
    "SynchronizerConfig",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("timetrace.core", "BaseService"),
    "EventStore": ("timetrace.core", "EventStore"),
    "EventStoreConfig": ("timetrace.core", "EventStoreConfig"),
    "Logger": ("timetrace.core", "Logger"),
    "Pool": ("timetrace.core", "Pool"),
    "PoolConfig": ("timetrace.core", "PoolConfig"),
    "Event": ("timetrace.models", "Event"),
    "EventKey": ("timetrace.models", "EventKey"),
    "EventName": ("timetrace.models", "EventName"),
    "Property": ("timetrace.models", "Property"),
    "PropertyType": ("timetrace.models", "PropertyType"),
    "EventSource": ("timetrace.sources", "EventSource"),
    "SourceRegistry": ("timetrace.sources", "SourceRegistry"),
    "SyncResult": ("timetrace.services", "SyncResult"),
    "Synchronizer": ("timetrace.services", "Synchronizer"),
    "SynchronizerConfig": ("timetrace.services", "SynchronizerConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'timetrace' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
