"""Core layer: storage, service lifecycle, logging, metrics and errors.

Sits in the middle of the dependency diamond: depends only on
``timetrace.models`` and is depended upon by ``timetrace.sources`` and
``timetrace.services``.

Attributes:
    Pool: Async PostgreSQL connection pool with retry/backoff.
        See [Pool][timetrace.core.pool.Pool].
    EventStore: Event and property storage over stored procedures.
        Services use [EventStore][timetrace.core.store.EventStore], never
        [Pool][timetrace.core.pool.Pool] directly.
    BaseService: Abstract generic base class with lifecycle management and
        Prometheus metrics.
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT
from .exceptions import (
    ConfigurationError,
    DatabaseError,
    FetchError,
    FetchTimeoutError,
    InvalidPropertyError,
    StoreReadError,
    StoreUnavailableError,
    StoreWriteError,
    TimeTraceError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    SOURCE_OUTCOMES,
    MetricsConfig,
    MetricsServer,
)
from .pool import (
    DatabaseConfig,
    Pool,
    PoolConfig,
    PoolSizeConfig,
    RetryConfig,
    ServerSettingsConfig,
)
from .store import BatchConfig, EventStore, EventStoreConfig, StoreTimeoutsConfig
from .yaml import load_yaml


__all__ = [
    "CYCLE_DURATION_SECONDS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "SOURCE_OUTCOMES",
    "BaseService",
    "BaseServiceConfig",
    "BatchConfig",
    "ConfigT",
    "ConfigurationError",
    "DatabaseConfig",
    "DatabaseError",
    "EventStore",
    "EventStoreConfig",
    "FetchError",
    "FetchTimeoutError",
    "InvalidPropertyError",
    "Logger",
    "MetricsConfig",
    "MetricsServer",
    "Pool",
    "PoolConfig",
    "PoolSizeConfig",
    "RetryConfig",
    "ServerSettingsConfig",
    "StoreReadError",
    "StoreTimeoutsConfig",
    "StoreUnavailableError",
    "StoreWriteError",
    "StructuredFormatter",
    "TimeTraceError",
    "format_kv_pairs",
    "load_yaml",
]
