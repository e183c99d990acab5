"""
Prometheus instrumentation for timetrace services.

All metric families live in the default ``prometheus_client`` registry and
carry a ``service`` label, so several services in one process stay apart.
Most values are written through
[BaseService.set_gauge()][timetrace.core.base_service.BaseService.set_gauge] and
[BaseService.inc_counter()][timetrace.core.base_service.BaseService.inc_counter];
the loop itself maintains:

    gauge    consecutive_failures, last_cycle_timestamp
    counter  cycles_success, cycles_failed, errors_<ExceptionType>

[MetricsServer][timetrace.core.metrics.MetricsServer] exposes the registry
over HTTP when ``metrics.enabled`` is set in the service configuration.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Where to serve ``/metrics``. Off unless ``enabled``."""

    enabled: bool = False
    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=9464, ge=1024, le=65535)
    path: str = Field(default="/metrics", pattern=r"^/")


# ---------------------------------------------------------------------------
# Metric families
# ---------------------------------------------------------------------------

SERVICE_INFO = Info("timetrace_service", "Name of the running timetrace service")

SERVICE_GAUGE = Gauge(
    "timetrace_service_gauge",
    "Last value reported by a service, by name",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "timetrace_service_counter",
    "Running total reported by a service, by name",
    ["service", "name"],
)

SOURCE_OUTCOMES = Counter(
    "timetrace_source_outcomes",
    "Per-source result of each synchronization pass",
    ["service", "source", "outcome"],
)

CYCLE_DURATION_SECONDS = Histogram(
    "timetrace_cycle_duration_seconds",
    "Wall time of successful service passes",
    ["service"],
    buckets=(0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 180),
)


# ---------------------------------------------------------------------------
# Exposition
# ---------------------------------------------------------------------------


class MetricsServer:
    """aiohttp endpoint serving the default registry in text format.

    ``start()`` and ``stop()`` may be called regardless of state; with
    metrics disabled ``start()`` does nothing.
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Raises ``OSError`` if ``host:port`` cannot be bound."""
        if self._runner is not None or not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)
        runner = web.AppRunner(app, access_log=None)
        await runner.setup()

        site = web.TCPSite(runner, host=self._config.host, port=self._config.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})
