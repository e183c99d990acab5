"""
Service lifecycle shared by every timetrace daemon.

A service is a class with one bounded unit of work,
[run()][timetrace.core.base_service.BaseService.run]. The base class turns
that into a daemon: [run_forever()][timetrace.core.base_service.BaseService.run_forever]
repeats it every ``interval`` seconds, counts failed passes, and gives up
after too many in a row. A stop request (signal handler, ``async with`` exit)
interrupts the sleep between passes, never a pass in progress.

State that must outlive a pass (events, watermarks) belongs in the
[EventStore][timetrace.core.store.EventStore] handed to the constructor.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from .logger import Logger
from .metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
)
from .yaml import load_yaml


if TYPE_CHECKING:
    from timetrace.models import ServiceName

    from .store import EventStore


# Never turned into a failed pass; they end run_forever immediately
_NOT_A_FAILURE = (asyncio.CancelledError, KeyboardInterrupt, SystemExit)


class BaseServiceConfig(BaseModel):
    """Loop settings common to all services.

    ``max_consecutive_failures = 0`` means the loop never gives up.
    """

    interval: float = Field(default=300.0, ge=1.0, description="Seconds to sleep between passes")
    max_consecutive_failures: int = Field(
        default=5, ge=0, description="Failed passes in a row before the loop exits"
    )
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """A store-backed unit of work that can run once or on an interval.

    Subclasses declare ``SERVICE_NAME`` (log and metric label) and
    ``CONFIG_CLASS`` (validated by [from_dict()][timetrace.core.base_service.BaseService.from_dict])
    and implement [run()][timetrace.core.base_service.BaseService.run].

    Examples:
        ```python
        async with EventStore.from_yaml("config/store.yaml") as store:
            async with Synchronizer.from_yaml("config/services/synchronizer.yaml", store) as svc:
                await svc.run_forever()
        ```
    """

    SERVICE_NAME: ClassVar[ServiceName | str]
    CONFIG_CLASS: ClassVar[type[BaseServiceConfig]]

    def __init__(self, store: EventStore, config: ConfigT | None = None) -> None:
        if config is None:
            config = cast("ConfigT", self.CONFIG_CLASS())
        self._config: ConfigT = config
        self._store = store
        self._logger = Logger(str(self.SERVICE_NAME))
        self._stop = asyncio.Event()

    @classmethod
    def from_dict(cls, data: dict[str, Any], store: EventStore, **kwargs: Any) -> Self:
        """Validate ``data`` with ``CONFIG_CLASS`` and build the service.

        Extra keyword arguments go to the subclass constructor.

        Raises:
            pydantic.ValidationError: If ``data`` does not match ``CONFIG_CLASS``.
        """
        config = cls.CONFIG_CLASS.model_validate(data)
        return cls(store=store, config=cast("ConfigT", config), **kwargs)

    @classmethod
    def from_yaml(cls, config_path: str, store: EventStore, **kwargs: Any) -> Self:
        return cls.from_dict(load_yaml(config_path), store=store, **kwargs)

    @property
    def config(self) -> ConfigT:
        return self._config

    @property
    def store(self) -> EventStore:
        return self._store

    @property
    def is_running(self) -> bool:
        """False once a stop was requested."""
        return not self._stop.is_set()

    @abstractmethod
    async def run(self) -> None:
        """One pass of the service's work."""

    def request_shutdown(self) -> None:
        """Ask the loop to stop after the current pass. Signal-handler safe."""
        self._stop.set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Sleep for ``timeout`` seconds or until a stop is requested.

        Returns:
            True if the sleep ended because of a stop request.
        """
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    async def _timed_pass(self) -> Exception | None:
        """Run one pass and report it to Prometheus; hand back what it raised."""
        started = time.monotonic()
        try:
            await self.run()
        except _NOT_A_FAILURE:
            raise
        except Exception as e:  # a failed pass is counted, not propagated
            self.inc_counter("cycles_failed")
            self.inc_counter(f"errors_{type(e).__name__}")
            return e

        elapsed = time.monotonic() - started
        self.inc_counter("cycles_success")
        self.set_gauge("last_cycle_timestamp", time.time())
        if self._config.metrics.enabled:
            CYCLE_DURATION_SECONDS.labels(service=self.SERVICE_NAME).observe(elapsed)
        return None

    async def run_forever(self) -> None:
        """Repeat [run()][timetrace.core.base_service.BaseService.run] until stopped.

        The loop ends when a stop is requested or when
        ``max_consecutive_failures`` passes in a row raised. Any successful
        pass resets the streak.
        """
        interval = self._config.interval
        limit = self._config.max_consecutive_failures
        if self._config.metrics.enabled:
            SERVICE_INFO.info({"service": str(self.SERVICE_NAME)})
        self._logger.info("loop_started", interval=interval, failure_limit=limit)

        streak = 0
        while self.is_running:
            error = await self._timed_pass()
            if error is None:
                streak = 0
                self._logger.info("pass_completed", next_pass_in_s=interval)
            else:
                streak += 1
                self._logger.error(
                    "pass_failed",
                    error=str(error),
                    error_type=type(error).__name__,
                    streak=streak,
                )
            self.set_gauge("consecutive_failures", streak)

            if limit and streak >= limit:
                self._logger.critical("failure_limit_reached", streak=streak, limit=limit)
                break
            if await self.wait(interval):
                break

        self._logger.info("loop_stopped")

    async def __aenter__(self) -> Self:
        self._stop.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(self, *_exc: object) -> None:
        self._stop.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """``timetrace_service_gauge{service, name}``; ignored with metrics off."""
        if self._config.metrics.enabled:
            SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """``timetrace_service_counter{service, name}``; ignored with metrics off."""
        if self._config.metrics.enabled:
            SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
