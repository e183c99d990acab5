"""Command-line runner for timetrace services.

A service either runs a single pass (``--once``, exit status reflects the
pass) or loops until SIGINT/SIGTERM, optionally exposing Prometheus metrics.

Examples:
    ```bash
    python -m timetrace synchronizer --once
    python -m timetrace synchronizer --log-level DEBUG
    python -m timetrace synchronizer --config /etc/timetrace/sync.yaml \\
        --store-config /etc/timetrace/store.yaml
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from timetrace.core import EventStore, MetricsServer
from timetrace.core.base_service import BaseService
from timetrace.core.exceptions import ConfigurationError
from timetrace.core.logger import Logger, StructuredFormatter
from timetrace.core.yaml import load_yaml
from timetrace.models.constants import ServiceName
from timetrace.services.synchronizer import Synchronizer


CONFIG_DIR = Path("config")
STORE_CONFIG = CONFIG_DIR / "store.yaml"

SERVICE_REGISTRY: dict[str, type[BaseService[Any]]] = {
    ServiceName.SYNCHRONIZER: Synchronizer,
}

# Keys a service YAML may set under ``pool:`` and the store section they land in
POOL_OVERRIDE_SECTIONS: dict[str, str] = {
    "user": "database",
    "password_env": "database",
    "min_size": "size",
    "max_size": "size",
    "application_name": "server_settings",
}

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

logger = Logger("cli")


def default_config_path(service_name: str) -> Path:
    """``config/services/<service>.yaml``."""
    return CONFIG_DIR / "services" / f"{service_name}.yaml"


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------


async def _run_once(service_name: str, service: BaseService[Any]) -> int:
    try:
        async with service:
            await service.run()
    except Exception as e:  # one-shot exit status boundary
        logger.error("service_failed", service=service_name, error=str(e), error_type=type(e).__name__)
        return EXIT_FAILURE
    logger.info("service_pass_completed", service=service_name)
    return EXIT_OK


async def _run_until_stopped(service_name: str, service: BaseService[Any]) -> int:
    metrics = service.config.metrics
    metrics_server = MetricsServer(metrics)
    await metrics_server.start()
    if metrics.enabled:
        logger.info("metrics_listening", host=metrics.host, port=metrics.port, path=metrics.path)

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, _request_stop, service, signum)

    try:
        async with service:
            await service.run_forever()
    except Exception as e:  # continuous-mode exit status boundary
        logger.error("service_failed", service=service_name, error=str(e), error_type=type(e).__name__)
        return EXIT_FAILURE
    finally:
        await metrics_server.stop()
    return EXIT_OK


def _request_stop(service: BaseService[Any], signum: signal.Signals) -> None:
    logger.info("stop_requested", signal=signum.name)
    service.request_shutdown()


async def run_service(
    service_name: str,
    service_class: type[BaseService[Any]],
    store: EventStore,
    service_dict: dict[str, Any],
    *,
    once: bool,
) -> int:
    """Build ``service_class`` from ``service_dict`` and run it.

    Returns:
        ``0`` if the pass (or the loop) ended normally, ``1`` if it raised.

    Raises:
        ValueError: If ``service_dict`` does not validate.
    """
    service = service_class.from_dict(service_dict, store=store)
    if once:
        return await _run_once(service_name, service)
    return await _run_until_stopped(service_name, service)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="timetrace", description="Run a timetrace service.")
    parser.add_argument("service", choices=sorted(SERVICE_REGISTRY), help="service to run")
    parser.add_argument(
        "--config",
        type=Path,
        help="service YAML (default: config/services/<service>.yaml)",
    )
    parser.add_argument(
        "--store-config",
        type=Path,
        default=STORE_CONFIG,
        help=f"event store YAML (default: {STORE_CONFIG})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="minimum level to log (default: INFO)",
    )
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Route all records (timetrace ``Logger`` and plain ``logging``) through ``StructuredFormatter``."""
    stream = logging.StreamHandler()
    stream.setFormatter(StructuredFormatter())
    logging.root.addHandler(stream)
    logging.root.setLevel(getattr(logging, level))


def _read_config(path: Path) -> dict[str, Any]:
    if path.exists():
        return load_yaml(path)
    logger.warning("config_missing", path=str(path))
    return {}


def _apply_pool_overrides(
    store_dict: dict[str, Any],
    pool_overrides: dict[str, Any] | None,
    service_name: str,
) -> None:
    """Fold a service's ``pool:`` section into the shared store configuration.

    Only the keys in ``POOL_OVERRIDE_SECTIONS`` are honoured. The
    connection's ``application_name`` defaults to the service name.
    """
    pool = store_dict.setdefault("pool", {})
    pool.setdefault("server_settings", {}).setdefault("application_name", service_name)

    for key, value in (pool_overrides or {}).items():
        section = POOL_OVERRIDE_SECTIONS.get(key)
        if section is None:
            logger.warning("pool_override_ignored", key=key)
            continue
        pool.setdefault(section, {})[key] = value


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        store_dict = _read_config(args.store_config)
        service_dict = _read_config(args.config or default_config_path(args.service))
        _apply_pool_overrides(store_dict, service_dict.pop("pool", None), args.service)
        store = EventStore.from_dict(store_dict)
    except (ConfigurationError, ValueError) as e:
        logger.error("config_invalid", error=str(e))
        return EXIT_FAILURE

    try:
        async with store:
            return await run_service(
                service_name=args.service,
                service_class=SERVICE_REGISTRY[args.service],
                store=store,
                service_dict=service_dict,
                once=args.once,
            )
    except ConnectionError as e:
        logger.error("store_connection_failed", error=str(e))
        return EXIT_FAILURE
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


def cli() -> None:
    """``timetrace`` console script."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
