"""
macOS unified log source.

Runs one ``log show --start <local time> --style json --predicate <p>`` call
per event kind. A kind that fails does not stop the others: the events of
the successful kinds are returned inside
[FetchError.partial][timetrace.core.exceptions.FetchError] so the caller can
still store them.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING, ClassVar

from timetrace.core.exceptions import FetchError, FetchTimeoutError
from timetrace.models import EventName

from .base import EventSource
from .utils import ms_to_datetime, parse_timestamp, run_command


if TYPE_CHECKING:
    from collections.abc import Iterable

    from timetrace.models import Event


logger = logging.getLogger(__name__)


MAC_PREDICATES: dict[EventName, str] = {
    EventName.BOOT: 'process == "kernel" AND eventMessage CONTAINS "BOOT_TIME"',
    EventName.SHUTDOWN: 'process == "kernel" AND eventMessage CONTAINS "SHUTDOWN_TIME"',
    EventName.LOGON: 'process == "loginwindow" AND eventMessage CONTAINS "sessionDidLogin"',
    EventName.LOGOFF: 'process == "loginwindow" AND eventMessage CONTAINS "sessionDidLogout"',
    EventName.STANDBY_ENTER: 'process == "powerd" AND eventMessage CONTAINS "Entering Sleep"',
    EventName.STANDBY_EXIT: 'process == "powerd" AND eventMessage CONTAINS "Wake from"',
}

_NO_MATCHES_MARKER = "No matches found"

# e.g. "2024-01-15 09:30:00.123456+0100"
_LOG_TIMESTAMP_FORMATS = ("%Y-%m-%d %H:%M:%S.%f%z", "%Y-%m-%d %H:%M:%S%z")

_DEFAULT_DETAILS = "No message"


def format_start(since: int) -> str:
    """Format ``since`` as the local ``YYYY-MM-DD HH:MM:SS`` that ``log show --start`` expects.

    Truncation to the second only widens the query; the caller filters by
    ``since`` afterwards.
    """
    return ms_to_datetime(since, local=True).strftime("%Y-%m-%d %H:%M:%S")


class MacEventSource(EventSource):
    """Boot, shutdown, login/logout and sleep/wake events from the unified log.

    Args:
        name: Source name (default ``"macos"``).
        kinds: Default kinds to fetch (empty = all supported).
        timeout: Seconds allowed for each ``log show`` call.
        platform: Platform override, defaults to ``sys.platform``.
    """

    supported_kinds: ClassVar[frozenset[EventName]] = frozenset(MAC_PREDICATES)

    EXECUTABLE: ClassVar[str] = "log"

    def __init__(
        self,
        *,
        name: str = "macos",
        kinds: Iterable[EventName | str] = (),
        timeout: float = 60.0,
        platform: str | None = None,
    ) -> None:
        super().__init__(name, kinds)
        self._timeout = timeout
        self._platform = platform or sys.platform

    def is_active(self) -> bool:
        return self._platform == "darwin"

    async def fetch(self, kinds: frozenset[EventName], since: int) -> list[Event]:
        start = format_start(since)
        events: list[Event] = []
        failures: dict[EventName, FetchError] = {}

        for kind in sorted(self.resolve_kinds(kinds)):
            try:
                events.extend(await self._query_kind(kind, start, since))
            except FetchError as e:
                logger.warning("kind_query_failed source=%s kind=%s error=%s", self.name, kind, e.cause)
                failures[kind] = e

        if failures:
            cause = "; ".join(f"{kind}: {error.cause}" for kind, error in failures.items())
            error_cls = (
                FetchTimeoutError
                if all(isinstance(e, FetchTimeoutError) for e in failures.values())
                else FetchError
            )
            raise error_cls(self.name, cause, partial=events, failed_kinds=failures)

        return events

    async def _query_kind(self, kind: EventName, start: str, since: int) -> list[Event]:
        try:
            result = await run_command(
                self.EXECUTABLE,
                "show",
                "--start",
                start,
                "--style",
                "json",
                "--predicate",
                MAC_PREDICATES[kind],
                timeout=self._timeout,
            )
        except TimeoutError as e:
            raise FetchTimeoutError(
                self.name, f"log show did not finish within {self._timeout}s"
            ) from e
        except OSError as e:
            raise FetchError(self.name, f"failed to run log show: {e}") from e

        if _NO_MATCHES_MARKER in result.stdout or _NO_MATCHES_MARKER in result.stderr:
            return []
        if not result.ok:
            raise FetchError(
                self.name, f"log show exited with status {result.returncode}: {result.stderr.strip()}"
            )

        return self.parse_output(result.stdout, kind, since)

    def parse_output(self, stdout: str, kind: EventName, since: int) -> list[Event]:
        """Convert the JSON array printed by ``log show --style json`` to events.

        Raises:
            FetchError: If the output is not valid JSON.
        """
        text = stdout.strip()
        if not text:
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise FetchError(self.name, f"invalid log show JSON output: {e}") from e
        if not isinstance(payload, list):
            return []

        events: list[Event] = []
        for entry in payload:
            if not isinstance(entry, dict) or not isinstance(entry.get("timestamp"), str):
                continue
            try:
                time = parse_timestamp(entry["timestamp"], *_LOG_TIMESTAMP_FORMATS)
            except ValueError as e:
                logger.warning("invalid_log_timestamp source=%s error=%s", self.name, e)
                continue
            if time < since:
                continue
            event = self.make_event(time, kind, entry.get("eventMessage") or _DEFAULT_DETAILS)
            if event is not None:
                events.append(event)
        return events
