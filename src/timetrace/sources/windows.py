"""
Windows System event log source.

Queries the ``System`` log with a single PowerShell ``Get-WinEvent`` call
filtered by event id and start time, and maps each record to an event kind
by its ``(Id, ProviderName)`` pair:

| Kind            | Id   | Provider                          |
|-----------------|------|-----------------------------------|
| boot            | 12   | Microsoft-Windows-Kernel-General  |
| shutdown        | 13   | Microsoft-Windows-Kernel-General  |
| logon           | 7001 | Microsoft-Windows-Winlogon        |
| logoff          | 7002 | Microsoft-Windows-Winlogon        |
| standby_enter   | 506  | Microsoft-Windows-Kernel-Power    |
| standby_exit    | 507  | Microsoft-Windows-Kernel-Power    |

PowerShell 7 (``pwsh``) is preferred; Windows PowerShell (``powershell.exe``)
is used when ``pwsh`` is not installed.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from typing import TYPE_CHECKING, Any, ClassVar, NamedTuple

from timetrace.core.exceptions import FetchError, FetchTimeoutError
from timetrace.models import EventName

from .base import EventSource
from .utils import CommandResult, ms_to_datetime, parse_timestamp, run_command


if TYPE_CHECKING:
    from collections.abc import Iterable

    from timetrace.models import Event


logger = logging.getLogger(__name__)


class WindowsEventId(NamedTuple):
    """Identity of a Windows event log record."""

    id: int
    provider: str


WINDOWS_EVENTS: dict[EventName, WindowsEventId] = {
    EventName.BOOT: WindowsEventId(12, "Microsoft-Windows-Kernel-General"),
    EventName.SHUTDOWN: WindowsEventId(13, "Microsoft-Windows-Kernel-General"),
    EventName.LOGON: WindowsEventId(7001, "Microsoft-Windows-Winlogon"),
    EventName.LOGOFF: WindowsEventId(7002, "Microsoft-Windows-Winlogon"),
    EventName.STANDBY_ENTER: WindowsEventId(506, "Microsoft-Windows-Kernel-Power"),
    EventName.STANDBY_EXIT: WindowsEventId(507, "Microsoft-Windows-Kernel-Power"),
}

_KIND_BY_EVENT_ID: dict[WindowsEventId, EventName] = {v: k for k, v in WINDOWS_EVENTS.items()}

_NO_EVENTS_MARKER = "No events were found"

# Windows PowerShell 5.1 serializes DateTime as "/Date(1700000000000)/"
_DOTNET_DATE = re.compile(r"^/Date\((-?\d+)(?:[+-]\d{4})?\)/$")

# PowerShell 7 emits 7 fractional digits; datetime accepts at most 6
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")

_POWERSHELL_ARGS = ("-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command")


def build_script(kinds: Iterable[EventName], since: int) -> str:
    """Build the ``Get-WinEvent`` pipeline for ``kinds`` starting at ``since``."""
    ids = ",".join(str(i) for i in sorted({WINDOWS_EVENTS[k].id for k in kinds}))
    start = ms_to_datetime(since).strftime("%Y-%m-%dT%H:%M:%S.") + f"{since % 1000:03d}Z"
    return (
        "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8; "
        f"Get-WinEvent -FilterHashtable @{{LogName='System';Id={ids};StartTime='{start}'}} "
        "| Select-Object TimeCreated, Id, ProviderName, Message "
        "| ConvertTo-Json"
    )


def parse_time_created(value: Any) -> int:
    """Convert a ``TimeCreated`` value from either PowerShell edition to epoch ms.

    Raises:
        ValueError: If the value is neither a ``/Date(ms)/`` literal nor an
            ISO 8601 timestamp.
    """
    if isinstance(value, dict):
        # ConvertTo-Json -Depth > 1 wraps DateTime as {"value": ..., "DateTime": ...}
        value = value.get("value", value.get("DateTime"))
    if not isinstance(value, str):
        raise ValueError(f"unsupported TimeCreated value: {value!r}")
    match = _DOTNET_DATE.match(value)
    if match:
        return int(match.group(1))
    return parse_timestamp(_EXCESS_FRACTION.sub(r"\1", value))


class WindowsEventSource(EventSource):
    """Boot, shutdown, logon/logoff and standby events from the Windows event log.

    Args:
        name: Source name (default ``"windows"``).
        kinds: Default kinds to fetch (empty = all supported).
        timeout: Seconds allowed for the PowerShell call.
        platform: Platform override, defaults to ``sys.platform``.
    """

    supported_kinds: ClassVar[frozenset[EventName]] = frozenset(WINDOWS_EVENTS)

    EXECUTABLES: ClassVar[tuple[str, ...]] = ("pwsh", "powershell.exe")

    def __init__(
        self,
        *,
        name: str = "windows",
        kinds: Iterable[EventName | str] = (),
        timeout: float = 60.0,
        platform: str | None = None,
    ) -> None:
        super().__init__(name, kinds)
        self._timeout = timeout
        self._platform = platform or sys.platform

    def is_active(self) -> bool:
        return self._platform == "win32"

    async def fetch(self, kinds: frozenset[EventName], since: int) -> list[Event]:
        wanted = self.resolve_kinds(kinds)
        if not wanted:
            return []

        result = await self._run_powershell(build_script(wanted, since))

        if not result.ok:
            if _NO_EVENTS_MARKER in result.stderr:
                return []
            raise FetchError(
                self.name,
                f"PowerShell exited with status {result.returncode}: {result.stderr.strip()}",
            )

        return self.parse_output(result.stdout, wanted, since)

    def parse_output(self, stdout: str, kinds: frozenset[EventName], since: int) -> list[Event]:
        """Convert ``ConvertTo-Json`` output to events.

        A single match is serialized as one object instead of an array;
        both shapes are accepted. Records with an unknown ``(Id, Provider)``
        pair, a kind outside ``kinds`` or a time before ``since`` are
        dropped.

        Raises:
            FetchError: If the output is not valid JSON.
        """
        text = stdout.strip()
        if not text:
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise FetchError(self.name, f"invalid PowerShell JSON output: {e}") from e

        records = [payload] if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise FetchError(self.name, f"unexpected PowerShell output type: {type(payload).__name__}")

        events: list[Event] = []
        for record in records:
            if not isinstance(record, dict):
                continue
            event_id = record.get("Id")
            provider = record.get("ProviderName")
            if (
                not isinstance(event_id, int)
                or isinstance(event_id, bool)
                or not isinstance(provider, str)
            ):
                continue
            kind = _KIND_BY_EVENT_ID.get(WindowsEventId(event_id, provider))
            if kind is None or kind not in kinds:
                continue
            try:
                time = parse_time_created(record.get("TimeCreated"))
            except ValueError as e:
                logger.warning("invalid_time_created source=%s error=%s", self.name, e)
                continue
            if time < since:
                continue
            message = record.get("Message") or ""
            event = self.make_event(time, kind, f"{provider}: {message}")
            if event is not None:
                events.append(event)
        return events

    async def _run_powershell(self, script: str) -> CommandResult:
        """Run ``script`` with the first PowerShell executable that is installed."""
        for executable in self.EXECUTABLES:
            try:
                return await run_command(
                    executable, *_POWERSHELL_ARGS, script, timeout=self._timeout
                )
            except FileNotFoundError:
                logger.debug("powershell_not_found executable=%s", executable)
                continue
            except TimeoutError as e:
                raise FetchTimeoutError(
                    self.name, f"{executable} did not finish within {self._timeout}s"
                ) from e
            except OSError as e:
                raise FetchError(self.name, f"failed to start {executable}: {e}") from e

        raise FetchError(self.name, f"PowerShell is not installed (tried {', '.join(self.EXECUTABLES)})")
