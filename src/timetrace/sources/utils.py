"""Subprocess and timestamp helpers shared by the source adapters."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import NamedTuple

from timetrace.models import MS_PER_SECOND


logger = logging.getLogger(__name__)


class CommandResult(NamedTuple):
    """Exit status and decoded output of a finished subprocess."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(program: str, *args: str, timeout: float) -> CommandResult:  # noqa: ASYNC109
    """Run ``program`` without a shell and collect its output.

    The process is killed when ``timeout`` elapses. A non-zero exit status
    is returned, not raised: callers decide which failures are benign
    (e.g. "no matches").

    Raises:
        FileNotFoundError: If ``program`` is not installed.
        TimeoutError: If the process did not finish within ``timeout`` seconds.
        OSError: If the process could not be started.
    """
    process = await asyncio.create_subprocess_exec(
        program,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        logger.warning("command_timeout program=%s timeout=%s", program, timeout)
        raise

    return CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def ms_to_datetime(ms: int, *, local: bool = False) -> datetime:
    """Convert epoch milliseconds to an aware datetime (UTC, or local zone)."""
    dt = datetime.fromtimestamp(ms / MS_PER_SECOND, tz=UTC)
    return dt.astimezone() if local else dt


def datetime_to_ms(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive values are local time."""
    return int(round(dt.timestamp() * MS_PER_SECOND))


def parse_timestamp(value: str, *formats: str) -> int:
    """Parse a timestamp string to epoch milliseconds.

    ``formats`` are tried in order with ``datetime.strptime``; ISO 8601 via
    ``datetime.fromisoformat`` is the final fallback.

    Raises:
        ValueError: If no format matches.
    """
    for fmt in formats:
        try:
            return datetime_to_ms(datetime.strptime(value, fmt))
        except ValueError:
            continue
    return datetime_to_ms(datetime.fromisoformat(value))
