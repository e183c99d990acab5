"""
Unit tests for sources.utils module.

Tests:
- run_command() output collection, exit status and timeout handling
- ms_to_datetime() / datetime_to_ms() conversion
- parse_timestamp() format fallback
"""

import asyncio
from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from timetrace.sources.utils import (
    CommandResult,
    datetime_to_ms,
    ms_to_datetime,
    parse_timestamp,
    run_command,
)


def make_process(stdout=b"", stderr=b"", returncode=0):
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    process.kill = MagicMock()
    process.returncode = returncode
    return process


# ============================================================================
# run_command
# ============================================================================


class TestRunCommand:
    """run_command() subprocess handling."""

    async def test_collects_output(self):
        process = make_process(stdout=b"hello\n", stderr=b"")
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=process)
        ) as create:
            result = await run_command("echo", "hello", timeout=5)

        assert result == CommandResult(0, "hello\n", "")
        assert result.ok is True
        args = create.call_args
        assert args.args == ("echo", "hello")
        assert args.kwargs["stdout"] is asyncio.subprocess.PIPE

    async def test_nonzero_exit_returned(self):
        process = make_process(stderr=b"boom", returncode=2)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            result = await run_command("false", timeout=5)

        assert result.ok is False
        assert result.returncode == 2
        assert result.stderr == "boom"

    async def test_invalid_utf8_replaced(self):
        process = make_process(stdout=b"caf\xe9")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            result = await run_command("cat", timeout=5)
        assert result.stdout == "caf\ufffd"

    async def test_timeout_kills_process(self):
        process = make_process()

        async def never_finishes():
            await asyncio.sleep(10)

        process.communicate = never_finishes
        with (
            patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)),
            pytest.raises(TimeoutError),
        ):
            await run_command("sleep", "10", timeout=0.01)

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    async def test_missing_program_raises(self):
        with (
            patch(
                "asyncio.create_subprocess_exec",
                AsyncMock(side_effect=FileNotFoundError("nope")),
            ),
            pytest.raises(FileNotFoundError),
        ):
            await run_command("nope", timeout=5)


# ============================================================================
# Timestamp helpers
# ============================================================================


class TestMsConversion:
    """Epoch millisecond conversion."""

    def test_ms_to_datetime_utc(self):
        dt = ms_to_datetime(1_700_000_000_123)
        assert dt == datetime(2023, 11, 14, 22, 13, 20, 123000, tzinfo=UTC)

    def test_ms_to_datetime_local_is_same_instant(self):
        local = ms_to_datetime(1_700_000_000_000, local=True)
        assert local.tzinfo is not None
        assert local == ms_to_datetime(1_700_000_000_000)

    def test_datetime_to_ms_aware(self):
        dt = datetime(2023, 11, 14, 22, 13, 20, 123000, tzinfo=UTC)
        assert datetime_to_ms(dt) == 1_700_000_000_123

    def test_datetime_to_ms_offset(self):
        dt = datetime(2023, 11, 14, 23, 13, 20, tzinfo=timezone(timedelta(hours=1)))
        assert datetime_to_ms(dt) == 1_700_000_000_000

    def test_epoch(self):
        assert datetime_to_ms(ms_to_datetime(0)) == 0


class TestParseTimestamp:
    """parse_timestamp() format fallback."""

    def test_first_matching_format(self):
        value = "2023-11-14 22:13:20.123000+0000"
        assert parse_timestamp(value, "%Y-%m-%d %H:%M:%S.%f%z") == 1_700_000_000_123

    def test_later_format(self):
        value = "2023-11-14 22:13:20+0000"
        formats = ("%Y-%m-%d %H:%M:%S.%f%z", "%Y-%m-%d %H:%M:%S%z")
        assert parse_timestamp(value, *formats) == 1_700_000_000_000

    def test_iso_fallback(self):
        assert parse_timestamp("2023-11-14T22:13:20.123+00:00") == 1_700_000_000_123

    def test_unparseable(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday", "%Y-%m-%d")
