"""
Unit tests for sources.macos module.

Tests:
- format_start() local-time bound
- MacEventSource.parse_output() entry mapping and filtering
- MacEventSource.fetch() per-kind queries, no-match marker, partial failures
"""

import json
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from timetrace.core.exceptions import FetchError, FetchTimeoutError
from timetrace.models import EventName
from timetrace.sources.macos import MAC_PREDICATES, MacEventSource, format_start
from timetrace.sources.utils import CommandResult


T0 = 1_700_000_000_000


def log_output(*entries):
    return json.dumps(
        [{"timestamp": ts, "eventMessage": msg, "processImagePath": "/x"} for ts, msg in entries]
    )


def scripted_run(outputs):
    """run_command replacement answering by predicate; ``outputs`` maps kind -> result."""

    async def run(program, *args, timeout):
        predicate = args[args.index("--predicate") + 1]
        kind = next(k for k, p in MAC_PREDICATES.items() if p == predicate)
        outcome = outputs.get(kind, CommandResult(0, "[]", ""))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return AsyncMock(side_effect=run)


@pytest.fixture
def source():
    return MacEventSource(platform="darwin")


# ============================================================================
# Helpers
# ============================================================================


class TestFormatStart:
    """format_start() output."""

    def test_local_time_to_the_second(self):
        expected = datetime.fromtimestamp(T0 / 1000).strftime("%Y-%m-%d %H:%M:%S")
        assert format_start(T0 + 999) == expected


# ============================================================================
# MacEventSource
# ============================================================================


class TestIsActive:
    """Platform detection."""

    def test_active_on_darwin(self, source):
        assert source.is_active() is True

    def test_inactive_elsewhere(self):
        assert MacEventSource(platform="win32").is_active() is False

    def test_supports_os_kinds_only(self, source):
        assert EventName.ISSUE_CREATED not in source.supported_kinds
        assert len(source.supported_kinds) == 6


class TestParseOutput:
    """parse_output() mapping."""

    def test_entries(self, source):
        stdout = log_output(
            ("2023-11-14 22:13:20.123000+0000", "Wake from Normal Sleep"),
            ("2023-11-14 22:13:21+0000", "Wake from Deep Idle"),
        )
        events = source.parse_output(stdout, EventName.STANDBY_EXIT, 0)
        assert [(e.time, e.details) for e in events] == [
            (T0 + 123, "Wake from Normal Sleep"),
            (T0 + 1_000, "Wake from Deep Idle"),
        ]
        assert all(e.name is EventName.STANDBY_EXIT and e.source == "macos" for e in events)

    def test_missing_message_uses_default(self, source):
        stdout = json.dumps([{"timestamp": "2023-11-14 22:13:20+0000"}])
        events = source.parse_output(stdout, EventName.BOOT, 0)
        assert events[0].details == "No message"

    def test_before_since_dropped(self, source):
        stdout = log_output(("2023-11-14 22:13:20+0000", "x"))
        assert source.parse_output(stdout, EventName.BOOT, T0 + 1) == []

    def test_invalid_entries_skipped(self, source):
        stdout = json.dumps(
            [
                "not a dict",
                {"eventMessage": "no timestamp"},
                {"timestamp": "yesterday", "eventMessage": "bad"},
                {"timestamp": "2023-11-14 22:13:20+0000", "eventMessage": "ok"},
            ]
        )
        events = source.parse_output(stdout, EventName.BOOT, 0)
        assert [e.details for e in events] == ["ok"]

    def test_numeric_message_kept_as_text(self, source):
        stdout = json.dumps([{"timestamp": "2023-11-14 22:13:20+0000", "eventMessage": 42}])
        events = source.parse_output(stdout, EventName.BOOT, 0)
        assert [(e.time, e.details) for e in events] == [(T0, "42")]

    def test_non_list_payload(self, source):
        assert source.parse_output("{}", EventName.BOOT, 0) == []

    def test_invalid_json(self, source):
        with pytest.raises(FetchError, match="invalid log show JSON"):
            source.parse_output("[{", EventName.BOOT, 0)


class TestFetch:
    """fetch() through a patched run_command."""

    async def test_one_query_per_kind(self, source):
        mock_run = scripted_run({})
        with patch("timetrace.sources.macos.run_command", mock_run):
            assert await source.fetch(frozenset(), T0) == []

        assert mock_run.await_count == 6
        args = mock_run.await_args.args
        assert args[:3] == ("log", "show", "--start")
        assert args[3] == format_start(T0)
        assert args[4:6] == ("--style", "json")

    async def test_requested_kinds_only(self, source):
        mock_run = scripted_run({})
        with patch("timetrace.sources.macos.run_command", mock_run):
            await source.fetch(frozenset({EventName.BOOT, EventName.ISSUE_UPDATED}), T0)
        assert mock_run.await_count == 1

    async def test_collects_events_of_all_kinds(self, source):
        mock_run = scripted_run(
            {
                EventName.BOOT: CommandResult(0, log_output(("2023-11-14 22:13:20+0000", "boot")), ""),
                EventName.LOGON: CommandResult(0, log_output(("2023-11-14 22:13:25+0000", "in")), ""),
            }
        )
        with patch("timetrace.sources.macos.run_command", mock_run):
            events = await source.fetch(frozenset(), 0)
        assert sorted((e.time, e.name) for e in events) == [
            (T0, EventName.BOOT),
            (T0 + 5_000, EventName.LOGON),
        ]

    async def test_no_matches_marker(self, source):
        mock_run = scripted_run(
            {EventName.BOOT: CommandResult(1, "", "No matches found for predicate")}
        )
        with patch("timetrace.sources.macos.run_command", mock_run):
            assert await source.fetch(frozenset({EventName.BOOT}), 0) == []

    async def test_partial_failure_keeps_successful_kinds(self, source):
        mock_run = scripted_run(
            {
                EventName.BOOT: CommandResult(0, log_output(("2023-11-14 22:13:20+0000", "boot")), ""),
                EventName.SHUTDOWN: CommandResult(1, "", "log: permission denied"),
            }
        )
        with (
            patch("timetrace.sources.macos.run_command", mock_run),
            pytest.raises(FetchError) as exc_info,
        ):
            await source.fetch(frozenset(), 0)

        error = exc_info.value
        assert not isinstance(error, FetchTimeoutError)
        assert error.failed_kinds == frozenset({EventName.SHUTDOWN})
        assert [e.name for e in error.partial] == [EventName.BOOT]
        assert "permission denied" in error.cause
        assert mock_run.await_count == 6

    async def test_all_failures_timeouts(self, source):
        mock_run = scripted_run({EventName.BOOT: TimeoutError()})
        with (
            patch("timetrace.sources.macos.run_command", mock_run),
            pytest.raises(FetchTimeoutError) as exc_info,
        ):
            await source.fetch(frozenset({EventName.BOOT, EventName.SHUTDOWN}), 0)
        assert exc_info.value.failed_kinds == frozenset({EventName.BOOT})
        assert exc_info.value.partial == []

    async def test_missing_executable(self, source):
        mock_run = AsyncMock(side_effect=FileNotFoundError("log"))
        with (
            patch("timetrace.sources.macos.run_command", mock_run),
            pytest.raises(FetchError, match="failed to run log show") as exc_info,
        ):
            await source.fetch(frozenset({EventName.BOOT}), 0)
        assert exc_info.value.failed_kinds == frozenset({EventName.BOOT})
