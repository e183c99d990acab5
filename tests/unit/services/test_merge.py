"""
Unit tests for services.synchronizer.merge module.

Tests:
- merge_events() ordering, deduplication, window filter
"""

from fakes import make_event

from timetrace.services.synchronizer import merge_events


class TestMergeEvents:
    """merge_events() behavior."""

    def test_empty(self):
        assert merge_events() == []
        assert merge_events([], []) == []

    def test_ascending_by_time(self):
        a = [make_event(3_000, "os"), make_event(1_000, "os", "logon")]
        b = [make_event(2_000, "jira", "issue_created")]
        assert [e.time for e in merge_events(a, b)] == [1_000, 2_000, 3_000]

    def test_duplicate_keys_collapse(self):
        first = make_event(1_000, "os", details="stored")
        second = make_event(1_000, "os", details="fresh")
        merged = merge_events([first], [second])
        assert len(merged) == 1
        assert merged[0].details == "fresh"

    def test_same_time_different_key_retained(self):
        merged = merge_events(
            [make_event(1_000, "os", "boot")],
            [make_event(1_000, "mac", "boot"), make_event(1_000, "os", "logon")],
        )
        assert len(merged) == 3
        assert {(e.source, e.name) for e in merged} == {
            ("os", "boot"),
            ("mac", "boot"),
            ("os", "logon"),
        }

    def test_ties_ordered_deterministically(self):
        events = [make_event(1_000, "os", "logon"), make_event(1_000, "mac"), make_event(1_000, "os")]
        merged = merge_events(events)
        assert [(e.source, e.name) for e in merged] == [
            ("mac", "boot"),
            ("os", "boot"),
            ("os", "logon"),
        ]

    def test_since_filter_inclusive(self):
        events = [make_event(999, "os"), make_event(1_000, "os", "logon"), make_event(1_001, "os", "logoff")]
        assert [e.time for e in merge_events(events, since=1_000)] == [1_000, 1_001]

    def test_accepts_generators(self):
        merged = merge_events(make_event(t, "os") for t in (2, 1))
        assert [e.time for e in merged] == [1, 2]
