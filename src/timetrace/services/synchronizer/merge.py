"""Merged, deduplicated, time-ordered view over several event groups."""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable

    from timetrace.models import Event, EventKey


def merge_events(*groups: Iterable[Event], since: int | None = None) -> list[Event]:
    """Union ``groups`` by [EventKey][timetrace.models.event.EventKey] and sort ascending by time.

    When two groups hold the same key, the later group wins. Events older
    than ``since`` are left out. Ties on ``time`` are ordered by source and
    kind so the output is deterministic.

    Examples:
        ```python
        merged = merge_events(stored_window, freshly_inserted, since=window_start)
        ```
    """
    by_key: dict[EventKey, Event] = {}
    for group in groups:
        for event in group:
            if since is None or event.time >= since:
                by_key[event.key] = event
    return sorted(by_key.values(), key=lambda e: (e.time, e.source, e.name))
