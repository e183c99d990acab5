"""
Immutable activity event with database serialization.

An [Event][timetrace.models.event.Event] is the atomic observation produced by
an [EventSource][timetrace.sources.base.EventSource]: a millisecond timestamp,
the name of the producing source, a closed-enum event kind and a free-form
diagnostic string. Events are persisted once and never mutated.

Duplicate detection uses [EventKey][timetrace.models.event.EventKey], a
value-compared ``(time, name, source)`` tuple.

See Also:
    [EventStore][timetrace.core.store.EventStore]: Persists events through
        [to_db_params()][timetrace.models.event.Event.to_db_params] and
        rebuilds them with
        [from_db_params()][timetrace.models.event.Event.from_db_params].
    [merge_events()][timetrace.services.synchronizer.merge.merge_events]:
        Deduplicates by [EventKey][timetrace.models.event.EventKey].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

from ._validation import validate_source_name, validate_str_no_null, validate_timestamp
from .constants import EventName


class EventKey(NamedTuple):
    """Composite dedup key of an event.

    Compared by value, so delimiter characters inside a field can never make
    two distinct events collide the way a concatenated string key could.
    """

    time: int
    name: EventName
    source: str


class EventDbParams(NamedTuple):
    """Positional parameters for the ``event_insert`` stored procedure.

    Column order matches the procedure signature:
    ``(times BIGINT[], sources TEXT[], names TEXT[], details TEXT[])``.
    """

    time: int
    source: str
    name: str
    details: str


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable activity event.

    Args:
        time: Epoch milliseconds at which the event happened.
        source: Name of the producing source (lowercase, no whitespace).
        name: Event kind; plain strings are coerced to
            [EventName][timetrace.models.constants.EventName].
        details: Free-form diagnostic text.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If ``time`` is negative, ``source`` is not a valid
            source name, ``name`` is not a known kind, or ``details``
            contains null bytes.

    Examples:
        ```python
        event = Event(time=1_700_000_000_000, source="windows", name="boot")
        event.key         # EventKey(time=1700000000000, name=<EventName.BOOT: 'boot'>, source='windows')
        event.to_db_params()
        ```
    """

    time: int
    source: str
    name: EventName
    details: str = ""
    _key: EventKey = field(
        default=None,  # type: ignore[assignment]
        init=False,
        repr=False,
        compare=False,
        hash=False,
    )

    def __post_init__(self) -> None:
        validate_timestamp(self.time, "time")
        validate_source_name(self.source, "source")
        validate_str_no_null(self.details, "details")
        object.__setattr__(self, "name", EventName(self.name))
        object.__setattr__(self, "_key", EventKey(self.time, self.name, self.source))

    @property
    def key(self) -> EventKey:
        """The dedup key ``(time, name, source)``."""
        return self._key

    def to_db_params(self) -> EventDbParams:
        """Return the row in ``event_insert`` column order."""
        return EventDbParams(
            time=self.time,
            source=self.source,
            name=self.name.value,
            details=self.details,
        )

    @classmethod
    def from_db_params(cls, params: EventDbParams) -> Event:
        """Rebuild an event from a stored row."""
        return cls(
            time=params.time,
            source=params.source,
            name=EventName(params.name),
            details=params.details,
        )
