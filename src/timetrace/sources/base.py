"""
Event source abstraction and the registry the synchronizer iterates over.

An [EventSource][timetrace.sources.base.EventSource] wraps one
platform-specific log query mechanism (an OS event log, a tracker API, ...)
behind three members: ``name``, ``is_active()`` and ``fetch(kinds, since)``.
The synchronizer only ever holds this abstract type.

[SourceRegistry][timetrace.sources.base.SourceRegistry] is an explicit,
injectable collection of sources keyed by name. There is no process-wide
instance: each [Synchronizer][timetrace.services.synchronizer.Synchronizer]
receives its own.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from timetrace.models import Event, EventName
from timetrace.models._validation import validate_source_name


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


logger = logging.getLogger(__name__)


class EventSource(ABC):
    """A pluggable producer of [Event][timetrace.models.event.Event] records.

    Subclasses declare ``supported_kinds`` and implement
    [is_active()][timetrace.sources.base.EventSource.is_active] and
    [fetch()][timetrace.sources.base.EventSource.fetch].

    Args:
        name: Stable identifier, lowercase without whitespace. It is the
            ``source`` of every event produced and the prefix of the
            source's watermark property.
        kinds: Kinds this instance fetches by default. Empty means every
            supported kind.

    Raises:
        ValueError: If ``name`` is invalid or ``kinds`` contains a kind the
            source does not support.
    """

    supported_kinds: ClassVar[frozenset[EventName]]

    def __init__(self, name: str, kinds: Iterable[EventName | str] = ()) -> None:
        validate_source_name(name, "name")
        self._name = name

        requested = frozenset(EventName(k) for k in kinds)
        unsupported = requested - self.supported_kinds
        if unsupported:
            raise ValueError(
                f"source {name!r} does not support kinds: "
                f"{', '.join(sorted(unsupported))}"
            )
        self._kinds = requested or self.supported_kinds

    @property
    def name(self) -> str:
        return self._name

    @property
    def kinds(self) -> frozenset[EventName]:
        """Kinds fetched when the caller does not ask for specific ones."""
        return self._kinds

    @abstractmethod
    def is_active(self) -> bool:
        """Whether the source can be queried in this environment.

        Must be side-effect free. An inactive source is skipped, not
        reported as a failure.
        """

    @abstractmethod
    async def fetch(self, kinds: frozenset[EventName], since: int) -> list[Event]:
        """Fetch events of ``kinds`` with ``time >= since`` (epoch ms).

        An empty ``kinds`` means every supported kind; kinds the source does
        not support are ignored. Ordering of the result is unspecified.

        Raises:
            FetchError: The source could not deliver events. Sources that
                query kind by kind attach the events they did fetch in
                ``FetchError.partial``.
            FetchTimeoutError: The underlying query timed out.
        """

    def resolve_kinds(self, kinds: Iterable[EventName]) -> frozenset[EventName]:
        """Narrow a requested kind set to what this source supports."""
        requested = frozenset(kinds)
        if not requested:
            return self.supported_kinds
        return requested & self.supported_kinds

    def make_event(self, time: int, name: EventName, details: object) -> Event | None:
        """Build an event stamped with this source's name.

        Non-string ``details`` (numbers or objects decoded from JSON) are
        stored as their ``str()``. Records that fail validation (negative
        time, unusable details) are dropped with a warning instead of
        failing the whole fetch.
        """
        text = details if isinstance(details, str) else str(details)
        try:
            return Event(time=time, source=self._name, name=name, details=text.replace("\x00", ""))
        except (TypeError, ValueError) as e:
            logger.warning("invalid_source_record source=%s kind=%s error=%s", self._name, name, e)
            return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


class SourceRegistry:
    """Ordered, name-keyed collection of [EventSource][timetrace.sources.base.EventSource] instances.

    Registering a source whose name is already present replaces the
    previous one, so a name always maps to exactly one source.

    Examples:
        ```python
        registry = SourceRegistry([WindowsEventSource(), MacEventSource()])
        registry.register(JiraEventSource(base_url=..., email=..., api_token=...))
        [source.name for source in registry]   # ['windows', 'macos', 'jira']
        ```
    """

    def __init__(self, sources: Iterable[EventSource] = ()) -> None:
        self._sources: dict[str, EventSource] = {}
        for source in sources:
            self.register(source)

    def register(self, source: EventSource) -> EventSource | None:
        """Add ``source``; return the source it replaced, if any."""
        previous = self._sources.pop(source.name, None)
        if previous is not None and previous is not source:
            logger.info("source_replaced name=%s", source.name)
        self._sources[source.name] = source
        return previous

    def unregister(self, name: str) -> EventSource | None:
        """Remove and return the source called ``name``, if registered."""
        return self._sources.pop(name, None)

    def get(self, name: str) -> EventSource | None:
        return self._sources.get(name)

    def names(self) -> list[str]:
        return list(self._sources)

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def __iter__(self) -> Iterator[EventSource]:
        return iter(list(self._sources.values()))

    def __len__(self) -> int:
        return len(self._sources)

    def __repr__(self) -> str:
        return f"SourceRegistry({self.names()})"
