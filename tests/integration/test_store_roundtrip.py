"""
Integration tests for EventStore against PostgreSQL.

Tests:
- insert_event() idempotence and conflict counting
- filter_existing() / exists_event() lookups
- select_events_since() bound and ordering
- Property upsert/get round-trip and monotonic advance
- A full Synchronizer pass over the real store
"""

import pytest

from timetrace.core.store import EventStore
from timetrace.models import Event, EventKey, EventName, Property, PropertyType
from timetrace.services import Synchronizer
from timetrace.sources import EventSource, SourceRegistry


pytestmark = pytest.mark.integration


def event(time, source="os", name="boot", details=""):
    return Event(time=time, source=source, name=EventName(name), details=details)


class ListSource(EventSource):
    """Source returning a fixed list of events."""

    supported_kinds = frozenset(EventName)

    def __init__(self, name, events):
        super().__init__(name)
        self._events = events

    def is_active(self):
        return True

    async def fetch(self, kinds, since):
        return [e for e in self._events if e.time >= since]


# ============================================================================
# Events
# ============================================================================


class TestEvents:
    """Event table operations."""

    async def test_insert_is_idempotent(self, store: EventStore) -> None:
        batch = [event(1_000), event(2_000, name="logon")]
        assert await store.insert_event(batch) == 2
        assert await store.insert_event(batch) == 0
        assert len(await store.select_events_since("os", 0)) == 2

    async def test_duplicates_in_one_batch(self, store: EventStore) -> None:
        assert await store.insert_event([event(1_000, details="a"), event(1_000, details="b")]) == 1

    async def test_same_time_different_key(self, store: EventStore) -> None:
        batch = [event(1_000), event(1_000, name="logon"), event(1_000, source="mac")]
        assert await store.insert_event(batch) == 3

    async def test_exists_and_filter(self, store: EventStore) -> None:
        await store.insert_event([event(1_000), event(2_000, name="logon")])

        assert await store.exists_event(EventKey(1_000, EventName.BOOT, "os")) is True
        assert await store.exists_event(EventKey(1_000, EventName.BOOT, "mac")) is False

        keys = [
            EventKey(1_000, EventName.BOOT, "os"),
            EventKey(2_000, EventName.LOGON, "os"),
            EventKey(2_000, EventName.BOOT, "os"),
        ]
        assert await store.filter_existing(keys) == set(keys[:2])

    async def test_filter_existing_empty(self, store: EventStore) -> None:
        assert await store.filter_existing([]) == set()

    async def test_select_since_is_inclusive_and_ordered(self, store: EventStore) -> None:
        await store.insert_event(
            [event(3_000), event(1_000), event(2_000, name="logon"), event(2_000, source="mac")]
        )
        events = await store.select_events_since("os", 2_000)
        assert [(e.time, e.name) for e in events] == [
            (2_000, EventName.LOGON),
            (3_000, EventName.BOOT),
        ]

    async def test_details_round_trip(self, store: EventStore) -> None:
        original = event(1_000, details="Microsoft-Windows-Kernel-General: café")
        await store.insert_event([original])
        assert await store.select_events_since("os", 0) == [original]


# ============================================================================
# Properties
# ============================================================================


class TestProperties:
    """Property table operations."""

    async def test_missing(self, store: EventStore) -> None:
        assert await store.get_property("nope") is None

    @pytest.mark.parametrize(
        "prop",
        [
            Property(name="p", type=PropertyType.TEXT, value="hello"),
            Property(name="p", type=PropertyType.INTEGER, value=1_700_000_000_000),
            Property(name="p", type=PropertyType.REAL, value=1.5),
        ],
    )
    async def test_upsert_get_round_trip(self, store: EventStore, prop: Property) -> None:
        assert await store.upsert_property([prop]) == 1
        assert await store.get_property("p") == prop

    async def test_upsert_replaces(self, store: EventStore) -> None:
        await store.upsert_property([Property.integer("p", 1)])
        await store.upsert_property([Property(name="p", type=PropertyType.TEXT, value="x")])
        assert (await store.get_property("p")).value == "x"

    async def test_advance_is_monotonic(self, store: EventStore) -> None:
        assert await store.advance_property("w", 1_000) == 1
        assert await store.advance_property("w", 2_000) == 1
        assert await store.advance_property("w", 1_500) == 0
        assert await store.advance_property("w", 2_000) == 0
        assert (await store.get_property("w")).value == 2_000

    async def test_advance_replaces_mistyped_value(self, store: EventStore) -> None:
        await store.upsert_property([Property(name="w", type=PropertyType.TEXT, value="junk")])
        assert await store.advance_property("w", 5) == 1
        assert await store.get_property("w") == Property.integer("w", 5)


# ============================================================================
# Synchronizer
# ============================================================================


class TestSynchronizerPass:
    """Full pass over the real store."""

    async def test_two_passes(self, store: EventStore) -> None:
        os_events = [event(1_000), event(2_000, name="logon")]
        mac_events = [event(1_000, source="mac", name="standby_exit")]
        sync = Synchronizer(
            store=store,
            sources=SourceRegistry([ListSource("os", os_events), ListSource("mac", mac_events)]),
            clock=lambda: 604_800_000,
        )

        first = await sync.sync()
        second = await sync.sync()

        assert len(first) == 3
        assert list(first) == list(second)
        assert second.report("os").inserted == 0
        assert (await store.get_property("os.lastFetchTime")).value == 2_000
        assert (await store.get_property("mac.lastFetchTime")).value == 1_000
