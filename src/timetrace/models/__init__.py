"""Pure frozen dataclasses with zero I/O for activity events and properties.

The models layer is the bottom of the dependency diamond: it depends only on
the standard library. Every model uses ``@dataclass(frozen=True, slots=True)``
and validates in ``__post_init__`` so invalid instances never escape the
constructor.

Attributes:
    Event: Immutable activity event (time in epoch ms, source, kind, details).
    EventKey: Value-compared ``(time, name, source)`` dedup key.
    EventName: Closed enumeration of event kinds.
    Property: Typed named scalar backing per-source watermarks.
    PropertyType: Type tag of a property value (text, integer, real).
    ServiceName: Service identifiers used in logging and metrics.
"""

from .constants import MS_PER_SECOND, OS_EVENT_NAMES, EventName, PropertyType, ServiceName
from .event import Event, EventDbParams, EventKey
from .property import Property, PropertyDbParams, PropertyValue


__all__ = [
    "MS_PER_SECOND",
    "OS_EVENT_NAMES",
    "Event",
    "EventDbParams",
    "EventKey",
    "EventName",
    "Property",
    "PropertyDbParams",
    "PropertyType",
    "PropertyValue",
    "ServiceName",
]
