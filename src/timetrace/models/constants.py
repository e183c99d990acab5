"""Shared constants for the models layer.

Enumerations used by more than one model module live here so that the
models, sources and services layers can import them without cycles.

See Also:
    [timetrace.models.event][]: Uses [EventName][timetrace.models.constants.EventName]
        as the closed set of event kinds.
    [timetrace.models.property][]: Uses
        [PropertyType][timetrace.models.constants.PropertyType] to tag stored values.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging and metrics.

    Attributes:
        SYNCHRONIZER: Multi-source incremental synchronization service
            ([Synchronizer][timetrace.services.synchronizer.Synchronizer]).
    """

    SYNCHRONIZER = "synchronizer"


class EventName(StrEnum):
    """Closed enumeration of activity event kinds.

    The first six members are produced by the operating-system sources;
    the ``issue_*`` members are specific to the issue-tracker source.

    Attributes:
        BOOT: The machine started.
        SHUTDOWN: The machine shut down.
        LOGON: A user session started.
        LOGOFF: A user session ended.
        STANDBY_ENTER: The machine entered sleep/standby.
        STANDBY_EXIT: The machine woke up.
        ISSUE_CREATED: An issue was created.
        ISSUE_UPDATED: An issue was updated.
    """

    BOOT = "boot"
    SHUTDOWN = "shutdown"
    LOGON = "logon"
    LOGOFF = "logoff"
    STANDBY_ENTER = "standby_enter"
    STANDBY_EXIT = "standby_exit"
    ISSUE_CREATED = "issue_created"
    ISSUE_UPDATED = "issue_updated"


class PropertyType(IntEnum):
    """Type tag stored next to each value in the ``property`` table.

    Attributes:
        TEXT: ``str`` value.
        INTEGER: ``int`` value (watermarks use this type).
        REAL: ``float`` value.
    """

    TEXT = 0
    INTEGER = 1
    REAL = 2


OS_EVENT_NAMES: frozenset[EventName] = frozenset(
    {
        EventName.BOOT,
        EventName.SHUTDOWN,
        EventName.LOGON,
        EventName.LOGOFF,
        EventName.STANDBY_ENTER,
        EventName.STANDBY_EXIT,
    }
)

MS_PER_SECOND = 1000
