"""Event sources: the abstraction, its registry and the built-in adapters.

Depends on ``timetrace.models`` and ``timetrace.core`` (exceptions only);
consumed by ``timetrace.services``.

Attributes:
    EventSource: Abstract producer of events (``name``, ``is_active()``,
        ``fetch(kinds, since)``).
    SourceRegistry: Explicit, injectable name-keyed collection of sources.
    WindowsEventSource: Windows System event log via PowerShell.
    MacEventSource: macOS unified log via ``log show``.
    JiraEventSource: Jira Cloud issue activity via the REST API.
    build_registry: Instantiate the enabled built-in sources from
        [SourcesConfig][timetrace.sources.configs.SourcesConfig].
"""

from .base import EventSource, SourceRegistry
from .configs import (
    JiraSourceConfig,
    MacSourceConfig,
    SourceConfig,
    SourcesConfig,
    WindowsSourceConfig,
)
from .factory import build_registry
from .jira import JiraEventSource
from .macos import MacEventSource
from .windows import WindowsEventSource


__all__ = [
    "EventSource",
    "JiraEventSource",
    "JiraSourceConfig",
    "MacEventSource",
    "MacSourceConfig",
    "SourceConfig",
    "SourceRegistry",
    "SourcesConfig",
    "WindowsEventSource",
    "WindowsSourceConfig",
    "build_registry",
]
