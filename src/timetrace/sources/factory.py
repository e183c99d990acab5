"""Build a [SourceRegistry][timetrace.sources.base.SourceRegistry] from configuration."""

from __future__ import annotations

from timetrace.core.exceptions import ConfigurationError

from .base import EventSource, SourceRegistry
from .configs import SourcesConfig
from .jira import JiraEventSource
from .macos import MacEventSource
from .windows import WindowsEventSource


def build_registry(config: SourcesConfig | None = None) -> SourceRegistry:
    """Instantiate every enabled built-in source.

    Platform sources are registered regardless of the running platform;
    they report themselves inactive elsewhere.

    Raises:
        ConfigurationError: If a source rejects its settings (e.g. a kind
            it does not support).
    """
    config = config or SourcesConfig()
    sources: list[EventSource] = []

    try:
        if config.windows.enabled:
            sources.append(
                WindowsEventSource(kinds=config.windows.kinds, timeout=config.windows.timeout)
            )
        if config.macos.enabled:
            sources.append(MacEventSource(kinds=config.macos.kinds, timeout=config.macos.timeout))
        if config.jira.enabled:
            jira = config.jira
            sources.append(
                JiraEventSource(
                    base_url=jira.base_url,
                    email=jira.email,
                    api_token=jira.api_token,
                    kinds=jira.kinds,
                    timeout=jira.timeout,
                    page_size=jira.page_size,
                    max_pages=jira.max_pages,
                )
            )
    except ValueError as e:
        raise ConfigurationError(f"Invalid source configuration: {e}") from e

    return SourceRegistry(sources)
