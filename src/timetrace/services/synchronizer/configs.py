"""Synchronizer service configuration models.

See Also:
    [Synchronizer][timetrace.services.synchronizer.Synchronizer]: The service
        class that consumes this configuration.
    [BaseServiceConfig][timetrace.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures`` and
        ``metrics``.
"""

from __future__ import annotations

from pydantic import Field

from timetrace.core.base_service import BaseServiceConfig
from timetrace.sources.configs import SourcesConfig


DEFAULT_LOOKBACK_SECONDS = 7 * 24 * 60 * 60


class SynchronizerConfig(BaseServiceConfig):
    """Synchronizer settings.

    ``lookback_seconds`` sizes the rolling window: it is both the default
    start bound for a source without a watermark and the span of the
    merged view returned by each pass.

    Examples:
        ```yaml
        interval: 300
        lookback_seconds: 604800
        sources:
          windows:
            enabled: true
            kinds: [boot, shutdown]
          jira:
            enabled: true
            base_url: https://example.atlassian.net
            email: me@example.com
        ```
    """

    lookback_seconds: int = Field(
        default=DEFAULT_LOOKBACK_SECONDS,
        ge=1,
        description="Rolling window size and default start bound (seconds)",
    )
    sources: SourcesConfig = Field(
        default_factory=SourcesConfig,
        description="Built-in source configuration",
    )
