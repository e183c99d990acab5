"""Pydantic configuration models for the built-in event sources.

See Also:
    [build_registry()][timetrace.sources.factory.build_registry]: Turns a
        [SourcesConfig][timetrace.sources.configs.SourcesConfig] into a
        [SourceRegistry][timetrace.sources.base.SourceRegistry].
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, SecretStr, model_validator

from timetrace.models import EventName


_DEFAULT_TOKEN_ENV = "JIRA_API_TOKEN"  # pragma: allowlist secret


class SourceConfig(BaseModel):
    """Settings shared by every source.

    ``kinds`` narrows what the source fetches; empty means every kind the
    source supports.
    """

    enabled: bool = Field(default=True, description="Register this source")
    timeout: float = Field(default=60.0, ge=1.0, le=600.0, description="Query timeout (seconds)")
    kinds: list[EventName] = Field(default_factory=list, description="Event kinds to fetch")


class WindowsSourceConfig(SourceConfig):
    """Windows event log source settings."""


class MacSourceConfig(SourceConfig):
    """macOS unified log source settings."""


class JiraSourceConfig(SourceConfig):
    """Jira Cloud source settings.

    The API token is read from the environment variable named by
    ``token_env`` (default ``JIRA_API_TOKEN``), never from configuration
    files. An enabled source without a token stays registered but reports
    itself inactive.
    """

    enabled: bool = Field(default=False, description="Register this source")
    timeout: float = Field(default=30.0, ge=1.0, le=600.0, description="Search timeout (seconds)")
    base_url: str = Field(default="", description="Jira site URL")
    email: str = Field(default="", description="Account e-mail for basic auth")
    token_env: str = Field(
        default=_DEFAULT_TOKEN_ENV,
        min_length=1,
        description="Environment variable name for the API token",
    )
    api_token: SecretStr | None = Field(default=None, description="API token (loaded from token_env)")
    page_size: int = Field(default=100, ge=1, le=100, description="Issues per page")
    max_pages: int = Field(default=50, ge=1, le=1000, description="Maximum pages per fetch")

    @model_validator(mode="before")
    @classmethod
    def resolve_api_token(cls, data: Any) -> Any:
        """Resolve the API token from the environment variable, if set."""
        if isinstance(data, dict) and data.get("api_token") is None:
            value = os.getenv(data.get("token_env", _DEFAULT_TOKEN_ENV))
            if value:
                data = {**data, "api_token": SecretStr(value)}
        return data

    @model_validator(mode="after")
    def _validate_site(self) -> JiraSourceConfig:
        if self.enabled and not (self.base_url and self.email):
            raise ValueError("jira source requires base_url and email when enabled")
        if self.base_url and not self.base_url.startswith(("https://", "http://")):
            raise ValueError(f"jira base_url must be an http(s) URL, got {self.base_url!r}")
        return self


class SourcesConfig(BaseModel):
    """Configuration of the built-in sources, keyed by source name."""

    windows: WindowsSourceConfig = Field(default_factory=WindowsSourceConfig)
    macos: MacSourceConfig = Field(default_factory=MacSourceConfig)
    jira: JiraSourceConfig = Field(default_factory=lambda: JiraSourceConfig.model_validate({}))
