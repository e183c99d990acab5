"""
Unit tests for sources.configs and sources.factory modules.

Tests:
- SourceConfig defaults and bounds
- JiraSourceConfig token resolution and site validation
- build_registry() from SourcesConfig
"""

import pytest
from pydantic import ValidationError

from timetrace.core.exceptions import ConfigurationError
from timetrace.models import EventName
from timetrace.sources import (
    JiraEventSource,
    JiraSourceConfig,
    MacEventSource,
    SourcesConfig,
    WindowsEventSource,
    WindowsSourceConfig,
    build_registry,
)


JIRA_SITE = {"enabled": True, "base_url": "https://example.atlassian.net", "email": "me@example.com"}


# ============================================================================
# Configs
# ============================================================================


class TestSourceConfig:
    """Shared source settings."""

    def test_defaults(self):
        config = WindowsSourceConfig()
        assert config.enabled is True
        assert config.timeout == 60.0
        assert config.kinds == []

    def test_kinds_coerced(self):
        config = WindowsSourceConfig(kinds=["boot", "logon"])
        assert config.kinds == [EventName.BOOT, EventName.LOGON]

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            WindowsSourceConfig(kinds=["reboot"])

    @pytest.mark.parametrize("timeout", [0.5, 601.0])
    def test_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            WindowsSourceConfig(timeout=timeout)


class TestJiraSourceConfig:
    """Jira settings."""

    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("JIRA_API_TOKEN", raising=False)
        config = JiraSourceConfig()
        assert config.enabled is False
        assert config.api_token is None
        assert config.page_size == 100

    def test_token_from_default_env(self, monkeypatch):
        monkeypatch.setenv("JIRA_API_TOKEN", "from-env")
        config = JiraSourceConfig(**JIRA_SITE)
        assert config.api_token is not None
        assert config.api_token.get_secret_value() == "from-env"

    def test_token_from_custom_env(self, monkeypatch):
        monkeypatch.setenv("MY_JIRA_TOKEN", "custom")
        config = JiraSourceConfig(**JIRA_SITE, token_env="MY_JIRA_TOKEN")
        assert config.api_token.get_secret_value() == "custom"

    def test_token_hidden_in_repr(self, monkeypatch):
        monkeypatch.setenv("JIRA_API_TOKEN", "from-env")
        assert "from-env" not in repr(JiraSourceConfig(**JIRA_SITE))

    def test_enabled_requires_site(self):
        with pytest.raises(ValidationError, match="base_url and email"):
            JiraSourceConfig(enabled=True)

    def test_base_url_must_be_http(self):
        with pytest.raises(ValidationError, match="http"):
            JiraSourceConfig(**{**JIRA_SITE, "base_url": "example.atlassian.net"})

    @pytest.mark.parametrize("page_size", [0, 101])
    def test_page_size_bounds(self, page_size):
        with pytest.raises(ValidationError):
            JiraSourceConfig(page_size=page_size)


# ============================================================================
# build_registry
# ============================================================================


class TestBuildRegistry:
    """build_registry() wiring."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("JIRA_API_TOKEN", raising=False)
        registry = build_registry()
        assert registry.names() == ["windows", "macos"]
        assert isinstance(registry.get("windows"), WindowsEventSource)
        assert isinstance(registry.get("macos"), MacEventSource)

    def test_disabled_sources_skipped(self):
        config = SourcesConfig.model_validate({"windows": {"enabled": False}})
        assert build_registry(config).names() == ["macos"]

    def test_jira_registered(self, monkeypatch):
        monkeypatch.setenv("JIRA_API_TOKEN", "secret")
        config = SourcesConfig.model_validate({"jira": JIRA_SITE})
        registry = build_registry(config)
        jira = registry.get("jira")
        assert isinstance(jira, JiraEventSource)
        assert jira.is_active() is True

    def test_jira_without_token_is_inactive(self, monkeypatch):
        monkeypatch.delenv("JIRA_API_TOKEN", raising=False)
        config = SourcesConfig.model_validate({"jira": JIRA_SITE})
        assert build_registry(config).get("jira").is_active() is False

    def test_kinds_passed_through(self):
        config = SourcesConfig.model_validate({"macos": {"kinds": ["boot"]}})
        assert build_registry(config).get("macos").kinds == frozenset({EventName.BOOT})

    def test_unsupported_kind_is_configuration_error(self):
        config = SourcesConfig.model_validate({"windows": {"kinds": ["issue_created"]}})
        with pytest.raises(ConfigurationError, match="Invalid source configuration"):
            build_registry(config)
