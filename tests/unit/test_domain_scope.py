"""
Tests for DomainScope.
"""

import pytest

from web_replay_agent.capture.domain_scope import (
    DomainScope,
    extract_domain,
    matches_pattern,
    normalize_host,
)
from web_replay_agent.config import DomainScopeConfig
from web_replay_agent.exceptions import ConfigurationError


@pytest.fixture
def scope():
    return DomainScope(DomainScopeConfig(
        base_domain="app.example.com",
        allowed_domains=["*.cdn.example.net", "docs.partner.io"],
    ))


class TestHelpers:

    def test_normalize_host(self):
        assert normalize_host("https://App.Example.com:8443/path") == "app.example.com"
        assert normalize_host("example.com.") == "example.com"
        assert normalize_host("example.com/login") == "example.com"

    def test_extract_domain(self):
        assert extract_domain("https://www.Example.com/a?b=1") == "www.example.com"
        assert extract_domain("not a url") is None

    def test_wildcard_matches_bare_suffix(self):
        assert matches_pattern("okta.com", "*.okta.com")
        assert matches_pattern("acme.okta.com", "*.okta.com")
        assert not matches_pattern("notokta.com", "*.okta.com")


class TestIsAllowedDomain:

    def test_base_domain(self, scope):
        result = scope.is_allowed_domain("https://app.example.com/dashboard")
        assert result.is_allowed
        assert result.reason == "base_domain"

    def test_subdomain(self, scope):
        result = scope.is_allowed_domain("https://eu.app.example.com/")
        assert result.is_allowed
        assert result.reason == "subdomain"

    def test_explicit_allowlist(self, scope):
        result = scope.is_allowed_domain("https://img.cdn.example.net/logo.png")
        assert result.is_allowed
        assert result.reason == "explicit_allowlist"
        assert result.metadata["matchedPattern"] == "*.cdn.example.net"

    def test_builtin_sso_provider(self, scope):
        result = scope.is_allowed_domain("https://login.microsoftonline.com/common/oauth2")
        assert result.is_allowed
        assert result.reason == "sso_provider"

    def test_outside_scope(self, scope):
        result = scope.is_allowed_domain("https://www.youtube.com/watch")
        assert not result.is_allowed
        assert result.reason == "denied"
        assert result.domain == "www.youtube.com"

    def test_sibling_of_base_is_denied(self, scope):
        assert not scope.is_allowed_domain("https://example.com/").is_allowed

    def test_invalid_url(self, scope):
        result = scope.is_allowed_domain("::::")
        assert not result.is_allowed
        assert result.domain == "invalid"

    def test_configured_sso_replaces_builtin(self):
        scope = DomainScope(DomainScopeConfig(base_domain="example.com", sso_providers=["sso.corp.com"]))
        assert scope.is_allowed_domain("https://sso.corp.com/").reason == "sso_provider"
        assert not scope.is_allowed_domain("https://accounts.google.com/").is_allowed


class TestRecordingState:

    def test_pause_and_resume(self, scope):
        scope.record_navigation("https://app.example.com/")
        assert not scope.is_recording_paused

        scope.record_navigation("https://www.youtube.com/")
        assert scope.is_recording_paused
        assert scope.pause_reason == "Recording paused: outside target system (www.youtube.com)"

        scope.record_navigation("https://app.example.com/home")
        assert not scope.is_recording_paused
        assert scope.pause_reason is None

    def test_history_and_stats(self, scope):
        scope.record_navigation("https://app.example.com/")
        scope.record_navigation("https://accounts.google.com/signin")
        scope.record_navigation("https://evil.test/")

        history = scope.get_navigation_history()
        stats = scope.get_domain_stats()

        assert [e.allowed for e in history] == [True, True, False]
        assert stats["totalNavigations"] == 3
        assert stats["blockedNavigations"] == 1
        assert stats["ssoNavigations"] == 1

        scope.clear_history()
        assert scope.get_navigation_history() == []

    def test_recording_state_shape(self, scope):
        scope.record_navigation("https://evil.test/")
        state = scope.get_recording_state()
        assert state["isPaused"] is True
        assert state["currentDomain"] == "evil.test"
        assert "app.example.com" in state["allowedDomains"]


class TestRuntimeChanges:

    def test_add_and_remove_allowed_domain(self, scope):
        scope.add_allowed_domain("Reports.Example.org")
        assert scope.is_allowed_domain("https://reports.example.org/").is_allowed

        scope.remove_allowed_domain("reports.example.org")
        assert not scope.is_allowed_domain("https://reports.example.org/").is_allowed

    def test_update_config_accepts_camel_case(self, scope):
        scope.update_config(baseDomain="other.com")
        assert scope.is_allowed_domain("https://other.com/").reason == "base_domain"

    def test_update_config_rejects_unknown_key(self, scope):
        with pytest.raises(ConfigurationError):
            scope.update_config(colour="blue")

    def test_config_is_copied(self):
        config = DomainScopeConfig(base_domain="example.com")
        scope = DomainScope(config)
        scope.add_allowed_domain("extra.com")
        assert config.allowed_domains == []
        assert scope.get_config().allowed_domains == ["extra.com"]


class TestConstruction:

    def test_from_login_metadata(self):
        scope = DomainScope.from_login_metadata({
            "baseDomain": "portal.acme.com",
            "allowedDomains": ["*.acme-static.com"],
        })
        assert scope.base_domain == "portal.acme.com"
        assert scope.is_allowed_domain("https://x.acme-static.com/").is_allowed

    def test_from_login_metadata_requires_base(self):
        with pytest.raises(ConfigurationError):
            DomainScope.from_login_metadata({"allowedDomains": ["x.com"]})

    def test_validate_config(self):
        assert DomainScope.validate_config({"baseDomain": "example.com"})
        assert not DomainScope.validate_config({"allowedDomains": []})
        assert not DomainScope.validate_config("example.com")
