"""
Tests for login verification rules.
"""

import pytest

from web_replay_agent.login.verification import LoginVerificationPolicy


LOGIN_URL = "https://app.example.com/login"


@pytest.fixture
def policy():
    return LoginVerificationPolicy()


class TestErrorPhrases:

    @pytest.mark.parametrize("text,category", [
        ("Wrong password. Try again.", "password"),
        ("Invalid username or password", "credentials"),
        ("We couldn’t find your Google Account", "account"),
        ("Too many failed attempts", "provider"),
        ("Something went wrong", "generic"),
    ])
    def test_error_fails(self, policy, text, category):
        verdict = policy.evaluate(text, "https://app.example.com/home", LOGIN_URL, False)

        assert not verdict.success
        assert verdict.category == category
        assert verdict.reason.startswith("Login error detected")

    def test_error_wins_over_redirect(self, policy):
        verdict = policy.evaluate(
            "Dashboard\nAuthentication   failed", "https://app.example.com/dashboard", LOGIN_URL, False
        )
        assert not verdict.success
        assert verdict.matched_phrase == "authentication failed"


class TestPositiveEvidence:

    def test_redirect_without_password_succeeds(self, policy):
        verdict = policy.evaluate("Dashboard", "https://app.example.com/dashboard", LOGIN_URL, False)
        assert verdict.success

    def test_password_field_still_present(self, policy):
        verdict = policy.evaluate("", "https://app.example.com/dashboard", LOGIN_URL, True)
        assert not verdict.success
        assert "Password field" in verdict.reason

    def test_url_unchanged(self, policy):
        verdict = policy.evaluate("Welcome back!", LOGIN_URL, LOGIN_URL, False)
        assert not verdict.success
        assert verdict.reason == "URL did not change after submission"

    def test_greeting_is_not_success(self, policy):
        verdict = policy.evaluate(
            "Welcome to Acme. Sign in to continue", "https://app.example.com/signin?step=2", LOGIN_URL, False
        )
        assert not verdict.success
        assert verdict.reason.startswith("Still on a login page")

    def test_provider_host_is_login_page(self, policy):
        verdict = policy.evaluate("", "https://accounts.google.com/v3/challenge", LOGIN_URL, False)
        assert not verdict.success


class TestLoginUrl:

    @pytest.mark.parametrize("url,expected", [
        ("https://a.example.com/login", True),
        ("https://a.example.com/users/sign_in", True),
        ("https://a.example.com/oauth2/authorize", True),
        ("https://login.microsoftonline.com/common", True),
        ("https://a.example.com/loginhelp", False),
        ("https://a.example.com/dashboard", False),
        ("", False),
    ])
    def test_is_login_url(self, policy, url, expected):
        assert policy.is_login_url(url) is expected

    def test_custom_rules(self):
        policy = LoginVerificationPolicy(
            error_phrases=[("custom", "access denied")],
            login_path_patterns=[r"/portal/enter\b"],
            login_hosts=[],
        )

        assert policy.find_error("ACCESS DENIED") == ("custom", "access denied")
        assert policy.find_error("wrong password") is None
        assert policy.is_login_url("https://x.example.com/portal/enter")
        assert not policy.is_login_url("https://x.example.com/login")
