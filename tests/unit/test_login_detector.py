"""
Tests for LoginDetector.
"""

import pytest

from web_replay_agent.config.settings import LoginConfig
from web_replay_agent.login.detector import (
    LoginDetector,
    LoginState,
    LoginTimings,
    classify_form_type,
    determine_submission_method,
)


FAST = LoginTimings(probe_delays=(0.0,), step_delay=0, post_submit_delay=0, type_delay_ms=0, spa_type_delay_ms=0)


class MockElement:
    def __init__(self, name, log, visible=True):
        self.name = name
        self.log = log
        self.visible = visible

    async def is_visible(self):
        return self.visible

    async def evaluate(self, script):
        return {"tagName": "INPUT", "attributes": {"name": self.name}}

    async def fill(self, value):
        self.log.append(("fill", self.name, value))

    async def click(self):
        self.log.append(("click", self.name))

    async def type(self, text, delay=0):
        self.log.append(("type", self.name, text))

    async def press(self, key):
        self.log.append(("press", self.name, key))
        if self.name == "identifier" and self.on_enter:
            self.on_enter()

    on_enter = None


class MockPage:
    def __init__(self, url, elements, text="", html=""):
        self.url = url
        self.elements = elements
        self.text = text
        self.html = html

    async def query_selector(self, selector):
        return self.elements.get(selector)

    async def wait_for_load_state(self, state, timeout=None):
        return None

    async def inner_text(self, selector):
        return self.text

    async def content(self):
        return self.html


@pytest.fixture
def detector():
    return LoginDetector(timings=FAST)


@pytest.fixture
def credentials():
    return LoginConfig(username="operator@example.com", password="hunter2", url="https://app.example.com/login")


def traditional_page(log):
    return MockPage(
        "https://app.example.com/login",
        {
            'input[name="email"]': MockElement("email", log),
            'input[type="password"]': MockElement("password", log),
            'button[type="submit"]': MockElement("submit", log),
        },
        text="Sign in to Acme",
    )


class TestClassification:

    @pytest.mark.parametrize("url,text,html,has_password,has_oauth,expected", [
        ("https://accounts.google.com/signin", "", "", True, False, "google-multi-step"),
        ("https://login.microsoftonline.com/common", "", "", True, False, "microsoft-multi-step"),
        ("https://app.example.com/login", "Continue with Google", "", True, False, "oauth"),
        ("https://app.example.com/login", "", "", True, True, "oauth"),
        ("https://app.example.com/login", "Use Single Sign-On", "", True, False, "sso"),
        ("https://app.example.com/login", "Email me a link", "", True, False, "passwordless"),
        ("https://app.example.com/login", "", "", False, False, "passwordless"),
        ("https://app.example.com/login", "", '<div id="__next">', True, False, "spa"),
        ("https://app.example.com/login", "Sign in", "<form>", True, False, "traditional"),
    ])
    def test_classify(self, url, text, html, has_password, has_oauth, expected):
        assert classify_form_type(url, text, html, has_password, has_oauth) == expected

    def test_lookalike_host_is_not_provider(self):
        assert classify_form_type("https://notgoogle.com/login") == "traditional"

    @pytest.mark.parametrize("form_type,has_submit,expected", [
        ("google-multi-step", True, "enter"),
        ("oauth", True, "oauth-popup"),
        ("passwordless", False, "auto-submit"),
        ("traditional", True, "click"),
        ("traditional", False, "enter"),
    ])
    def test_submission_method(self, form_type, has_submit, expected):
        assert determine_submission_method(form_type, has_submit) == expected


class TestDetection:

    @pytest.mark.asyncio
    async def test_detects_traditional_form(self, detector):
        page = traditional_page([])
        form = await detector.detect_login_form(page)

        assert form is not None
        assert form.form_type == "traditional"
        assert form.submission_method == "click"
        assert form.email_selector == 'input[name="email"]'
        assert form.password_selector == 'input[type="password"]'
        assert form.generated_selectors["email"].primary == 'input[name="email"]'
        assert detector.state == LoginState.FOUND

    @pytest.mark.asyncio
    async def test_missing_password_is_not_found(self, detector):
        log = []
        page = MockPage("https://app.example.com/login", {'input[type="email"]': MockElement("email", log)})

        assert await detector.detect_login_form(page) is None
        assert detector.state == LoginState.NOT_FOUND

    @pytest.mark.asyncio
    async def test_hidden_fields_are_skipped(self, detector):
        log = []
        page = MockPage("https://app.example.com/login", {
            'input[type="email"]': MockElement("email", log, visible=False),
            'input[type="password"]': MockElement("password", log),
        })
        assert await detector.detect_login_form(page) is None


class TestPerformLogin:

    @pytest.mark.asyncio
    async def test_traditional_fill_and_click(self, detector, credentials):
        log = []
        page = traditional_page(log)
        form = await detector.detect_login_form(page)

        result = await detector.perform_login(page, form, credentials)

        assert result.success
        assert log == [
            ("fill", "email", "operator@example.com"),
            ("fill", "password", "hunter2"),
            ("click", "submit"),
        ]

    @pytest.mark.asyncio
    async def test_oauth_requires_manual_handling(self, detector, credentials):
        log = []
        page = traditional_page(log)
        form = await detector.detect_login_form(page)
        form.form_type = "oauth"

        result = await detector.perform_login(page, form, credentials)

        assert not result.success
        assert "OAuth" in result.error
        assert detector.state == LoginState.FAILED
        assert log == []

    @pytest.mark.asyncio
    async def test_multi_step_requeries_password(self, detector, credentials):
        log = []
        identifier = MockElement("identifier", log)
        page = MockPage("https://accounts.google.com/signin", {
            'input[type="email"]': identifier,
            'input[type="password"]': MockElement("stale-password", log),
        })
        form = await detector.detect_login_form(page)
        assert form.form_type == "google-multi-step"

        fresh = MockElement("password", log)

        def swap_document():
            page.elements = {'input[type="password"]': fresh}

        identifier.on_enter = swap_document
        result = await detector.perform_login(page, form, credentials)

        assert result.success
        assert ("type", "password", "hunter2") in log
        assert not any(entry[1] == "stale-password" for entry in log)

    @pytest.mark.asyncio
    async def test_multi_step_without_password_step(self, detector, credentials):
        log = []
        identifier = MockElement("identifier", log)
        page = MockPage("https://accounts.google.com/signin", {
            'input[type="email"]': identifier,
            'input[type="password"]': MockElement("password", log),
        })
        form = await detector.detect_login_form(page)

        def swap_document():
            page.elements = {}

        identifier.on_enter = swap_document
        result = await detector.perform_login(page, form, credentials)

        assert not result.success
        assert result.error == "Password field not found after email step"


class TestVerifyAndLogin:

    @pytest.mark.asyncio
    async def test_login_success_after_redirect(self, detector, credentials):
        log = []
        page = traditional_page(log)
        original = page.elements

        async def click():
            log.append(("click", "submit"))
            page.url = "https://app.example.com/dashboard"
            page.elements = {}
            page.text = "Dashboard"

        original['button[type="submit"]'].click = click
        result = await detector.login(page, credentials)

        assert result.success
        assert result.form_type == "traditional"
        assert detector.state == LoginState.SUCCESS

    @pytest.mark.asyncio
    async def test_login_rejected(self, detector, credentials):
        log = []
        page = traditional_page(log)

        async def click():
            page.text = "Invalid email or password"

        page.elements['button[type="submit"]'].click = click
        result = await detector.login(page, credentials)

        assert not result.success
        assert result.verdict.category == "credentials"
        assert detector.state == LoginState.FAILED

    @pytest.mark.asyncio
    async def test_login_without_form(self, detector, credentials):
        result = await detector.login(MockPage("https://app.example.com/", {}), credentials)
        assert result.error == "Login form not found"

    def test_reset(self, detector):
        detector.state = LoginState.FAILED
        detector.current_form_type = "spa"
        detector.reset()
        assert detector.state == LoginState.IDLE
        assert detector.current_form_type is None
