"""
Tests for CaptureSessionManager.

The page is a mock whose action buffer is filled by the test; polling is
driven explicitly through ``poll_once``.
"""

import pytest

from web_replay_agent.capture.channel import DRAIN_JS
from web_replay_agent.capture.manager import CaptureSessionManager
from web_replay_agent.capture.page_script import TEARDOWN_JS
from web_replay_agent.config.settings import CaptureConfig, DomainScopeConfig, LoginConfig
from web_replay_agent.exceptions import NavigationError
from web_replay_agent.exceptions.capture import CaptureInProgressError
from web_replay_agent.models import ActionType


START_URL = "https://app.example.com/orders"


class MockLocator:
    def __init__(self, count):
        self._count = count

    async def count(self):
        return self._count


class MockFrame:
    def __init__(self, url=START_URL):
        self.url = url


class MockPage:
    def __init__(self, goto_error=None):
        self.url = "about:blank"
        self.goto_error = goto_error
        self.closed = False
        self.main_frame = MockFrame()
        self.buffer = []
        self.dropped = 0
        self.init_scripts = []
        self.evaluated = []
        self.handlers = {}
        self.screenshots = 0

    async def goto(self, url, wait_until=None, timeout=None):
        if self.goto_error:
            raise self.goto_error
        self.url = url
        self.main_frame.url = url

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def evaluate(self, script, arg=None):
        if script == DRAIN_JS:
            events, self.buffer = self.buffer, []
            dropped, self.dropped = self.dropped, 0
            return {"events": events, "dropped": dropped}
        self.evaluated.append(script)
        return None

    def on(self, event, handler):
        self.handlers[event] = handler

    def remove_listener(self, event, handler):
        if self.handlers.get(event) == handler:
            del self.handlers[event]

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True

    def locator(self, selector):
        return MockLocator(1)

    async def screenshot(self, type="png"):
        self.screenshots += 1
        return b"\x89PNG"

    def navigate_main_frame(self, url):
        self.main_frame.url = url
        self.handlers["framenavigated"](self.main_frame)


class RecordingSink:
    def __init__(self):
        self.calls = []

    async def save_actions(self, session, actions):
        self.calls.append((session, actions))


class FakeLoginAdapter:
    def __init__(self):
        self.cleaned = 0

    async def authenticate(self, page, config):
        return {"success": True, "sessionId": "session_1_abc"}

    async def cleanup(self):
        self.cleaned += 1


def event(kind, element=None, selector=None, value=None, timestamp=1000, url=START_URL, **extra):
    raw = {"type": kind, "url": url, "timestamp": timestamp, "id": f"evt-{timestamp}"}
    if element is not None:
        raw["element"] = element
    if selector is not None:
        raw["selector"] = selector
    if value is not None:
        raw["value"] = value
    raw.update(extra)
    return raw


SAVE_BUTTON = {"tagName": "BUTTON", "attributes": {"id": "save"}, "text": "Save order"}
SEARCH_BOX = {"tagName": "INPUT", "attributes": {"name": "q"}}


def make_config(**overrides):
    values = {"capture_frequency": 60000, "include_screenshots": False}
    values.update(overrides)
    return CaptureConfig(**values)


@pytest.fixture
def page():
    return MockPage()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def manager(sink):
    return CaptureSessionManager(make_config(), action_sink=sink)


class TestStartCapture:

    @pytest.mark.asyncio
    async def test_start_records_initial_navigation(self, manager, page):
        session = await manager.start_capture(page, "wf-1", START_URL)

        assert manager.is_active
        assert session.workflow_id == "wf-1"
        assert session.actions[0].type == ActionType.NAVIGATE
        assert session.actions[0].url == START_URL
        assert session.actions[0].metadata["initial"] is True
        assert len(page.init_scripts) == 1
        assert set(page.handlers) == {"framenavigated", "close"}

        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_double_start_raises(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)

        with pytest.raises(CaptureInProgressError):
            await manager.start_capture(page, "wf-2", START_URL)

        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_navigation_failure(self, manager):
        page = MockPage(goto_error=RuntimeError("net::ERR_CONNECTION_REFUSED"))

        with pytest.raises(NavigationError):
            await manager.start_capture(page, "wf-1", START_URL)

        assert not manager.is_active

    @pytest.mark.asyncio
    async def test_login_before_capture(self, page):
        adapter = FakeLoginAdapter()
        config = make_config(
            requires_login=True,
            login_config=LoginConfig(
                username="operator@example.com",
                password="hunter2",
                url="https://app.example.com/login",
                options={"baseDomain": "example.com"},
            ),
        )
        manager = CaptureSessionManager(config, login_adapter=adapter)

        session = await manager.start_capture(page, "wf-1", START_URL)

        assert session.metadata["authentication"] == {"success": True, "sessionId": "session_1_abc"}
        assert manager.get_domain_scope_status()["config"]["baseDomain"] == "example.com"

        await manager.cleanup()
        assert adapter.cleaned == 1


class TestPolling:

    @pytest.mark.asyncio
    async def test_click_gets_generated_selector(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.append(event("click", element=SAVE_BUTTON, selector="button"))

        assert await manager.poll_once() == 1

        action = manager.get_session().actions[-1]
        assert action.type == ActionType.CLICK
        assert action.selector == "#save"
        assert action.metadata["uniqueness"] == "unique"
        assert action.metadata["stability"] == "high"
        assert action.metadata["tagName"] == "button"
        assert action.metadata["text"] == "Save order"
        assert action.metadata["pageUrl"] == START_URL
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_consecutive_inputs_collapse(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.extend([
            event("input", element=SEARCH_BOX, value="w", timestamp=1000),
            event("input", element=SEARCH_BOX, value="wi", timestamp=1100),
            event("input", element=SEARCH_BOX, value="widget", timestamp=1200),
            event("click", element=SAVE_BUTTON, timestamp=1300),
        ])
        await manager.poll_once()

        actions = manager.get_session().actions[1:]
        assert [a.type for a in actions] == [ActionType.TYPE, ActionType.CLICK]
        assert actions[0].value == "widget"
        assert actions[0].selector == 'input[name="q"]'
        assert actions[0].metadata["lastTimestamp"] == 1200
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_pending_input_flushed_on_stop(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.append(event("input", element=SEARCH_BOX, value="abc"))

        actions = await manager.stop_capture()

        assert actions[-1].type == ActionType.TYPE
        assert actions[-1].value == "abc"

    @pytest.mark.asyncio
    async def test_invalid_selector_is_coerced(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.append(event("click", selector="div[["))
        await manager.poll_once()

        action = manager.get_session().actions[-1]
        assert action.selector == "body"
        assert action.metadata["selectorCoerced"] is True
        assert action.metadata["originalSelector"] == "div[["
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_unknown_event_type_ignored(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.append(event("teleport", selector="#x"))

        assert await manager.poll_once() == 0
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_dropped_events_counted(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        page.dropped = 3
        await manager.poll_once()

        assert manager.get_session().metadata["droppedEvents"] == 3
        assert manager.get_quality_report()["droppedEvents"] == 3
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_closed_page_stops_draining(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.append(event("click", element=SAVE_BUTTON))
        page.closed = True

        assert await manager.poll_once() == 0
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_page_close_ends_capture_wait(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)

        assert await manager.wait_until_stopped(timeout=0.01) is False
        page.handlers["close"](page)
        assert await manager.wait_until_stopped(timeout=1) is True
        await manager.cleanup()


class TestDomainScope:

    @pytest.fixture
    def scoped(self, sink):
        config = make_config(domain_scope=DomainScopeConfig(base_domain="example.com"))
        paused, resumed = [], []
        manager = CaptureSessionManager(
            config,
            action_sink=sink,
            on_recording_paused=paused.append,
            on_recording_resumed=lambda: resumed.append(True),
        )
        return manager, paused, resumed

    @pytest.mark.asyncio
    async def test_out_of_scope_events_dropped(self, scoped, page):
        manager, _, _ = scoped
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.append(event("click", element=SAVE_BUTTON, url="https://tracker.evil.test/x"))

        assert await manager.poll_once() == 0
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, scoped, page):
        manager, paused, resumed = scoped
        await manager.start_capture(page, "wf-1", START_URL)

        page.navigate_main_frame("https://news.evil.test/")
        assert paused == ["Recording paused: outside target system (news.evil.test)"]
        assert manager.get_session().domain_scope.is_recording_paused

        page.navigate_main_frame("https://app.example.com/invoices")
        assert resumed == [True]

        await manager.poll_once()
        navigations = [a.url for a in manager.get_session().actions if a.type == ActionType.NAVIGATE]
        assert navigations == [START_URL, "https://app.example.com/invoices"]
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_start_outside_scope_is_paused(self, scoped):
        manager, paused, _ = scoped
        page = MockPage()

        session = await manager.start_capture(page, "wf-1", "https://elsewhere.test/")

        assert session.actions == []
        assert len(paused) == 1
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_subframe_navigation_ignored(self, scoped, page):
        manager, paused, _ = scoped
        await manager.start_capture(page, "wf-1", START_URL)

        page.handlers["framenavigated"](MockFrame("https://ads.evil.test/frame"))

        assert paused == []
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_runtime_allow_list(self, scoped, page):
        manager, _, _ = scoped
        await manager.start_capture(page, "wf-1", START_URL)
        manager.add_allowed_domain("*.partner.test")

        page.buffer.append(event("click", element=SAVE_BUTTON, url="https://shop.partner.test/"))
        assert await manager.poll_once() == 1

        manager.remove_allowed_domain("*.partner.test")
        page.buffer.append(event("click", element=SAVE_BUTTON, url="https://shop.partner.test/", timestamp=2000))
        assert await manager.poll_once() == 0
        await manager.cleanup()


class TestStopCapture:

    @pytest.mark.asyncio
    async def test_stop_validates_orders_and_saves(self, manager, page, sink):
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.extend([
            event("click", element=SAVE_BUTTON, timestamp=1000),
            event("key-press", selector="body", timestamp=1100),
            event("key-press", selector="body", value="Enter", timestamp=1200),
        ])

        actions = await manager.stop_capture()

        assert [a.type for a in actions] == [ActionType.NAVIGATE, ActionType.CLICK, ActionType.KEY_PRESS]
        assert [a.order for a in actions] == [0, 1, 2]
        session = manager.get_session()
        assert session.is_sealed
        assert session.metadata["invalidActions"] == 1
        assert len(sink.calls) == 1
        assert sink.calls[0][1] == actions
        assert TEARDOWN_JS in page.evaluated
        assert page.handlers == {}

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, manager, page, sink):
        await manager.start_capture(page, "wf-1", START_URL)

        first = await manager.stop_capture()
        second = await manager.stop_capture()

        assert [a.id for a in first] == [a.id for a in second]
        assert len(sink.calls) == 1
        assert not manager.is_active
        assert await manager.poll_once() == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self, manager):
        assert await manager.stop_capture() == []

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        await manager.stop_capture()

        session = await manager.start_capture(page, "wf-2", START_URL)

        assert session.workflow_id == "wf-2"
        assert manager.is_active
        await manager.cleanup()


class TestScreenshotsAndReport:

    @pytest.mark.asyncio
    async def test_screenshot_interval_and_cap(self, page):
        config = make_config(include_screenshots=True, screenshot_interval=2, max_screenshots=1)
        manager = CaptureSessionManager(config)
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.extend([
            event("click", element=SAVE_BUTTON, timestamp=1000),
            event("click", element=SAVE_BUTTON, timestamp=1100),
            event("click", element=SAVE_BUTTON, timestamp=1200),
        ])
        await manager.poll_once()

        actions = manager.get_session().actions
        assert actions[1].metadata["screenshotUrl"].startswith("data:image/png;base64,")
        assert "screenshotUrl" not in actions[2].metadata
        assert "screenshotUrl" not in actions[3].metadata
        assert page.screenshots == 1
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_quality_report(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        page.buffer.extend([
            event("click", element=SAVE_BUTTON, timestamp=1000),
            event("click", selector="div[[", timestamp=1100),
        ])
        await manager.stop_capture()

        report = manager.get_quality_report()

        assert report["totalActions"] == 3
        assert report["byType"] == {"navigate": 1, "click": 2}
        assert report["coercedSelectors"] == 1
        assert report["stability"]["high"] == 1
        assert report["averageConfidence"] > 0


class TestCleanup:

    @pytest.mark.asyncio
    async def test_cleanup_stops_active_capture(self, manager, page, sink):
        await manager.start_capture(page, "wf-1", START_URL)

        await manager.cleanup()
        await manager.cleanup()

        assert not manager.is_active
        assert len(sink.calls) == 1
        assert manager.cancel_token.is_cancelled
        assert not page.closed
        assert manager.page is None

    @pytest.mark.asyncio
    async def test_cleanup_can_close_page(self, manager, page):
        await manager.start_capture(page, "wf-1", START_URL)
        await manager.cleanup(close_page=True)
        assert page.closed
