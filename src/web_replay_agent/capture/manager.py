"""
Capture Session Manager - Records user interactions on a live page.

The manager installs an in-page listener script, drains its buffer on a
fixed interval, turns raw events into :class:`Action` records with robust
selectors, and keeps recording confined to the target system through a
:class:`DomainScope`.

Example:
    >>> manager = CaptureSessionManager(CaptureConfig(captureFrequency=1000))
    >>> session = await manager.start_capture(page, "wf-1", "https://app.example.com")
    >>> ...  # the user interacts with the page
    >>> actions = await manager.stop_capture()
"""

import asyncio
import base64
import logging
from collections import Counter
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from web_replay_agent.capture.channel import DrainResult, PageActionChannel, STATUS_CLOSED
from web_replay_agent.capture.domain_scope import DomainScope
from web_replay_agent.capture.page_script import TEARDOWN_JS, build_capture_script
from web_replay_agent.capture.selector_generator import GeneratedSelector, SelectorGenerator
from web_replay_agent.capture.sink import ActionSink
from web_replay_agent.capture.validation import coerce_selector, validate_action, validate_selector
from web_replay_agent.config.settings import CaptureConfig
from web_replay_agent.exceptions.base import OperationCancelledError
from web_replay_agent.exceptions.browser import NavigationError
from web_replay_agent.exceptions.capture import CaptureInProgressError
from web_replay_agent.models import (
    Action,
    ActionType,
    CaptureSession,
    new_id,
    now_ms,
)
from web_replay_agent.utils.cancellation import CancellationToken, ensure_token

if TYPE_CHECKING:
    from playwright.async_api import Frame, Page

    from web_replay_agent.login.adapter import LoginAdapter

logger = logging.getLogger(__name__)

PausedCallback = Callable[[str], None]
ResumedCallback = Callable[[], None]

# A raw event from the page, or a navigation queued by the frame hook
_Pending = Union[Dict[str, Any], Action]


class CaptureSessionManager:
    """
    Owns one capture session on one page.

    Not safe to share between pages; create one manager per recording.
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        login_adapter: Optional["LoginAdapter"] = None,
        selector_generator: Optional[SelectorGenerator] = None,
        action_sink: Optional[ActionSink] = None,
        on_recording_paused: Optional[PausedCallback] = None,
        on_recording_resumed: Optional[ResumedCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.config = config or CaptureConfig()
        self.login_adapter = login_adapter
        self.selector_generator = selector_generator or SelectorGenerator.for_strategy(
            self.config.selector_strategy
        )
        self.action_sink = action_sink
        self.cancel_token = ensure_token(cancel_token)

        self._paused_callbacks: List[PausedCallback] = []
        self._resumed_callbacks: List[ResumedCallback] = []
        if on_recording_paused:
            self._paused_callbacks.append(on_recording_paused)
        if on_recording_resumed:
            self._resumed_callbacks.append(on_recording_resumed)

        self._page: Optional["Page"] = None
        self._session: Optional[CaptureSession] = None
        self._scope: Optional[DomainScope] = None
        self._channel: Optional[PageActionChannel] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._ended = asyncio.Event()

        self._pending_navigations: List[Action] = []
        self._pending_input: Optional[Action] = None
        self._last_url: Optional[str] = None
        self._action_count = 0
        self._screenshot_count = 0
        self._final_actions: Optional[List[Action]] = None
        self._listeners_attached = False
        self._cleaned_up = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._session is not None and not self._session.is_sealed

    @property
    def page(self) -> Optional["Page"]:
        return self._page

    def get_session(self) -> Optional[CaptureSession]:
        return self._session

    def on_recording_paused(self, callback: PausedCallback) -> None:
        self._paused_callbacks.append(callback)

    def on_recording_resumed(self, callback: ResumedCallback) -> None:
        self._resumed_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_capture(self, page: "Page", workflow_id: str, url: str) -> CaptureSession:
        """
        Begin recording on ``page``.

        Args:
            page: Playwright page to record
            workflow_id: Workflow the recording belongs to
            url: Starting URL

        Returns:
            The new, active CaptureSession

        Raises:
            CaptureInProgressError: If a capture is already running
            NavigationError: If the starting URL cannot be opened
        """
        if self.is_active:
            raise CaptureInProgressError(
                "A capture session is already in progress", session_id=self._session.id
            )

        self._reset()
        self._page = page
        metadata: Dict[str, Any] = {"droppedEvents": 0}

        if self.config.requires_login and self.config.login_config is not None:
            metadata["authentication"] = await self._authenticate(page)

        self._scope = self._build_scope()

        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.config.timeout)
        except Exception as e:
            self._page = None
            raise NavigationError(f"Failed to open {url}: {e}", url=url)

        current_url = page.url or url
        self._last_url = current_url
        self._session = CaptureSession(
            id=new_id("capture"),
            workflow_id=workflow_id,
            url=url,
            domain_scope=self._scope,
            metadata=metadata,
        )

        in_scope = True
        if self._scope is not None:
            event = self._scope.record_navigation(current_url)
            in_scope = event.allowed
            if not in_scope:
                self._fire_paused(self._scope.pause_reason or "")

        if in_scope:
            self._session.append(Action(
                id=new_id("action"),
                type=ActionType.NAVIGATE,
                url=current_url,
                metadata={"timestamp": now_ms(), "initial": True, "pageUrl": current_url},
            ))
            self._action_count += 1

        self._channel = PageActionChannel(page, capacity=self.config.buffer_limit)
        await self._install_listeners(page)
        self._poll_task = asyncio.create_task(self._poll_loop())

        logger.info(f"Capture started: session={self._session.id} workflow={workflow_id} url={url}")
        return self._session

    async def stop_capture(self) -> List[Action]:
        """
        Stop recording and return the validated, ordered actions.

        Calling it again returns the same list.
        """
        if self._final_actions is not None:
            return list(self._final_actions)
        if self._session is None:
            return []

        await self._stop_polling()
        await self.poll_once()
        async with self._lock:
            self._flush_pending_input()
        await self._detach_listeners()

        session = self._session
        session.seal()

        validated: List[Action] = []
        for action in session.actions:
            issues = validate_action(action)
            if issues:
                reasons = "; ".join(str(issue) for issue in issues)
                logger.warning(f"Dropping invalid {action.type.value} action {action.id}: {reasons}")
                continue
            validated.append(action)

        for index, action in enumerate(validated):
            action.order = index

        session.metadata["invalidActions"] = len(session.actions) - len(validated)
        session.actions = validated
        self._final_actions = validated
        self._ended.set()

        logger.info(
            f"Capture stopped: session={session.id} actions={len(validated)} "
            f"duration={session.end_time - session.start_time}ms"
        )

        if self.action_sink is not None:
            await self.action_sink.save_actions(session, list(validated))

        return list(validated)

    async def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the page closes or the capture stops. False on timeout."""
        try:
            await asyncio.wait_for(self._ended.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def cleanup(self, close_page: bool = False) -> None:
        """Stop any running capture and release the page. Safe to call repeatedly."""
        if self._cleaned_up:
            return
        self._cleaned_up = True

        self.cancel_token.cancel("capture cleanup")
        if self.is_active:
            await self.stop_capture()
        else:
            await self._stop_polling()
            await self._detach_listeners()

        if self.login_adapter is not None:
            await self.login_adapter.cleanup()

        page = self._page
        self._page = None
        if close_page and page is not None and not page.is_closed():
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Page close during cleanup failed: {e}")
        logger.debug("Capture manager cleaned up")

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        interval = self.config.capture_frequency / 1000
        while True:
            try:
                await self.cancel_token.sleep(interval)
            except OperationCancelledError:
                break
            await self.poll_once()
            if self._channel is None or self._channel.closed:
                logger.info("Page closed; capture polling stopped")
                self._ended.set()
                break

    async def _stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def poll_once(self) -> int:
        """
        Drain the page buffer once and append the resulting actions.

        Returns:
            Number of actions appended to the session
        """
        async with self._lock:
            session = self._session
            if session is None or session.is_sealed:
                return 0

            if self._channel is not None:
                result = await self._channel.drain()
            else:
                result = DrainResult(status=STATUS_CLOSED)
            if result.dropped:
                session.metadata["droppedEvents"] = session.metadata.get("droppedEvents", 0) + result.dropped

            queued = self._pending_navigations
            self._pending_navigations = []
            pending: List[_Pending] = [*queued, *result.events]
            pending.sort(key=_pending_timestamp)

            before = self._action_count
            for item in pending:
                if isinstance(item, Action):
                    self._flush_pending_input()
                    self._append(item)
                    continue
                action = await self._to_action(item)
                if action is not None:
                    self._record(action)

            if self.config.include_screenshots:
                await self._take_screenshots(session.actions[before:])

            return self._action_count - before

    async def _to_action(self, raw: Dict[str, Any]) -> Optional[Action]:
        page_url = raw.get("url")
        if self._scope is not None and page_url:
            verdict = self._scope.is_allowed_domain(page_url)
            if not verdict.is_allowed:
                logger.debug(f"Ignoring {raw.get('type')} on out-of-scope page {verdict.domain}")
                return None

        raw_type = raw.get("type")
        try:
            action_type = ActionType.TYPE if raw_type == "input" else ActionType(raw_type)
        except ValueError:
            logger.warning(f"Ignoring event of unknown type {raw_type!r}")
            return None

        metadata: Dict[str, Any] = dict(raw.get("metadata") or {})
        metadata["timestamp"] = int(raw.get("timestamp") or now_ms())
        if page_url:
            metadata["pageUrl"] = page_url
        if raw_type == "input":
            metadata["source"] = "input"

        selector = raw.get("selector")
        element = raw.get("element")
        if isinstance(element, dict) and element:
            generated = await self._generate(element)
            if generated is not None:
                selector = generated.primary
                metadata.update(
                    alternatives=generated.alternatives,
                    confidence=generated.confidence,
                    stability=generated.stability,
                    uniqueness=generated.uniqueness,
                    maintainability=generated.maintainability,
                )
            metadata["tagName"] = str(element.get("tagName") or "").lower()
            text = str(element.get("text") or "").strip()
            if text:
                metadata["text"] = text[:100]

        if not validate_selector(selector):
            metadata["selectorCoerced"] = True
            metadata["originalSelector"] = selector
        selector = coerce_selector(selector)

        value = raw.get("value")
        return Action(
            id=str(raw.get("id") or new_id("action")),
            type=action_type,
            selector=selector,
            value=None if value is None else str(value),
            coordinates=raw.get("coordinates"),
            metadata=metadata,
        )

    async def _generate(self, element: Dict[str, Any]) -> Optional[GeneratedSelector]:
        page = self._page
        try:
            if page is not None and not page.is_closed():
                return await self.selector_generator.generate_selector_live(element, page)
            return self.selector_generator.generate_selector(element)
        except Exception as e:
            logger.debug(f"Selector generation failed, keeping page selector: {e}")
            return None

    def _record(self, action: Action) -> None:
        """Append ``action``, collapsing consecutive inputs on one field into a single type."""
        if action.metadata.get("source") == "input":
            pending = self._pending_input
            if pending is not None and pending.selector == action.selector:
                pending.value = action.value
                pending.metadata["lastTimestamp"] = action.timestamp
                return
            self._flush_pending_input()
            self._pending_input = action
            return

        self._flush_pending_input()
        self._append(action)

    def _flush_pending_input(self) -> None:
        if self._pending_input is not None:
            action = self._pending_input
            self._pending_input = None
            self._append(action)

    def _append(self, action: Action) -> None:
        self._session.append(action)
        self._action_count += 1
        logger.debug(f"Recorded: {action.type.value} -> {action.url or action.selector}")

    async def _take_screenshots(self, actions: List[Action]) -> None:
        page = self._page
        if page is None or page.is_closed():
            return
        interval = self.config.screenshot_interval
        first_position = self._action_count - len(actions) + 1
        for offset, action in enumerate(actions):
            if self._screenshot_count >= self.config.max_screenshots:
                return
            if (first_position + offset) % interval:
                continue
            try:
                image = await page.screenshot(type="png")
            except Exception as e:
                logger.debug(f"Screenshot skipped for {action.id}: {e}")
                return
            action.metadata["screenshotUrl"] = "data:image/png;base64," + base64.b64encode(image).decode("ascii")
            self._screenshot_count += 1

    # ------------------------------------------------------------------
    # Page hooks
    # ------------------------------------------------------------------

    async def _install_listeners(self, page: "Page") -> None:
        script = build_capture_script(self.config.buffer_limit)
        await page.add_init_script(script)
        try:
            await page.evaluate(script)
        except Exception as e:
            # the init script covers the next document
            logger.debug(f"Listener injection on current document failed: {e}")
        page.on("framenavigated", self._on_frame_navigated)
        page.on("close", self._on_page_close)
        self._listeners_attached = True

    async def _detach_listeners(self) -> None:
        page = self._page
        if page is None or not self._listeners_attached:
            return
        self._listeners_attached = False
        page.remove_listener("framenavigated", self._on_frame_navigated)
        page.remove_listener("close", self._on_page_close)
        if page.is_closed():
            return
        try:
            await page.evaluate(TEARDOWN_JS)
        except Exception as e:
            logger.debug(f"Listener teardown skipped: {e}")

    def _on_frame_navigated(self, frame: "Frame") -> None:
        page = self._page
        if page is None or frame != page.main_frame:
            return
        if self._session is None or self._session.is_sealed:
            return

        url = frame.url
        if not url or url == "about:blank" or url == self._last_url:
            return
        self._last_url = url

        if self._scope is not None:
            was_paused = self._scope.is_recording_paused
            event = self._scope.record_navigation(url)
            if was_paused and event.allowed:
                self._fire_resumed()
            elif not was_paused and not event.allowed:
                self._fire_paused(self._scope.pause_reason or "")
            if not event.allowed:
                return

        self._pending_navigations.append(Action(
            id=new_id("action"),
            type=ActionType.NAVIGATE,
            url=url,
            metadata={"timestamp": now_ms(), "pageUrl": url},
        ))

    def _on_page_close(self, *_: Any) -> None:
        logger.info("Recorded page was closed")
        if self._channel is not None:
            self._channel.close()
        self._ended.set()

    def _fire_paused(self, reason: str) -> None:
        for callback in self._paused_callbacks:
            try:
                callback(reason)
            except Exception as e:
                logger.warning(f"Pause callback error: {e}")

    def _fire_resumed(self) -> None:
        for callback in self._resumed_callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Resume callback error: {e}")

    # ------------------------------------------------------------------
    # Login & scope
    # ------------------------------------------------------------------

    async def _authenticate(self, page: "Page") -> Dict[str, Any]:
        if self.login_adapter is None:
            from web_replay_agent.login.adapter import LoginAdapter
            self.login_adapter = LoginAdapter(
                navigation_timeout_ms=self.config.timeout,
                cancel_token=self.cancel_token,
            )
        return await self.login_adapter.authenticate(page, self.config.login_config)

    def _build_scope(self) -> Optional[DomainScope]:
        if self.config.domain_scope is not None:
            return DomainScope(self.config.domain_scope)
        login = self.config.login_config
        if login is not None and login.options.get("baseDomain"):
            return DomainScope.from_login_metadata(login.options)
        return None

    def get_domain_scope_status(self) -> Optional[Dict[str, Any]]:
        if self._scope is None:
            return None
        return self._scope.get_summary()

    def add_allowed_domain(self, domain: str) -> None:
        if self._scope is not None:
            self._scope.add_allowed_domain(domain)

    def remove_allowed_domain(self, domain: str) -> None:
        if self._scope is not None:
            self._scope.remove_allowed_domain(domain)

    def update_domain_scope(self, **changes: Any) -> None:
        if self._scope is not None:
            self._scope.update_config(**changes)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_quality_report(self) -> Dict[str, Any]:
        """Selector quality over the recorded actions."""
        actions = self._final_actions if self._final_actions is not None else (
            self._session.actions if self._session else []
        )
        targeted = [a for a in actions if a.type not in (ActionType.NAVIGATE, ActionType.SCROLL, ActionType.WAIT)]
        confidences = [a.metadata["confidence"] for a in targeted if "confidence" in a.metadata]
        metadata = self._session.metadata if self._session else {}
        return {
            "totalActions": len(actions),
            "byType": dict(Counter(a.type.value for a in actions)),
            "stability": dict(Counter(a.metadata.get("stability", "unknown") for a in targeted)),
            "uniqueness": dict(Counter(a.metadata.get("uniqueness", "unknown") for a in targeted)),
            "coercedSelectors": sum(1 for a in targeted if a.metadata.get("selectorCoerced")),
            "averageConfidence": round(sum(confidences) / len(confidences), 2) if confidences else 0.0,
            "screenshots": self._screenshot_count,
            "droppedEvents": metadata.get("droppedEvents", 0),
            "invalidActions": metadata.get("invalidActions", 0),
        }

    def _reset(self) -> None:
        self._session = None
        self._scope = None
        self._channel = None
        self._pending_navigations = []
        self._pending_input = None
        self._last_url = None
        self._action_count = 0
        self._screenshot_count = 0
        self._final_actions = None
        self._ended = asyncio.Event()


def _pending_timestamp(item: _Pending) -> int:
    if isinstance(item, Action):
        return item.timestamp
    return int(item.get("timestamp") or 0)
