"""
Replay Session Manager - Re-executes recorded actions on a page.

Each action is resolved to a live element (primary selector first, then the
recorded alternatives, retried with a fixed backoff) and performed with the
matching Playwright primitive. A failing action produces a failed
:class:`ReplayResult` and the replay carries on with the next one.
"""

import base64
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from web_replay_agent.config.settings import ReplayConfig
from web_replay_agent.exceptions.action import ActionExecutionError, ReplayNotInitializedError
from web_replay_agent.exceptions.base import OperationCancelledError
from web_replay_agent.exceptions.browser import ElementNotFoundError, NavigationError
from web_replay_agent.models import (
    Action,
    ActionType,
    ReplayResult,
    ReplaySession,
    new_id,
    now_ms,
)
from web_replay_agent.replay.wait_policy import WaitOptions, WaitPolicy
from web_replay_agent.utils.cancellation import CancellationToken, ensure_token
from web_replay_agent.utils.retry import RetryConfig, retry_async

if TYPE_CHECKING:
    from playwright.async_api import Page

    from web_replay_agent.login.adapter import LoginAdapter

logger = logging.getLogger(__name__)

DEFAULT_WAIT_MS = 1000
SCROLL_STEP_PX = 100
# Floor for one candidate selector when the action timeout is shared
MIN_CANDIDATE_TIMEOUT_MS = 1000

# Actions that act on the page as a whole
PAGE_LEVEL_TYPES = frozenset({
    ActionType.NAVIGATE,
    ActionType.SCROLL,
    ActionType.WAIT,
    ActionType.SCREENSHOT,
})

POINTER_TYPES = frozenset({
    ActionType.CLICK,
    ActionType.DOUBLE_CLICK,
    ActionType.RIGHT_CLICK,
    ActionType.HOVER,
})

SUBMIT_FORM_JS = """
(el) => {
    const form = el.tagName === 'FORM' ? el : el.closest('form');
    if (!form) throw new Error('No form to submit');
    if (form.requestSubmit) form.requestSubmit(); else form.submit();
}
"""


@dataclass
class ResolvedTarget:
    """Selector that matched on the live page."""
    selector: str
    strategy: str
    confidence: Optional[float] = None


class ReplaySessionManager:
    """
    Example:
        >>> manager = ReplaySessionManager(ReplayConfig(retryAttempts=2))
        >>> await manager.initialize(page)
        >>> session = await manager.replay(load_actions("flow.json"))
        >>> print(f"{session.success_rate:.0%}")
    """

    def __init__(
        self,
        config: Optional[ReplayConfig] = None,
        login_adapter: Optional["LoginAdapter"] = None,
        wait_policy: Optional[WaitPolicy] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.config = config or ReplayConfig()
        self.cancel_token = ensure_token(cancel_token)
        self.login_adapter = login_adapter
        self.wait_policy = wait_policy or WaitPolicy(
            WaitOptions(timeout=self.config.timeout),
            cancel_token=self.cancel_token,
        )
        self._page: Optional["Page"] = None
        self._session: Optional[ReplaySession] = None
        self._cleaned_up = False

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._session.end_time is None

    @property
    def page(self) -> Optional["Page"]:
        return self._page

    def get_session(self) -> Optional[ReplaySession]:
        return self._session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, page: "Page") -> None:
        self._page = page
        logger.debug("Replay manager initialized")

    async def start_replay(self, actions: List[Action]) -> ReplaySession:
        """
        Open a replay session over ``actions``.

        Authenticates first when ``requires_login`` is set; a failed login is
        recorded on the session and the replay proceeds.

        Raises:
            ReplayNotInitializedError: If initialize() was not called
        """
        page = self._require_page()
        if self.is_active:
            logger.warning(f"Replacing unfinished replay session {self._session.id}")
            await self.stop_replay()

        session = ReplaySession(id=new_id("replay"), actions=list(actions))
        if self.config.requires_login and self.config.login_config is not None:
            session.metadata["authentication"] = await self._authenticate(page)

        self._session = session
        logger.info(f"Replay started: session={session.id} actions={len(session.actions)}")
        return session

    async def stop_replay(self) -> Optional[ReplaySession]:
        """Close the running session; None when nothing is being replayed."""
        if not self.is_active:
            return None
        session = self._session
        session.end_time = now_ms()
        logger.info(
            f"Replay finished: session={session.id} success_rate={session.success_rate:.0%} "
            f"errors={session.error_count} duration={session.total_duration}ms"
        )
        return session

    async def replay(self, actions: List[Action]) -> ReplaySession:
        """Start, execute every action in order, stop."""
        session = await self.start_replay(actions)
        for action in session.actions:
            if self.cancel_token.is_cancelled:
                logger.info("Replay cancelled; remaining actions skipped")
                break
            await self.execute_action(action)
        return await self.stop_replay() or session

    async def cleanup(self) -> None:
        """Cancel in-flight waits and release the page. Safe to call repeatedly."""
        if self._cleaned_up:
            return
        self._cleaned_up = True
        self.cancel_token.cancel("replay cleanup")
        await self.stop_replay()
        if self.login_adapter is not None:
            await self.login_adapter.cleanup()
        self._page = None
        logger.debug("Replay manager cleaned up")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_action(self, action: Action) -> ReplayResult:
        """
        Perform one action.

        Never raises for page-level failures; they become a failed result.

        Raises:
            ReplayNotInitializedError: If called before initialize()
        """
        page = self._require_page()
        start = time.monotonic()
        target: Optional[ResolvedTarget] = None
        screenshot: Optional[str] = None

        try:
            if action.type not in PAGE_LEVEL_TYPES and not self._targets_page(action):
                target = await self.find_element(action)
            screenshot = await self._perform(page, action, target)
            if self.config.wait_for_navigation and action.type in (ActionType.CLICK, ActionType.KEY_PRESS, ActionType.CUSTOM):
                await self.wait_policy.wait_for_network_idle(page, self._timeout(action))
            error = None
        except OperationCancelledError:
            error = "cancelled"
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.warning(f"Action {action.id} ({action.type.value}) failed: {error}")

        if error is not None and error != "cancelled" and self.config.screenshot_on_error:
            screenshot = await self._screenshot(page)

        result = ReplayResult(
            action_id=action.id,
            success=error is None,
            duration=int((time.monotonic() - start) * 1000),
            error=error,
            screenshot=screenshot,
            selector=target.selector if target else None,
            strategy=target.strategy if target else None,
            confidence=target.confidence if target else None,
        )

        if self.is_active:
            self._session.results.append(result)
            if not result.success:
                self._session.error_count += 1

        if result.success and self.config.debug_mode:
            logger.info(f"✓ {action.type.value} {target.selector if target else action.url or ''}")
        return result

    async def find_element(self, action: Action) -> ResolvedTarget:
        """
        Resolve the action's element on the live page.

        Each attempt tries the primary selector then every recorded
        alternative, sharing the action timeout between them; attempts
        are separated by ``retry_delay_ms``.

        Raises:
            ElementNotFoundError: If no candidate matched on any attempt
        """
        page = self._require_page()
        attempts = action.retry_count or self.config.retry_attempts
        config = RetryConfig.fixed(
            max_attempts=max(1, attempts),
            delay_ms=self.config.retry_delay_ms,
            retry_on=(ElementNotFoundError,),
        )
        return await retry_async(
            self._locate, config, page, action, attempts, cancel_token=self.cancel_token
        )

    async def _locate(self, page: "Page", action: Action, attempts: int) -> ResolvedTarget:
        use_clickable = self.config.wait_for_clickable and action.type in POINTER_TYPES
        candidates = list(dict.fromkeys([action.selector, *action.alternatives]))
        timeout = self._candidate_timeout(action, len(candidates))

        for index, selector in enumerate(candidates):
            if use_clickable:
                result = await self.wait_policy.wait_for_clickable(selector, page, timeout)
            else:
                result = await self.wait_policy.wait_for_visible(selector, page, timeout)
            if result.error == "cancelled":
                self.cancel_token.raise_if_cancelled("find_element")
            if result.success:
                if index == 0:
                    return ResolvedTarget(selector, "primary", action.metadata.get("confidence"))
                logger.debug(f"Primary selector {action.selector!r} missed; matched alternative {selector!r}")
                return ResolvedTarget(selector, "alternative")

        raise ElementNotFoundError(
            f"Element not found: {action.selector}",
            selector=action.selector,
            attempts=attempts,
        )

    async def _perform(self, page: "Page", action: Action, target: Optional[ResolvedTarget]) -> Optional[str]:
        """Run the primitive for ``action``; returns a screenshot when one was taken."""
        selector = target.selector if target else action.selector
        timeout = self._timeout(action)
        kind = action.type

        if kind == ActionType.CLICK:
            await page.click(selector, timeout=timeout)
        elif kind == ActionType.TYPE:
            await page.click(selector, click_count=3, timeout=timeout)
            await page.keyboard.press("Backspace")
            await page.type(selector, action.value or "", timeout=timeout)
        elif kind == ActionType.SELECT:
            await page.select_option(selector, action.value or "", timeout=timeout)
        elif kind == ActionType.NAVIGATE:
            await self._navigate(page, action, timeout)
        elif kind == ActionType.SCROLL:
            await self._scroll(page, action)
        elif kind == ActionType.WAIT:
            await self.cancel_token.sleep(_wait_ms(action.value) / 1000)
        elif kind == ActionType.HOVER:
            await page.hover(selector, timeout=timeout)
        elif kind == ActionType.DOUBLE_CLICK:
            await page.dblclick(selector, timeout=timeout)
        elif kind == ActionType.RIGHT_CLICK:
            await page.click(selector, button="right", timeout=timeout)
        elif kind == ActionType.KEY_PRESS:
            if target is None:
                await page.keyboard.press(action.value or "Enter")
            else:
                await page.press(selector, action.value or "Enter", timeout=timeout)
        elif kind == ActionType.DRAG_DROP:
            await self._drag_drop(page, action, selector, timeout)
        elif kind == ActionType.SCREENSHOT:
            image = await page.screenshot(type="png")
            return _data_url(image)
        elif kind == ActionType.CUSTOM:
            event = action.metadata.get("event")
            if event != "submit":
                raise ActionExecutionError(
                    f"Unsupported custom action: {event or 'unnamed'}",
                    action_type=kind.value,
                    selector=selector,
                )
            await page.eval_on_selector(selector, SUBMIT_FORM_JS)
        else:
            raise ActionExecutionError(f"Unsupported action type: {kind.value}", action_type=kind.value)
        return None

    async def _navigate(self, page: "Page", action: Action, timeout: int) -> None:
        if not action.url:
            raise ActionExecutionError("Navigate action has no URL", action_type=action.type.value)
        try:
            await self.cancel_token.guard(
                page.goto(action.url, wait_until="domcontentloaded", timeout=timeout),
                operation="navigate",
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            raise NavigationError(f"Navigation to {action.url} failed: {e}", url=action.url)
        idle = await self.wait_policy.wait_for_network_idle(page, timeout)
        if not idle.success:
            logger.debug(f"Network did not settle after navigating to {action.url}: {idle.error}")

    async def _scroll(self, page: "Page", action: Action) -> None:
        coordinates = action.coordinates or {}
        if "x" in coordinates or "y" in coordinates:
            await page.evaluate(
                "([x, y]) => window.scrollTo(x, y)",
                [coordinates.get("x", 0), coordinates.get("y", 0)],
            )
        else:
            await page.mouse.wheel(0, SCROLL_STEP_PX)

    async def _drag_drop(self, page: "Page", action: Action, source: str, timeout: int) -> None:
        destination = action.value
        if not destination:
            raise ActionExecutionError("Drag-drop action has no target selector", action_type=action.type.value)
        found = await self.wait_policy.wait_for_visible(destination, page, timeout)
        if not found.success:
            raise ElementNotFoundError(f"Drop target not found: {destination}", selector=destination)
        await page.drag_and_drop(source, destination, timeout=timeout)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _targets_page(self, action: Action) -> bool:
        # a key press recorded on <body> goes straight to the keyboard
        return action.type == ActionType.KEY_PRESS and action.selector == "body"

    def _timeout(self, action: Action) -> int:
        return action.timeout or self.config.timeout

    def _candidate_timeout(self, action: Action, candidates: int) -> int:
        """Share one attempt's timeout between its candidate selectors."""
        timeout = self._timeout(action)
        return min(timeout, max(MIN_CANDIDATE_TIMEOUT_MS, timeout // max(1, candidates)))

    async def _screenshot(self, page: "Page") -> Optional[str]:
        try:
            if page.is_closed():
                return None
            return _data_url(await page.screenshot(type="png"))
        except Exception as e:
            logger.debug(f"Error screenshot failed: {e}")
            return None

    async def _authenticate(self, page: "Page") -> Dict[str, Any]:
        if self.login_adapter is None:
            from web_replay_agent.login.adapter import LoginAdapter
            self.login_adapter = LoginAdapter(
                navigation_timeout_ms=self.config.timeout,
                cancel_token=self.cancel_token,
            )
        return await self.login_adapter.authenticate(page, self.config.login_config)

    def _require_page(self) -> "Page":
        if self._page is None:
            raise ReplayNotInitializedError("Replay manager not initialized. Call initialize() first.")
        return self._page


def _wait_ms(value: Optional[str]) -> int:
    try:
        ms = int(float(value)) if value not in (None, "") else DEFAULT_WAIT_MS
    except (TypeError, ValueError):
        return DEFAULT_WAIT_MS
    return ms if ms >= 0 else DEFAULT_WAIT_MS


def _data_url(image: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(image).decode("ascii")
