"""
Wait Policy - Explicit wait strategies for replay.

Every wait reports a :class:`WaitResult` instead of raising, so the caller can
decide whether a timeout is fatal. All waits honour a shared
:class:`~web_replay_agent.utils.cancellation.CancellationToken`.
"""

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Union

from web_replay_agent.exceptions.base import OperationCancelledError
from web_replay_agent.utils.cancellation import CancellationToken, ensure_token

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

STABILITY_RECHECK_MS = 100

Predicate = Callable[[], Union[bool, Awaitable[bool]]]


@dataclass
class WaitOptions:
    """
    Attributes:
        timeout: Upper bound for any single wait (ms)
        poll_interval: Poll period for polling strategies (ms)
        visible: Element must be visible
        hidden: Element must be hidden
        stable: Element must stop moving
    """
    timeout: int = 30000
    poll_interval: int = 100
    visible: bool = True
    hidden: bool = False
    stable: bool = False


@dataclass
class WaitResult:
    """Outcome of one wait."""
    success: bool
    duration: int
    strategy: str
    selector: Optional[str] = None
    error: Optional[str] = None
    conditions: Dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> Dict[str, Any]:
        return {"strategy": self.strategy, "selector": self.selector, "conditions": self.conditions}


@dataclass
class WaitCondition:
    """One entry for :meth:`WaitPolicy.wait_for_multiple`."""
    strategy: str
    selector: Optional[str] = None
    predicate: Optional[Predicate] = None
    timeout: Optional[int] = None


# Evaluated on an element handle: is a real pointer able to hit it?
CLICKABLE_JS = """
(el) => {
    const style = window.getComputedStyle(el);
    return style.pointerEvents !== 'none'
        && style.visibility !== 'hidden'
        && !el.disabled
        && el.getAttribute('aria-disabled') !== 'true';
}
"""


class WaitPolicy:
    """
    Strategy object for explicit waits.

    Example:
        >>> policy = WaitPolicy(WaitOptions(timeout=5000))
        >>> result = await policy.wait_for_clickable("#submit", page)
        >>> if not result.success:
        ...     print(result.error)
    """

    STRATEGIES = ("visible", "hidden", "clickable", "stable", "network-idle", "custom")

    def __init__(self, options: Optional[WaitOptions] = None, cancel_token: Optional[CancellationToken] = None):
        self._options = options or WaitOptions()
        self.cancel_token = ensure_token(cancel_token)

    def get_options(self) -> WaitOptions:
        return WaitOptions(**vars(self._options))

    def update_options(self, **changes: Any) -> None:
        for key, value in changes.items():
            if not hasattr(self._options, key):
                raise ValueError(f"Unknown wait option: {key}")
            setattr(self._options, key, value)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def wait_for_element(self, selector: str, page: "Page", timeout: Optional[int] = None) -> WaitResult:
        """Wait according to the visible/hidden/stable flags of the options."""
        if self._options.hidden:
            return await self.wait_for_hidden(selector, page, timeout)
        if self._options.stable:
            return await self.wait_for_stable(selector, page, timeout)
        if self._options.visible:
            return await self.wait_for_visible(selector, page, timeout)
        return await self._wait_for_state("attached", selector, page, timeout)

    async def wait_for_visible(self, selector: str, page: "Page", timeout: Optional[int] = None) -> WaitResult:
        return await self._wait_for_state("visible", selector, page, timeout)

    async def wait_for_hidden(self, selector: str, page: "Page", timeout: Optional[int] = None) -> WaitResult:
        return await self._wait_for_state("hidden", selector, page, timeout)

    async def _wait_for_state(self, state: str, selector: str, page: "Page", timeout: Optional[int]) -> WaitResult:
        timeout = timeout or self._options.timeout
        start = time.monotonic()
        try:
            await self.cancel_token.guard(
                page.wait_for_selector(selector, state=state, timeout=timeout),
                operation=f"wait_for_{state}",
            )
        except OperationCancelledError:
            return self._result(False, start, state, selector, "cancelled")
        except Exception as e:
            return self._result(False, start, state, selector, str(e), timeout=timeout)
        return self._result(True, start, state, selector, timeout=timeout)

    async def wait_for_clickable(self, selector: str, page: "Page", timeout: Optional[int] = None) -> WaitResult:
        """Visible, pointer-events enabled, not visibility:hidden, not disabled."""
        timeout = timeout or self._options.timeout
        start = time.monotonic()

        async def clickable() -> bool:
            element = await page.query_selector(selector)
            if element is None or not await element.is_visible():
                return False
            return bool(await element.evaluate(CLICKABLE_JS))

        return await self._poll("clickable", clickable, start, timeout, selector)

    async def wait_for_stable(self, selector: str, page: "Page", timeout: Optional[int] = None) -> WaitResult:
        """Visible and the bounding box unchanged across a 100ms re-check."""
        timeout = timeout or self._options.timeout
        start = time.monotonic()

        async def stable() -> bool:
            element = await page.query_selector(selector)
            if element is None or not await element.is_visible():
                return False
            first = await element.bounding_box()
            await self.cancel_token.sleep(STABILITY_RECHECK_MS / 1000)
            second = await element.bounding_box()
            return first is not None and first == second

        return await self._poll("stable", stable, start, timeout, selector)

    async def wait_for_network_idle(self, page: "Page", timeout: Optional[int] = None) -> WaitResult:
        timeout = timeout or self._options.timeout
        start = time.monotonic()
        try:
            await self.cancel_token.guard(
                page.wait_for_load_state("networkidle", timeout=timeout),
                operation="wait_for_network_idle",
            )
        except OperationCancelledError:
            return self._result(False, start, "network-idle", None, "cancelled")
        except Exception as e:
            return self._result(False, start, "network-idle", None, str(e), timeout=timeout)
        return self._result(True, start, "network-idle", None, timeout=timeout)

    async def wait_for_custom(self, predicate: Predicate, timeout: Optional[int] = None) -> WaitResult:
        """Poll ``predicate`` (sync or async) every ``poll_interval`` until it is truthy."""
        timeout = timeout or self._options.timeout
        start = time.monotonic()

        async def check() -> bool:
            value = predicate()
            if inspect.isawaitable(value):
                value = await value
            return bool(value)

        return await self._poll("custom", check, start, timeout, None)

    async def wait_for_multiple(self, conditions: List[WaitCondition], page: Optional["Page"] = None) -> List[WaitResult]:
        """Run ``conditions`` one after another; every condition gets a result."""
        results = []
        for condition in conditions:
            results.append(await self._run_condition(condition, page))
        return results

    async def _run_condition(self, condition: WaitCondition, page: Optional["Page"]) -> WaitResult:
        strategy = condition.strategy
        start = time.monotonic()
        if strategy == "custom":
            if condition.predicate is None:
                return self._result(False, start, strategy, None, "custom wait requires a predicate")
            return await self.wait_for_custom(condition.predicate, condition.timeout)
        if strategy not in self.STRATEGIES:
            return self._result(False, start, strategy, condition.selector, f"Unknown wait strategy: {strategy}")
        if page is None:
            return self._result(False, start, strategy, condition.selector, "page required")
        if strategy == "network-idle":
            return await self.wait_for_network_idle(page, condition.timeout)
        if not condition.selector:
            return self._result(False, start, strategy, None, f"{strategy} wait requires a selector")
        handler = {
            "visible": self.wait_for_visible,
            "hidden": self.wait_for_hidden,
            "clickable": self.wait_for_clickable,
            "stable": self.wait_for_stable,
        }[strategy]
        return await handler(condition.selector, page, condition.timeout)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _poll(
        self,
        strategy: str,
        check: Callable[[], Awaitable[bool]],
        start: float,
        timeout: int,
        selector: Optional[str],
    ) -> WaitResult:
        deadline = start + timeout / 1000
        last_error: Optional[str] = None
        try:
            while True:
                self.cancel_token.raise_if_cancelled(strategy)
                try:
                    if await check():
                        return self._result(True, start, strategy, selector, timeout=timeout)
                    last_error = None
                except OperationCancelledError:
                    raise
                except Exception as e:
                    last_error = str(e)
                if time.monotonic() >= deadline:
                    break
                await self.cancel_token.sleep(self._options.poll_interval / 1000)
        except OperationCancelledError:
            return self._result(False, start, strategy, selector, "cancelled")

        error = f"Timed out after {timeout}ms waiting for {strategy}"
        if last_error:
            error = f"{error}: {last_error}"
        return self._result(False, start, strategy, selector, error, timeout=timeout)

    @staticmethod
    def _result(
        success: bool,
        start: float,
        strategy: str,
        selector: Optional[str],
        error: Optional[str] = None,
        **conditions: Any,
    ) -> WaitResult:
        duration = int((time.monotonic() - start) * 1000)
        if not success:
            logger.debug(f"Wait '{strategy}' failed for {selector or 'page'}: {error}")
        return WaitResult(
            success=success,
            duration=duration,
            strategy=strategy,
            selector=selector,
            error=error,
            conditions=conditions,
        )
