"""
Page action channel - Bounded drain of the in-page action buffer.

The page accumulates raw events in ``window.__captureActions``; each drain
takes everything and clears it in one evaluation. A page that goes away
mid-drain is not an error: the channel just reports itself closed.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

from web_replay_agent.browsers.errors import TransportErrorKind, classify_transport_error

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

DRAIN_JS = """
() => window.__captureDrain ? window.__captureDrain() : { events: [], dropped: 0 }
"""

STATUS_OK = "ok"
STATUS_SKIPPED = "skipped"
STATUS_CLOSED = "closed"


@dataclass
class DrainResult:
    events: List[Dict[str, Any]] = field(default_factory=list)
    dropped: int = 0
    status: str = STATUS_OK


class PageActionChannel:
    """
    Example:
        >>> channel = PageActionChannel(page, capacity=500)
        >>> result = await channel.drain()
        >>> if result.status == "closed":
        ...     stop_polling()
    """

    def __init__(self, page: "Page", capacity: int = 500):
        self._page = page
        self.capacity = capacity
        self._closed = False
        self.total_dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    async def drain(self) -> DrainResult:
        if self._closed:
            return DrainResult(status=STATUS_CLOSED)
        if self._page.is_closed():
            self._closed = True
            return DrainResult(status=STATUS_CLOSED)

        try:
            payload = await self._page.evaluate(DRAIN_JS)
        except Exception as e:
            kind = classify_transport_error(e)
            if kind is TransportErrorKind.NAVIGATING:
                logger.debug(f"Page is navigating, skipping drain: {e}")
                return DrainResult(status=STATUS_SKIPPED)
            if kind is TransportErrorKind.CLOSED:
                logger.info("Page closed; action channel closed")
                self._closed = True
                return DrainResult(status=STATUS_CLOSED)
            logger.warning(f"Action drain failed: {e}")
            return DrainResult(status=STATUS_SKIPPED)

        if isinstance(payload, dict):
            events = payload.get("events") or []
            dropped = int(payload.get("dropped") or 0)
        else:
            events = payload or []
            dropped = 0

        events = [e for e in events if isinstance(e, dict)]
        if len(events) > self.capacity:
            dropped += len(events) - self.capacity
            events = events[-self.capacity:]

        if dropped:
            self.total_dropped += dropped
            logger.warning(f"Action buffer overflowed; dropped {dropped} oldest event(s)")
        return DrainResult(events=events, dropped=dropped)
