"""
Transport error classification.

Playwright surfaces a dying page as ordinary exceptions. Capture and replay
need to tell "the document is being replaced" (retry next tick) apart from
"the page is gone" (stop cleanly).
"""

from enum import Enum

CONTEXT_DESTROYED_MARKERS = (
    "Execution context was destroyed",
    "Cannot find context with specified id",
    "frame was detached",
)

PAGE_CLOSED_MARKERS = (
    "Target closed",
    "Target page, context or browser has been closed",
    "Browser has been closed",
    "Protocol error",
    "Connection closed",
    "has been closed",
)


class TransportErrorKind(str, Enum):
    """How a failed page call should be treated."""
    NAVIGATING = "navigating"
    CLOSED = "closed"
    OTHER = "other"


def classify_transport_error(error: BaseException) -> TransportErrorKind:
    message = str(error)
    if any(marker in message for marker in CONTEXT_DESTROYED_MARKERS):
        return TransportErrorKind.NAVIGATING
    if any(marker in message for marker in PAGE_CLOSED_MARKERS):
        return TransportErrorKind.CLOSED
    return TransportErrorKind.OTHER


def is_page_closed_error(error: BaseException) -> bool:
    return classify_transport_error(error) is TransportErrorKind.CLOSED
