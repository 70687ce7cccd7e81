"""
Browsers module - Browser lifecycle and transport error helpers.
"""

from web_replay_agent.browsers.playwright_browser import PlaywrightBrowser
from web_replay_agent.browsers.errors import (
    TransportErrorKind,
    classify_transport_error,
    is_page_closed_error,
)

__all__ = [
    "PlaywrightBrowser",
    "TransportErrorKind",
    "classify_transport_error",
    "is_page_closed_error",
]
