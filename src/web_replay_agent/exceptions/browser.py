"""
Browser-related exceptions.
"""

from web_replay_agent.exceptions.base import WebReplayAgentError


class BrowserError(WebReplayAgentError):
    """Base exception for browser-related errors."""
    pass


class BrowserLaunchError(BrowserError):
    """
    Error launching the browser.

    Raised when the browser fails to start, which could be due to
    missing browser binaries or invalid launch options.
    """
    pass


class BrowserConnectionError(BrowserError):
    """
    Error connecting to the browser.

    Raised when the connection to the browser is lost or cannot be established.
    """
    pass


class PageError(BrowserError):
    """Base exception for page-related errors."""
    pass


class PageClosedError(PageError):
    """The page (or its browser) went away while an operation was in flight."""
    pass


class NavigationError(PageError):
    """
    Error during page navigation.

    Raised when navigation fails because of an invalid URL, a network
    error or a navigation timeout.
    """

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message, {"url": url, "status_code": status_code})
        self.url = url
        self.status_code = status_code


class ElementNotFoundError(PageError):
    """
    Element not found on the page.

    Raised when no element matches the selector (or any of its alternatives).
    """

    def __init__(self, message: str, selector: str, attempts: int | None = None):
        details = {"selector": selector}
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message, details)
        self.selector = selector
        self.attempts = attempts
