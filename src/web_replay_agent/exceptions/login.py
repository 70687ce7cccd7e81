"""
Login-related exceptions.
"""

from web_replay_agent.exceptions.base import WebReplayAgentError


class LoginError(WebReplayAgentError):
    """Base exception for login errors."""
    pass


class LoginFormNotFoundError(LoginError):
    """
    No login form could be located on the page.

    Raised when the detector cannot find both an identifier and a password field.
    """

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, {"url": url})
        self.url = url


class LoginFailedError(LoginError):
    """
    Authentication was attempted but did not succeed.

    Attributes:
        reason: Why the attempt was judged a failure
        form_type: The detected login pattern
    """

    def __init__(self, message: str, reason: str | None = None, form_type: str | None = None):
        super().__init__(message, {"reason": reason, "form_type": form_type})
        self.reason = reason
        self.form_type = form_type


class SessionRestoreError(LoginError):
    """A stored login session could not be decoded or applied to the page."""

    def __init__(self, message: str, session_id: str | None = None):
        super().__init__(message, {"session_id": session_id})
        self.session_id = session_id
