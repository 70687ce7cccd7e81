"""
Capture-related exceptions.
"""

from web_replay_agent.exceptions.base import WebReplayAgentError


class CaptureError(WebReplayAgentError):
    """Base exception for capture session errors."""
    pass


class CaptureInProgressError(CaptureError):
    """A capture was started while another one is still running."""

    def __init__(self, message: str, session_id: str):
        super().__init__(message, {"session_id": session_id})
        self.session_id = session_id


class CaptureSessionSealedError(CaptureError):
    """An action was appended to a session that has already been stopped."""

    def __init__(self, message: str, session_id: str):
        super().__init__(message, {"session_id": session_id})
        self.session_id = session_id
