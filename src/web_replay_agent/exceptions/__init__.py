"""
Exceptions module - Custom exception hierarchy.

This module defines all custom exceptions used throughout Web Replay Agent,
providing clear error types for different failure scenarios.
"""

from web_replay_agent.exceptions.base import (
    WebReplayAgentError,
    ConfigurationError,
    InitializationError,
    OperationCancelledError,
)
from web_replay_agent.exceptions.browser import (
    BrowserError,
    BrowserLaunchError,
    BrowserConnectionError,
    PageError,
    PageClosedError,
    NavigationError,
    ElementNotFoundError,
)
from web_replay_agent.exceptions.action import (
    ActionError,
    ActionValidationError,
    ActionExecutionError,
    ReplayNotInitializedError,
)
from web_replay_agent.exceptions.capture import (
    CaptureError,
    CaptureInProgressError,
    CaptureSessionSealedError,
)
from web_replay_agent.exceptions.login import (
    LoginError,
    LoginFormNotFoundError,
    LoginFailedError,
    SessionRestoreError,
)

__all__ = [
    # Base exceptions
    "WebReplayAgentError",
    "ConfigurationError",
    "InitializationError",
    "OperationCancelledError",
    # Browser exceptions
    "BrowserError",
    "BrowserLaunchError",
    "BrowserConnectionError",
    "PageError",
    "PageClosedError",
    "NavigationError",
    "ElementNotFoundError",
    # Action exceptions
    "ActionError",
    "ActionValidationError",
    "ActionExecutionError",
    "ReplayNotInitializedError",
    # Capture exceptions
    "CaptureError",
    "CaptureInProgressError",
    "CaptureSessionSealedError",
    # Login exceptions
    "LoginError",
    "LoginFormNotFoundError",
    "LoginFailedError",
    "SessionRestoreError",
]
