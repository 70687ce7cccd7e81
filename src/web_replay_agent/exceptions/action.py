"""
Action-related exceptions.
"""

from web_replay_agent.exceptions.base import InitializationError, WebReplayAgentError


class ActionError(WebReplayAgentError):
    """Base exception for action-related errors."""
    pass


class ActionValidationError(ActionError):
    """
    Action fields are invalid.

    Raised when a recorded action fails selector or business-rule checks.
    """

    def __init__(self, message: str, action_type: str, invalid_params: dict | None = None):
        super().__init__(message, {"action_type": action_type, "invalid_params": invalid_params})
        self.action_type = action_type
        self.invalid_params = invalid_params


class ActionExecutionError(ActionError):
    """
    Error during action execution.

    Raised when a replay primitive cannot be carried out.
    """

    def __init__(self, message: str, action_type: str, selector: str | None = None):
        super().__init__(message, {"action_type": action_type, "selector": selector})
        self.action_type = action_type
        self.selector = selector


class ReplayNotInitializedError(InitializationError):
    """An action was executed before the replay manager had a page."""
    pass
