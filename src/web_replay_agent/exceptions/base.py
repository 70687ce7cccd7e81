"""
Base exceptions for Web Replay Agent.
"""


class WebReplayAgentError(Exception):
    """
    Base exception for all Web Replay Agent errors.

    All custom exceptions inherit from this class, making it easy
    to catch any error from the library.

    Attributes:
        message: Human-readable error message
        details: Optional additional error details
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationError(WebReplayAgentError):
    """
    Error in configuration.

    Raised when there's an issue with settings, environment variables,
    or configuration files.
    """
    pass


class InitializationError(WebReplayAgentError):
    """
    Error during initialization.

    Raised when a component is used before it has been initialized.
    """
    pass


class OperationCancelledError(WebReplayAgentError):
    """Raised when a wait or lookup is preempted by cleanup."""

    def __init__(self, message: str = "Operation cancelled", operation: str | None = None):
        super().__init__(message, {"operation": operation} if operation else None)
        self.operation = operation
