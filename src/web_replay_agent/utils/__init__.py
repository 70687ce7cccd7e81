"""
Utilities module - Common utility functions.
"""

from web_replay_agent.utils.logging import setup_logging, get_logger
from web_replay_agent.utils.retry import retry, retry_async, RetryConfig
from web_replay_agent.utils.cancellation import CancellationToken

__all__ = [
    "setup_logging",
    "get_logger",
    "retry",
    "retry_async",
    "RetryConfig",
    "CancellationToken",
]
