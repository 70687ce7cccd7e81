"""
Retry utilities with fixed or exponential backoff.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from web_replay_agent.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts
        initial_delay_ms: Delay before the first retry
        max_delay_ms: Maximum delay between retries
        backoff_multiplier: 1.0 gives a fixed backoff, >1.0 exponential
        retry_on: Exception types to retry on
        on_retry: Callback function called on each retry
    """
    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    retry_on: Tuple[Type[Exception], ...] = (Exception,)
    on_retry: Optional[Callable[[int, Exception], None]] = None

    @classmethod
    def fixed(cls, max_attempts: int, delay_ms: int, **kwargs: Any) -> "RetryConfig":
        """Same delay between every attempt."""
        return cls(
            max_attempts=max_attempts,
            initial_delay_ms=delay_ms,
            max_delay_ms=delay_ms,
            backoff_multiplier=1.0,
            **kwargs,
        )


def retry(
    max_attempts: int = 3,
    initial_delay_ms: int = 1000,
    max_delay_ms: int = 30000,
    backoff_multiplier: float = 2.0,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for retrying async functions with backoff.

    Example:
        >>> @retry(max_attempts=3, retry_on=(TimeoutError,))
        ... async def fetch_data():
        ...     ...
    """
    config = RetryConfig(
        max_attempts=max_attempts,
        initial_delay_ms=initial_delay_ms,
        max_delay_ms=max_delay_ms,
        backoff_multiplier=backoff_multiplier,
        retry_on=retry_on,
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_async(func, config, *args, **kwargs)
        return wrapper

    return decorator


async def retry_async(
    func: Callable[..., T],
    config: RetryConfig,
    *args: Any,
    cancel_token: Optional[CancellationToken] = None,
    **kwargs: Any,
) -> T:
    """
    Execute an async function with retry logic.

    Args:
        func: Async function to execute
        config: Retry configuration
        *args: Function arguments
        cancel_token: Aborts the backoff sleep when cancelled
        **kwargs: Function keyword arguments

    Returns:
        Function result

    Raises:
        The last exception if all retries fail, or OperationCancelledError
    """
    last_exception: Optional[Exception] = None
    delay_ms: float = config.initial_delay_ms

    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except config.retry_on as e:
            last_exception = e

            if attempt == config.max_attempts - 1:
                break

            logger.debug(
                f"Attempt {attempt + 1}/{config.max_attempts} failed: {e}. "
                f"Retrying in {int(delay_ms)}ms..."
            )

            if config.on_retry:
                config.on_retry(attempt + 1, e)

            if cancel_token is not None:
                await cancel_token.sleep(delay_ms / 1000)
            else:
                await asyncio.sleep(delay_ms / 1000)

            delay_ms = min(
                delay_ms * config.backoff_multiplier,
                config.max_delay_ms,
            )

    raise last_exception  # type: ignore
