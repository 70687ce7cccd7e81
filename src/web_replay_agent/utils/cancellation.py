"""
Cooperative cancellation for long waits.

A CancellationToken is shared by a manager and everything it awaits on its
behalf. Cancelling it wakes every sleeper and aborts every guarded await,
so cleanup never has to wait for a retry loop or a selector timeout.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from web_replay_agent.exceptions.base import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    """
    Example:
        >>> token = CancellationToken()
        >>> await token.sleep(1.0)          # raises if cancelled meanwhile
        >>> await token.guard(page.wait_for_selector("#x"))
        >>> token.cancel()
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self, operation: Optional[str] = None) -> None:
        if self._event.is_set():
            raise OperationCancelledError(
                f"Operation cancelled: {self.reason}", operation=operation
            )

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first."""
        self.raise_if_cancelled("sleep")
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled("sleep")

    async def guard(self, awaitable: Awaitable[T], operation: Optional[str] = None) -> T:
        """Await ``awaitable``, abandoning it if the token is cancelled first."""
        self.raise_if_cancelled(operation)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            # abandoned
            pass
        raise OperationCancelledError(
            f"Operation cancelled: {self.reason}", operation=operation
        )


def ensure_token(token: Optional[CancellationToken]) -> CancellationToken:
    """Return ``token`` or a fresh, never-cancelled one."""
    return token if token is not None else CancellationToken()


__all__ = ["CancellationToken", "ensure_token"]
