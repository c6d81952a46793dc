"""
Cooperative cancellation for a batch of agents.

A CancelToken is shared by every agent of one dispatch. Calling cancel()
aborts in-flight waits of all of them; an optional deadline additionally
bounds every wait so no agent outlives the batch budget.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import TypeVar

from ..exceptions import DispatchCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """
    Cancellation signal plus optional absolute deadline.

    Attributes:
        reason: Message used for DispatchCancelledError once cancelled

    Example:
        >>> token = CancelToken(deadline_ms=90_000)
        >>> token.clamp(120_000) <= 90_000
        True
        >>> token.cancel("User pressed Ctrl+C")
        >>> token.cancelled
        True
    """

    def __init__(self, deadline_ms: int | None = None):
        """
        Create a token.

        Args:
            deadline_ms: Milliseconds from now after which every clamped
                wait expires (None for no deadline)
        """
        self._event = asyncio.Event()
        self._deadline = (
            time.monotonic() + deadline_ms / 1000 if deadline_ms is not None else None
        )
        self.reason = "Dispatch cancelled"

    def cancel(self, reason: str | None = None) -> None:
        """Signal cancellation to every holder of this token."""
        if reason:
            self.reason = reason
        if not self._event.is_set():
            logger.info(f"Cancellation requested: {self.reason}")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        """True once the deadline (if any) has passed."""
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining_ms(self) -> int | None:
        """Return milliseconds until the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0, int((self._deadline - time.monotonic()) * 1000))

    def clamp(self, timeout_ms: int) -> int:
        """
        Bound a wait by the deadline.

        Never returns 0: Playwright treats a zero timeout as "wait forever".
        """
        remaining = self.remaining_ms()
        if remaining is None:
            return max(1, timeout_ms)
        return max(1, min(timeout_ms, remaining))

    def raise_if_cancelled(self, service_name: str | None = None) -> None:
        """
        Raise DispatchCancelledError if cancel() was called.

        Args:
            service_name: Included in the error message when given
        """
        if self._event.is_set():
            raise DispatchCancelledError(self._message(service_name))

    def _message(self, service_name: str | None) -> str:
        if service_name:
            return f"{self.reason} before {service_name} finished"
        return self.reason

    async def guard(self, awaitable: Awaitable[T], service_name: str | None = None) -> T:
        """
        Await ``awaitable`` unless cancel() fires first.

        On cancellation the pending operation is cancelled and
        DispatchCancelledError is raised.

        Args:
            awaitable: Operation to run (typically a Playwright wait)
            service_name: Used in the cancellation message

        Returns:
            The awaitable's result

        Raises:
            DispatchCancelledError: If cancel() was called before completion
        """
        task = asyncio.ensure_future(awaitable)
        if self._event.is_set():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise DispatchCancelledError(self._message(service_name))

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise DispatchCancelledError(self._message(service_name))
