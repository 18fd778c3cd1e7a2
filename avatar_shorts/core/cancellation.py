"""
Cancellation
============

A cancellation token shared by every wait inside one pipeline run.

The token trips either when ``cancel()`` is called or when its deadline
passes. Waits (poll sleeps, the compositor process) wake early on either.
"""

import asyncio
import time
from typing import Optional

from .exceptions import Cancelled


class CancelToken:
    """
    Explicit cancellation signal with an optional deadline.

    Usage:
        token = CancelToken(timeout=600)
        result = await pipeline.run(request, cancel_token=token)

        # elsewhere
        token.cancel("client disconnected")
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds from now after which the token counts as
                cancelled. ``None`` means no deadline.
        """
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @property
    def reason(self) -> str:
        if self._reason:
            return self._reason
        if self._deadline_passed():
            return "deadline exceeded"
        return ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self._deadline_passed()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled(f"Pipeline cancelled: {self.reason}")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds``, raising Cancelled if the token trips first."""
        self.raise_if_cancelled()
        remaining = self.remaining()
        timeout = seconds if remaining is None else min(seconds, remaining)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        self.raise_if_cancelled()

    async def wait(self) -> None:
        """Block until the token trips (cancel or deadline)."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=self.remaining())
        except asyncio.TimeoutError:
            pass

    def _deadline_passed(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline
