"""Cooperative cancellation for family runs."""

import asyncio
import logging

logger = logging.getLogger(__name__)


class RunContext:
    """Cancellation token shared by a FamilyManager run and its families.

    Cancelling never interrupts running code; everything that holds the
    context is expected to notice via `cancelled` or `wait()` and stop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._timer: asyncio.TimerHandle | None = None

    @classmethod
    def with_timeout(cls, seconds: float) -> "RunContext":
        """Create a context that cancels itself after a deadline.

        Must be called from a running event loop.

        Args:
            seconds: Seconds until the context is cancelled

        Returns:
            New RunContext with the deadline armed
        """
        ctx = cls()
        loop = asyncio.get_running_loop()
        ctx._timer = loop.call_later(seconds, ctx.cancel, "deadline exceeded")
        return ctx

    def cancel(self, reason: str = "context cancelled") -> None:
        """Cancel the context. Only the first reason is kept."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
        logger.debug(f"Run context cancelled: {reason}")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    async def wait(self) -> None:
        """Block until the context is cancelled."""
        await self._event.wait()
