"""Caller-side driver for idempotent lifecycle steps."""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from scanplane.consts import (
    POLL_BACKOFF_FACTOR,
    POLL_INITIAL_BACKOFF_SECONDS,
    POLL_JITTER_FACTOR,
    POLL_MAX_BACKOFF_SECONDS,
    POLL_MAX_INTERVAL_SECONDS,
)
from scanplane.errors import FatalError, PollTimeoutError, ProviderError, RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Backoff:
    """Exponential backoff with jitter."""

    def __init__(
        self,
        initial_delay: float = POLL_INITIAL_BACKOFF_SECONDS,
        max_delay: float = POLL_MAX_BACKOFF_SECONDS,
        backoff_factor: float = POLL_BACKOFF_FACTOR,
        jitter_factor: float = POLL_JITTER_FACTOR,
    ):
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter_factor = jitter_factor
        self._current_delay = initial_delay
        self._consecutive_errors = 0

    def reset(self) -> None:
        """Reset delay after a step made progress."""
        self._current_delay = self.initial_delay
        self._consecutive_errors = 0

    def next_delay(self) -> float:
        """Delay before the next attempt; grows on every call."""
        delay = self._current_delay
        self._consecutive_errors += 1
        self._current_delay = min(self._current_delay * self.backoff_factor, self.max_delay)
        # +/- jitter_factor of the delay
        jitter = delay * self.jitter_factor * (2 * random.random() - 1)
        return delay + jitter

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors


async def poll_until_done(
    step: Callable[[], Awaitable[T]],
    timeout: float,
    max_interval: float = POLL_MAX_INTERVAL_SECONDS,
    backoff: Backoff | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call a lifecycle step until it succeeds.

    RetryableError sleeps for its estimate (capped at max_interval), plain
    ProviderError sleeps for an exponential backoff, anything else is raised.

    Args:
        step: Idempotent step, e.g. AzureClient.ensure_scanner_vm bound to a job
        timeout: Overall seconds before giving up
        max_interval: Upper bound on a single sleep
        backoff: Backoff used for transient errors without an estimate
        sleep: Sleep function

    Returns:
        Whatever the step returns once it succeeds

    Raises:
        PollTimeoutError: Step did not succeed within the timeout
        FatalError: Step reported an unrecoverable condition
    """
    backoff = backoff or Backoff()
    deadline = time.monotonic() + timeout
    attempt = 0
    last_error: ProviderError

    while True:
        attempt += 1
        try:
            return await step()
        except FatalError:
            raise
        except RetryableError as e:
            backoff.reset()
            delay = min(e.after, max_interval)
            logger.info(f"Attempt {attempt}: {e.message}, checking again in {delay:.0f}s")
            last_error = e
        except ProviderError as e:
            delay = min(backoff.next_delay(), max_interval)
            logger.warning(f"Attempt {attempt}: {e.message}, retrying in {delay:.1f}s")
            last_error = e

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise PollTimeoutError(
                f"gave up after {attempt} attempts: {last_error.message}",
                details={"attempts": attempt, "timeout": timeout},
            )
        await sleep(min(delay, remaining))
