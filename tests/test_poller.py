"""Tests for the lifecycle poll driver and backoff."""

from unittest.mock import AsyncMock

import pytest

from scanplane.errors import FatalError, PollTimeoutError, ProviderError, RetryableError
from scanplane.provider.poller import Backoff, poll_until_done


class TestBackoff:
    """Tests for exponential backoff with jitter."""

    def test_delay_grows_and_caps(self):
        """Delays double up to the maximum."""
        backoff = Backoff(initial_delay=1.0, max_delay=4.0, backoff_factor=2.0, jitter_factor=0)

        delays = [backoff.next_delay() for _ in range(4)]

        assert delays == [1.0, 2.0, 4.0, 4.0]
        assert backoff.consecutive_errors == 4

    def test_jitter_stays_in_range(self):
        """Jitter keeps the delay within +/- jitter_factor."""
        backoff = Backoff(initial_delay=10.0, jitter_factor=0.1)

        delay = backoff.next_delay()

        assert 9.0 <= delay <= 11.0

    def test_reset(self):
        """Reset returns to the initial delay."""
        backoff = Backoff(initial_delay=1.0, jitter_factor=0)
        backoff.next_delay()
        backoff.next_delay()

        backoff.reset()

        assert backoff.next_delay() == 1.0
        assert backoff.consecutive_errors == 1


class TestPollUntilDone:
    """Tests for poll_until_done."""

    @pytest.fixture
    def sleeps(self) -> list[float]:
        return []

    @pytest.fixture
    def fake_sleep(self, sleeps):
        async def sleep(seconds: float) -> None:
            sleeps.append(seconds)

        return sleep

    @pytest.mark.asyncio
    async def test_retries_until_success(self, sleeps, fake_sleep):
        """Retryable errors sleep for their estimate, capped at max_interval."""
        step = AsyncMock(
            side_effect=[
                RetryableError("snapshot created", after=120),
                RetryableError("disk created", after=10),
                "vm",
            ]
        )

        result = await poll_until_done(step, timeout=600, max_interval=30, sleep=fake_sleep)

        assert result == "vm"
        assert step.await_count == 3
        assert sleeps == [30, 10]

    @pytest.mark.asyncio
    async def test_transient_errors_back_off(self, sleeps, fake_sleep):
        """Plain provider errors use the exponential backoff."""
        step = AsyncMock(side_effect=[ProviderError("HTTP 503"), ProviderError("HTTP 503"), None])
        backoff = Backoff(initial_delay=1.0, backoff_factor=2.0, jitter_factor=0)

        await poll_until_done(step, timeout=600, backoff=backoff, sleep=fake_sleep)

        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_fatal_error_stops_immediately(self, sleeps, fake_sleep):
        """FatalError is raised without retrying."""
        step = AsyncMock(side_effect=FatalError("bad instance id"))

        with pytest.raises(FatalError):
            await poll_until_done(step, timeout=600, sleep=fake_sleep)

        assert step.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_gives_up_after_timeout(self, fake_sleep):
        """The overall timeout raises PollTimeoutError with the last message."""
        step = AsyncMock(side_effect=RetryableError("blob copy from url started", after=120))

        with pytest.raises(PollTimeoutError, match="blob copy from url started"):
            await poll_until_done(step, timeout=0, sleep=fake_sleep)

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self, fake_sleep):
        """Exceptions outside the provider hierarchy are not retried."""
        step = AsyncMock(side_effect=ValueError("bug"))

        with pytest.raises(ValueError):
            await poll_until_done(step, timeout=600, sleep=fake_sleep)
