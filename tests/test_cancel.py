"""
Tests for services.cancel module.
"""

import asyncio

import pytest

from multi_ai.exceptions import DispatchCancelledError
from multi_ai.services.cancel import CancelToken


class TestDeadline:
    """Tests for deadline clamping."""

    def test_no_deadline(self):
        token = CancelToken()

        assert token.remaining_ms() is None
        assert not token.expired
        assert token.clamp(5_000) == 5_000

    def test_clamp_never_zero(self):
        assert CancelToken().clamp(0) == 1
        assert CancelToken(deadline_ms=0).clamp(5_000) == 1

    def test_clamp_bounded_by_deadline(self):
        token = CancelToken(deadline_ms=1_000)

        assert token.clamp(60_000) <= 1_000
        assert token.clamp(10) == 10

    def test_expired(self):
        assert CancelToken(deadline_ms=0).expired


class TestCancel:
    """Tests for cancel(), raise_if_cancelled() and guard()."""

    def test_raise_if_cancelled(self):
        token = CancelToken()
        token.raise_if_cancelled("claude")

        token.cancel("Stopped by user")

        with pytest.raises(DispatchCancelledError, match="Stopped by user before claude finished"):
            token.raise_if_cancelled("claude")

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        async def work():
            await asyncio.sleep(0.01)
            return 42

        assert await CancelToken().guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_propagates_errors(self):
        async def work():
            raise ValueError("bad selector")

        with pytest.raises(ValueError, match="bad selector"):
            await CancelToken().guard(work())

    @pytest.mark.asyncio
    async def test_guard_interrupts_pending_wait(self):
        token = CancelToken()
        interrupted = asyncio.Event()

        async def long_wait():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                interrupted.set()
                raise

        async def cancel_soon():
            await asyncio.sleep(0.02)
            token.cancel()

        asyncio.ensure_future(cancel_soon())

        with pytest.raises(DispatchCancelledError, match="Dispatch cancelled before gemini"):
            await token.guard(long_wait(), "gemini")

        assert interrupted.is_set()

    @pytest.mark.asyncio
    async def test_guard_after_cancel_does_not_run(self):
        token = CancelToken()
        token.cancel()
        ran = False

        async def work():
            nonlocal ran
            ran = True

        with pytest.raises(DispatchCancelledError):
            await token.guard(work())

        assert ran is False
