"""
Tests for the bounded retry and parallel map helpers.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from utils.async_utils import gather_defined, retry_async


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        fn = AsyncMock(return_value="ok")

        assert await retry_async(fn, attempts=2, delay=0) == "ok"
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_once_then_succeeds(self):
        fn = AsyncMock(side_effect=[RuntimeError("rate limited"), "ok"])

        assert await retry_async(fn, attempts=2, delay=0) == "ok"
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        fn = AsyncMock(side_effect=[RuntimeError("first"), ValueError("second")])

        with pytest.raises(ValueError, match="second"):
            await retry_async(fn, attempts=2, delay=0)
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_only_retries_listed_exceptions(self):
        fn = AsyncMock(side_effect=KeyError("boom"))

        with pytest.raises(KeyError):
            await retry_async(fn, attempts=3, delay=0, retry_on=(RuntimeError,))
        assert fn.await_count == 1


class TestGatherDefined:
    """Tests for gather_defined."""

    @pytest.mark.asyncio
    async def test_drops_none_and_keeps_order(self):
        async def double_odd(n: int):
            await asyncio.sleep(0.01 * (5 - n))
            return n * 2 if n % 2 else None

        assert await gather_defined(double_odd, [1, 2, 3, 4, 5]) == [2, 6, 10]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await gather_defined(AsyncMock(), []) == []

    @pytest.mark.asyncio
    async def test_limit_caps_concurrency(self):
        in_flight = 0
        peak = 0

        async def work(n: int):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return n

        result = await gather_defined(work, range(10), limit=3)

        assert result == list(range(10))
        assert peak == 3

    @pytest.mark.asyncio
    async def test_exception_propagates(self):
        async def fail(n: int):
            raise RuntimeError(f"failed {n}")

        with pytest.raises(RuntimeError):
            await gather_defined(fail, [1])
