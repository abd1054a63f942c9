"""
Unit tests for the sliding-window rate limiter.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from mediasift.security.rate_limiter import RateLimitExceeded, SlidingWindowRateLimiter, client_identifier


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(limit=3, window_seconds=60, clock=clock)


class TestSlidingWindowRateLimiter:
    async def test_allows_up_to_limit(self, limiter):
        results = [await limiter.check("10.0.0.1") for _ in range(3)]
        assert [result.allowed for result in results] == [True, True, True]
        assert [result.remaining for result in results] == [2, 1, 0]

    async def test_blocks_over_limit_with_retry_after(self, limiter, clock):
        for _ in range(3):
            await limiter.check("10.0.0.1")
            clock.advance(10)

        result = await limiter.check("10.0.0.1")
        assert result.allowed is False
        assert result.remaining == 0
        # Oldest request was 30 s ago; it leaves the window in 30 s
        assert result.retry_after == 30

    async def test_window_slides(self, limiter, clock):
        for _ in range(3):
            await limiter.check("10.0.0.1")
        clock.advance(60)
        assert (await limiter.check("10.0.0.1")).allowed is True

    async def test_rejected_requests_do_not_extend_the_window(self, limiter, clock):
        for _ in range(3):
            await limiter.check("10.0.0.1")
        for _ in range(5):
            clock.advance(5)
            assert (await limiter.check("10.0.0.1")).allowed is False
        clock.advance(35)
        assert (await limiter.check("10.0.0.1")).allowed is True

    async def test_identifiers_are_independent(self, limiter):
        for _ in range(3):
            await limiter.check("10.0.0.1")
        assert (await limiter.check("10.0.0.2")).allowed is True

    async def test_reset(self, limiter):
        for _ in range(3):
            await limiter.check("10.0.0.1")
            await limiter.check("10.0.0.2")
        await limiter.reset("10.0.0.1")
        assert (await limiter.check("10.0.0.1")).allowed is True
        assert (await limiter.check("10.0.0.2")).allowed is False
        await limiter.reset()
        assert (await limiter.check("10.0.0.2")).allowed is True

    async def test_idle_identifiers_are_swept(self, clock):
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=1, clock=clock)
        for index in range(5000):
            await limiter.check(f"198.51.100.{index}")
        assert limiter.tracked_identifiers == 5000

        clock.advance(1)
        await limiter.check("10.0.0.1")
        assert limiter.tracked_identifiers == 1

    async def test_sweep_keeps_active_identifiers(self, limiter, clock):
        await limiter.check("10.0.0.1")
        clock.advance(30)
        await limiter.check("10.0.0.2")
        clock.advance(31)
        await limiter.check("10.0.0.3")
        assert limiter.tracked_identifiers == 2
        # 10.0.0.2 is still inside its window
        assert (await limiter.check("10.0.0.2")).remaining == 1

    def test_rejects_bad_parameters(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(limit=0)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(window_seconds=0)


class TestHelpers:
    def test_exception_payload(self):
        exc = RateLimitExceeded(retry_after=12, limit=10, reset_time=1700000000.5)
        assert exc.status_code == 429
        assert exc.detail == {"error": "Too many requests. Please try again later.", "retryAfter": 12}
        assert exc.headers["Retry-After"] == "12"
        assert exc.headers["X-RateLimit-Reset"] == "1700000000"

    def test_client_identifier_ignores_forwarded_for_by_default(self):
        request = MagicMock()
        request.headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}
        request.client.host = "198.51.100.4"
        assert client_identifier(request) == "198.51.100.4"

    def test_client_identifier_uses_forwarded_for_behind_trusted_proxy(self):
        request = MagicMock()
        request.headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}
        request.client.host = "10.0.0.1"
        assert client_identifier(request, trust_forwarded_for=True) == "203.0.113.7"

    def test_client_identifier_with_blank_forwarded_for(self):
        request = MagicMock()
        request.headers = {"x-forwarded-for": " , 10.0.0.1"}
        request.client.host = "10.0.0.1"
        assert client_identifier(request, trust_forwarded_for=True) == "10.0.0.1"

    def test_client_identifier_falls_back_to_peer(self):
        request = MagicMock()
        request.headers = {}
        request.client.host = "198.51.100.4"
        assert client_identifier(request) == "198.51.100.4"

    def test_client_identifier_without_peer(self):
        request = MagicMock()
        request.headers = {}
        request.client = None
        assert client_identifier(request) == "unknown"
