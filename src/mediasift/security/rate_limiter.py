"""
In-memory sliding-window rate limiting for the extraction endpoint.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

import structlog
from fastapi import HTTPException, Request, status

logger = structlog.get_logger(__name__)

TOO_MANY_REQUESTS_MESSAGE = "Too many requests. Please try again later."


@dataclass
class RateLimitResult:
    """Result of rate limit check."""

    allowed: bool
    remaining: int
    limit: int
    reset_time: float
    retry_after: int = 0


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, retry_after: int, limit: int = 0, reset_time: float = 0):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": TOO_MANY_REQUESTS_MESSAGE, "retryAfter": retry_after},
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(int(reset_time)),
            },
        )


class SlidingWindowRateLimiter:
    """
    Per-identifier sliding window.

    Each identifier keeps the timestamps of its accepted requests inside the
    current window; a request is allowed while fewer than ``limit`` remain.
    Identifiers whose newest request has left the window are swept at most
    once per window, so the table only holds recently active callers.
    """

    def __init__(self, limit: int = 10, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._request_history: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_sweep = clock()
        self._lock = asyncio.Lock()

    @property
    def tracked_identifiers(self) -> int:
        return len(self._request_history)

    async def check(self, identifier: str) -> RateLimitResult:
        """Record a request for ``identifier`` if it is within the limit."""
        async with self._lock:
            now = self._clock()
            cutoff = now - self.window_seconds
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now

            history = self._request_history[identifier]
            while history and history[0] <= cutoff:
                history.popleft()

            if len(history) < self.limit:
                history.append(now)
                return RateLimitResult(
                    allowed=True,
                    remaining=self.limit - len(history),
                    limit=self.limit,
                    reset_time=history[0] + self.window_seconds,
                )

            reset_time = history[0] + self.window_seconds
            retry_after = max(1, math.ceil(reset_time - now))
            logger.warning("Rate limit exceeded", identifier=identifier, retry_after=retry_after)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=self.limit,
                reset_time=reset_time,
                retry_after=retry_after,
            )

    async def reset(self, identifier: str | None = None) -> None:
        async with self._lock:
            if identifier is None:
                self._request_history.clear()
            else:
                self._request_history.pop(identifier, None)

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, history in self._request_history.items() if not history or history[-1] <= cutoff]
        for key in stale:
            del self._request_history[key]
        if stale:
            logger.debug("Swept idle rate limit entries", removed=len(stale), tracked=len(self._request_history))


def client_identifier(request: Request, trust_forwarded_for: bool = False) -> str:
    """
    Rate limit key for a request.

    The socket peer address, unless ``trust_forwarded_for`` is set, in which
    case the first ``X-Forwarded-For`` hop wins. The header is client
    controlled, so only a reverse proxy that rewrites it makes it usable.
    """
    if trust_forwarded_for:
        first_hop = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request) -> RateLimitResult:
    """FastAPI dependency guarding an endpoint with the app's limiter."""
    limiter: SlidingWindowRateLimiter = request.app.state.rate_limiter
    trust_forwarded_for = request.app.state.config.service.trust_forwarded_for
    result = await limiter.check(client_identifier(request, trust_forwarded_for))
    if not result.allowed:
        raise RateLimitExceeded(retry_after=result.retry_after, limit=result.limit, reset_time=result.reset_time)
    return result
