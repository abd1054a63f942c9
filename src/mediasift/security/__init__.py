"""
Security components for the MediaSift web service.

Provides response headers, rate limiting and caller-layer input validation.
"""

from .headers import RequestContextMiddleware, SecurityHeadersMiddleware
from .rate_limiter import (
    RateLimitExceeded,
    RateLimitResult,
    SlidingWindowRateLimiter,
    client_identifier,
    enforce_rate_limit,
)
from .validation import SourceValidator, validate_proxy_url

__all__ = [
    "RateLimitExceeded",
    "RateLimitResult",
    "RequestContextMiddleware",
    "SecurityHeadersMiddleware",
    "SlidingWindowRateLimiter",
    "SourceValidator",
    "client_identifier",
    "enforce_rate_limit",
    "validate_proxy_url",
]
