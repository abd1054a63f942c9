"""
Response header middleware for the MediaSift web service.
"""

from __future__ import annotations

import time
from typing import Callable, Optional
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to every response.

    The default Content Security Policy lets the bundled page play media
    straight from the CDN and through the local proxy.
    """

    def __init__(
        self,
        app,
        csp_directives: Optional[dict[str, str]] = None,
        enable_hsts: bool = False,
        hsts_max_age: int = 31536000,
    ):
        super().__init__(app)
        self.csp_directives = csp_directives or self._default_csp()
        self.enable_hsts = enable_hsts
        self.hsts_max_age = hsts_max_age
        self._csp = self._build_csp()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["Content-Security-Policy"] = self._csp
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = f"max-age={self.hsts_max_age}; includeSubDomains"

        if "X-Powered-By" in response.headers:
            del response.headers["X-Powered-By"]

        return response

    def _default_csp(self) -> dict[str, str]:
        return {
            "default-src": "'self'",
            "style-src": "'self' 'unsafe-inline' https://fonts.googleapis.com https://cdnjs.cloudflare.com",
            "font-src": "'self' https://fonts.gstatic.com https://cdnjs.cloudflare.com",
            "script-src": "'self' 'unsafe-inline'",
            "img-src": "'self' data: https: http:",
            "media-src": "'self' https: http: data: blob: *.fbcdn.net *.facebook.com",
            "connect-src": "'self'",
            "object-src": "'none'",
            "base-uri": "'self'",
        }

    def _build_csp(self) -> str:
        parts = []
        for directive, value in self.csp_directives.items():
            parts.append(f"{directive} {value}" if value else directive)
        return "; ".join(parts)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id, binds it to the log context and times it."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.info(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            client=request.client.host if request.client else None,
            duration=round(elapsed, 4),
        )
        return response
