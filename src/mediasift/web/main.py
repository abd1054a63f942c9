"""
FastAPI application for the MediaSift web service.

The extraction core is synchronous and CPU-bound, so requests hand it to a
worker thread. Everything else here is gatekeeping: size checks, rate
limiting, security headers and the playback proxy.
"""

from __future__ import annotations

import asyncio
import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional, cast

import httpx
import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from mediasift import __version__
from mediasift.config import Config, settings
from mediasift.exceptions import ExtractionError, SourceRejectedError
from mediasift.observability.metrics import METRICS
from mediasift.pipeline import ExtractionPipeline
from mediasift.security import (
    RateLimitResult,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    SlidingWindowRateLimiter,
    SourceValidator,
    enforce_rate_limit,
)
from mediasift.security.validation import SOURCE_TOO_LARGE

from .proxy import router as proxy_router

logger = structlog.get_logger(__name__)

STATIC_DIR = Path(__file__).parent / "static"
INDEX_PATH = STATIC_DIR / "index.html"

EXTRACTION_FAILED = "Failed to extract video links. Please try again or check if the source code is complete."
NOT_FOUND = "Endpoint not found."
INTERNAL_ERROR = "Internal server error occurred."
NO_VIDEOS_FOUND = (
    "No videos found in the source code. This may be because the page doesn't contain a video, "
    "the video is not publicly accessible, or the video is embedded using a format we don't recognize."
)

ENDPOINTS = [
    "GET /",
    "POST /extract-videos",
    "GET /proxy-video",
    "GET /health",
    "GET /test",
    "GET /metrics",
]


class SelectiveGZipMiddleware:
    """GZip every response except those on ``excluded_paths``.

    Proxied media keeps its byte ranges intact.
    """

    def __init__(self, app: ASGIApp, excluded_paths: tuple[str, ...] = (), minimum_size: int = 1000) -> None:
        self.app = app
        self.excluded_paths = excluded_paths
        self.gzip = GZipMiddleware(app, minimum_size=minimum_size)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope.get("path") in self.excluded_paths:
            await self.app(scope, receive, send)
        else:
            await self.gzip(scope, receive, send)


async def _read_capped_body(request: Request, limit: int) -> Optional[bytes]:
    """Read the request body, or return ``None`` once it exceeds ``limit`` bytes."""
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        return None

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def create_app(config: Optional[Config] = None, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the web application.

    Args:
        config: Settings to use. Defaults to the lazily loaded global settings.
        http_client: Client for the playback proxy. One is created and closed
            with the application when omitted.
    """
    config = config if config is not None else cast(Config, settings)
    service = config.service

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owns_client = app.state.http_client is None
        if owns_client:
            app.state.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(service.proxy_timeout_seconds),
                follow_redirects=True,
            )
        logger.info("MediaSift web service starting", version=__version__)

        yield

        if owns_client:
            await app.state.http_client.aclose()
            app.state.http_client = None
        logger.info("MediaSift web service stopped")

    app = FastAPI(title="MediaSift", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.pipeline = ExtractionPipeline(config)
    app.state.source_validator = SourceValidator(service)
    app.state.rate_limiter = SlidingWindowRateLimiter(
        limit=service.rate_limit_requests,
        window_seconds=service.rate_limit_window_seconds,
    )
    app.state.http_client = http_client
    app.state.started_at = time.monotonic()

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=service.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Range", "X-Request-ID"],
        expose_headers=["Content-Range", "Content-Length", "Accept-Ranges"],
    )
    app.add_middleware(SelectiveGZipMiddleware, excluded_paths=("/proxy-video",))
    app.add_middleware(RequestContextMiddleware)

    _register_exception_handlers(app)
    _register_routes(app)
    app.include_router(proxy_router)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            content: Dict[str, Any] = {"error": NOT_FOUND}
        elif isinstance(exc.detail, dict):
            content = exc.detail
        else:
            content = {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request."})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", path=request.url.path)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": INTERNAL_ERROR})


def _register_routes(app: FastAPI) -> None:
    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        """Serves the bundled extraction page."""
        return INDEX_PATH.read_text(encoding="utf-8")

    @app.post("/extract-videos")
    async def extract_videos(
        request: Request,
        _: RateLimitResult = Depends(enforce_rate_limit),
    ) -> JSONResponse:
        """Extract media links from a submitted page source."""
        body = await _read_capped_body(request, request.app.state.config.service.max_source_length)
        if body is None:
            METRICS["rejections"].labels(reason="source").inc()
            return JSONResponse(status_code=413, content={"error": SOURCE_TOO_LARGE})
        try:
            payload = json.loads(body) if body else None
        except ValueError:
            payload = None
        source = payload.get("sourceCode") if isinstance(payload, dict) else None

        try:
            request.app.state.source_validator.validate(source)
        except SourceRejectedError as e:
            METRICS["rejections"].labels(reason="source").inc()
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})

        METRICS["source_bytes"].observe(len(source))
        pipeline: ExtractionPipeline = request.app.state.pipeline
        try:
            result = await asyncio.to_thread(pipeline.extract, source)
        except ExtractionError as e:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": EXTRACTION_FAILED, "details": str(e)},
            )

        videos = [asset.to_dict() for asset in result.assets]
        if videos and result.raw_rescan_used:
            message = f"Found {len(videos)} video(s) using specific pattern matching"
        elif videos:
            message = f"Successfully extracted {len(videos)} video(s) from the page"
        else:
            message = NO_VIDEOS_FOUND

        return JSONResponse(
            content={
                "success": True,
                "videos": videos,
                "count": len(videos),
                "message": message,
                "totalFound": result.total_found,
                "filteredCount": len(videos),
            }
        )

    @app.get("/health")
    async def health_check(request: Request) -> Dict[str, Any]:
        """Liveness check."""
        return {
            "status": "OK",
            "timestamp": _timestamp(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "version": __version__,
        }

    @app.get("/test")
    async def test_endpoint() -> Dict[str, Any]:
        return {"message": "Server is working!", "timestamp": _timestamp(), "endpoints": ENDPOINTS}

    @app.get("/metrics")
    async def get_prometheus_metrics() -> Response:
        """Endpoint for Prometheus to scrape."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app = create_app()
