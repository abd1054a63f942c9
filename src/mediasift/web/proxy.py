"""
Byte-streaming playback proxy.

Lets the bundled page preview CDN assets that refuse cross-origin playback.
The proxy forwards the client's Range header and pipes the upstream body
through without buffering it.
"""

from __future__ import annotations

from typing import Dict, Optional

import httpx
import structlog
from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from mediasift.exceptions import ProxyURLError
from mediasift.observability.metrics import METRICS
from mediasift.security.validation import validate_proxy_url

logger = structlog.get_logger(__name__)

router = APIRouter()

PROXY_FAILED = "Failed to proxy video"
ACCEPT_VIDEO = "video/webm,video/ogg,video/*;q=0.9,application/ogg;q=0.7,audio/*;q=0.6,*/*;q=0.5"


def upstream_headers(request: Request, user_agent: str, referer: str) -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Referer": referer,
        "Accept": ACCEPT_VIDEO,
        "Accept-Encoding": "identity",
        "Range": request.headers.get("range") or "bytes=0-",
    }


def downstream_headers(upstream: httpx.Response) -> Dict[str, str]:
    headers = {
        "Content-Type": upstream.headers.get("content-type", "video/mp4"),
        "Accept-Ranges": "bytes",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
        "Access-Control-Allow-Headers": "Range",
    }
    for name in ("content-length", "content-range"):
        value = upstream.headers.get(name)
        if value is not None:
            headers[name.title()] = value
    return headers


@router.get("/proxy-video")
async def proxy_video(request: Request, url: Optional[str] = Query(default=None)):
    """Stream an allow-listed CDN asset back to the browser."""
    service = request.app.state.config.service
    try:
        target = validate_proxy_url(url, service.proxy_allowed_hosts)
    except ProxyURLError as e:
        METRICS["rejections"].labels(reason="proxy_url").inc()
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})

    client: httpx.AsyncClient = request.app.state.http_client
    upstream_request = client.build_request(
        "GET",
        target,
        headers=upstream_headers(request, service.proxy_user_agent, service.proxy_referer),
    )

    try:
        upstream = await client.send(upstream_request, stream=True)
    except httpx.HTTPError as e:
        METRICS["proxy_requests"].labels(status="error").inc()
        logger.error("Video proxy request failed", url=target[:120], error=str(e))
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"error": PROXY_FAILED})

    if upstream.is_error:
        await upstream.aclose()
        METRICS["proxy_requests"].labels(status=f"{upstream.status_code // 100}xx").inc()
        logger.warning("Video proxy upstream error", url=target[:120], status=upstream.status_code)
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"error": PROXY_FAILED})

    headers = downstream_headers(upstream)
    partial = "Content-Range" in headers
    METRICS["proxy_requests"].labels(status="2xx").inc()

    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=status.HTTP_206_PARTIAL_CONTENT if partial else status.HTTP_200_OK,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )
