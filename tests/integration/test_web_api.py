"""
Integration tests for the FastAPI application.

The playback proxy's upstream is an ``httpx.MockTransport``; nothing here
touches the network.
"""

from __future__ import annotations

from typing import Callable, Iterator, List
from unittest.mock import MagicMock

import httpx
import pytest
from conftest import make_cdn_url, player_payload, wrap_html
from fastapi.testclient import TestClient

from mediasift.config import Config
from mediasift.exceptions import ExtractionError
from mediasift.security.rate_limiter import TOO_MANY_REQUESTS_MESSAGE
from mediasift.security.validation import (
    MISSING_PROXY_URL,
    MISSING_SOURCE,
    NOT_HTML,
    PROXY_HOST_NOT_ALLOWED,
    SOURCE_TOO_LARGE,
    SOURCE_TOO_SHORT,
)
from mediasift.web.main import EXTRACTION_FAILED, INTERNAL_ERROR, NO_VIDEOS_FOUND, NOT_FOUND, create_app

pytestmark = pytest.mark.integration

Handler = Callable[[httpx.Request], httpx.Response]


def _default_upstream(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers={"Content-Type": "video/mp4"}, content=b"\x00\x00\x00\x18ftypmp42")


@pytest.fixture
def upstream_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def make_client(upstream_requests) -> Iterator[Callable[..., TestClient]]:
    clients: List[TestClient] = []

    def _make(config: Config | None = None, handler: Handler = _default_upstream, **kwargs) -> TestClient:
        def recording_handler(request: httpx.Request) -> httpx.Response:
            upstream_requests.append(request)
            return handler(request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        client = TestClient(create_app(config or Config(), http_client=http_client), **kwargs)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


class TestExtractVideos:
    def test_short_source_is_rejected(self, client):
        response = client.post("/extract-videos", json={"sourceCode": "<html>" + "x" * 494})
        assert response.status_code == 400
        assert response.json() == {"error": SOURCE_TOO_SHORT}

    @pytest.mark.parametrize("body", [{}, {"sourceCode": ""}, {"sourceCode": 12}, {"other": "<html>"}])
    def test_missing_source(self, client, body):
        response = client.post("/extract-videos", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": MISSING_SOURCE}

    def test_non_json_body(self, client):
        response = client.post("/extract-videos", content=b"not json", headers={"Content-Type": "text/plain"})
        assert response.status_code == 400
        assert response.json() == {"error": MISSING_SOURCE}

    def test_not_html(self, client):
        response = client.post("/extract-videos", json={"sourceCode": "plain text " * 200})
        assert response.status_code == 400
        assert response.json() == {"error": NOT_HTML}

    def test_oversized_body_is_refused_before_parsing(self, make_client):
        client = make_client(Config.model_validate({"service": {"min_source_length": 10, "max_source_length": 2000}}))
        pipeline = MagicMock()
        client.app.state.pipeline = pipeline
        response = client.post("/extract-videos", json={"sourceCode": "<html>" + "x" * 5000})
        assert response.status_code == 413
        assert response.json() == {"error": SOURCE_TOO_LARGE}
        pipeline.extract.assert_not_called()

    def test_oversized_chunked_body_is_refused(self, make_client):
        client = make_client(Config.model_validate({"service": {"min_source_length": 10, "max_source_length": 2000}}))
        chunks = iter([b'{"sourceCode": "<html>', b"x" * 3000, b'"}'])
        response = client.post("/extract-videos", content=chunks, headers={"Content-Type": "application/json"})
        assert response.status_code == 413
        assert response.json() == {"error": SOURCE_TOO_LARGE}

    def test_success(self, client):
        url = make_cdn_url("web")
        response = client.post("/extract-videos", json={"sourceCode": wrap_html(player_payload([url]))})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["count"] == 1
        assert body["totalFound"] == 1
        assert body["filteredCount"] == 1
        assert body["message"] == "Successfully extracted 1 video(s) from the page"
        video = body["videos"][0]
        assert video["url"] == url
        assert video["quality"] == "HD"
        assert video["resolution"] == "1080p+"
        assert video["type"] == "MP4"
        assert video["contentType"]["hasAudio"] is True

    def test_raw_rescan_result_message(self, client):
        url = make_cdn_url("web-rescue", format_code="m720")
        response = client.post("/extract-videos", json={"sourceCode": wrap_html(player_payload([url]))})
        body = response.json()
        assert [video["url"] for video in body["videos"]] == [url]
        assert body["message"] == "Found 1 video(s) using specific pattern matching"

    def test_no_videos_is_still_a_success(self, client):
        response = client.post("/extract-videos", json={"sourceCode": wrap_html("<p>Nothing to see</p>")})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["videos"] == []
        assert body["count"] == 0
        assert body["message"] == NO_VIDEOS_FOUND

    def test_extraction_failure(self, client):
        client.app.state.pipeline = MagicMock(extract=MagicMock(side_effect=ExtractionError()))
        response = client.post("/extract-videos", json={"sourceCode": wrap_html("<p>x</p>")})
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == EXTRACTION_FAILED
        assert "complete HTML source" in body["details"]

    def test_rate_limit(self, make_client):
        config = Config.model_validate({"service": {"rate_limit_requests": 2}})
        client = make_client(config)
        payload = {"sourceCode": wrap_html("<p>x</p>")}

        assert client.post("/extract-videos", json=payload).status_code == 200
        assert client.post("/extract-videos", json=payload).status_code == 200
        response = client.post("/extract-videos", json=payload)

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == TOO_MANY_REQUESTS_MESSAGE
        assert body["retryAfter"] >= 1
        assert response.headers["Retry-After"] == str(body["retryAfter"])

    def test_rotating_forwarded_for_does_not_escape_the_limit(self, make_client):
        client = make_client(Config.model_validate({"service": {"rate_limit_requests": 2}}))
        payload = {"sourceCode": wrap_html("<p>x</p>")}
        forwarded = [{"X-Forwarded-For": f"203.0.113.{index}"} for index in range(4)]
        statuses = [client.post("/extract-videos", json=payload, headers=headers).status_code for headers in forwarded]
        assert statuses == [200, 200, 429, 429]

    def test_rate_limit_per_forwarded_client_behind_trusted_proxy(self, make_client):
        config = Config.model_validate({"service": {"rate_limit_requests": 1, "trust_forwarded_for": True}})
        client = make_client(config)
        payload = {"sourceCode": wrap_html("<p>x</p>")}
        assert client.post("/extract-videos", json=payload, headers={"X-Forwarded-For": "203.0.113.1"}).is_success
        assert client.post("/extract-videos", json=payload, headers={"X-Forwarded-For": "203.0.113.2"}).is_success
        limited = client.post("/extract-videos", json=payload, headers={"X-Forwarded-For": "203.0.113.1"})
        assert limited.status_code == 429


class TestProxyVideo:
    def test_missing_url(self, client):
        response = client.get("/proxy-video")
        assert response.status_code == 400
        assert response.json() == {"error": MISSING_PROXY_URL}

    def test_host_not_allowed(self, client, upstream_requests):
        response = client.get("/proxy-video", params={"url": "https://example.com/clip.mp4"})
        assert response.status_code == 400
        assert response.json() == {"error": PROXY_HOST_NOT_ALLOWED}
        assert upstream_requests == []

    def test_streams_full_body(self, client, upstream_requests):
        url = make_cdn_url("proxy")
        response = client.get("/proxy-video", params={"url": url})
        assert response.status_code == 200
        assert response.content == b"\x00\x00\x00\x18ftypmp42"
        assert response.headers["content-type"] == "video/mp4"
        assert response.headers["accept-ranges"] == "bytes"

        (upstream,) = upstream_requests
        assert str(upstream.url) == url
        assert upstream.headers["range"] == "bytes=0-"
        assert upstream.headers["referer"] == "https://www.facebook.com/"

    def test_forwards_range_and_answers_partial_content(self, make_client, upstream_requests):
        def partial(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                206,
                headers={"Content-Type": "video/mp4", "Content-Range": "bytes 4-7/100"},
                content=b"abcd",
            )

        client = make_client(handler=partial)
        response = client.get("/proxy-video", params={"url": make_cdn_url("range")}, headers={"Range": "bytes=4-7"})
        assert response.status_code == 206
        assert response.content == b"abcd"
        assert response.headers["content-range"] == "bytes 4-7/100"
        assert response.headers["content-length"] == "4"
        assert upstream_requests[0].headers["range"] == "bytes=4-7"

    def test_upstream_error_status(self, make_client):
        client = make_client(handler=lambda request: httpx.Response(403, content=b"denied"))
        response = client.get("/proxy-video", params={"url": make_cdn_url("forbidden")})
        assert response.status_code == 502
        assert response.json() == {"error": "Failed to proxy video"}

    def test_upstream_connection_failure(self, make_client):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler=refuse)
        response = client.get("/proxy-video", params={"url": make_cdn_url("down")})
        assert response.status_code == 502
        assert response.json() == {"error": "Failed to proxy video"}


class TestServiceEndpoints:
    def test_index_page(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "/extract-videos" in response.text

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "OK"
        assert body["timestamp"].endswith("Z")
        assert body["uptime"] >= 0

    def test_test_endpoint(self, client):
        body = client.get("/test").json()
        assert body["message"] == "Server is working!"
        assert "POST /extract-videos" in body["endpoints"]

    def test_metrics(self, client):
        client.post("/extract-videos", json={"sourceCode": wrap_html("<p>x</p>")})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "mediasift_extractions_total" in response.text

    def test_unknown_route(self, client):
        response = client.get("/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"error": NOT_FOUND}

    def test_unhandled_error(self, make_client):
        client = make_client(raise_server_exceptions=False)
        client.app.state.source_validator = MagicMock(validate=MagicMock(side_effect=RuntimeError("boom")))
        response = client.post("/extract-videos", json={"sourceCode": "<html>"})
        assert response.status_code == 500
        assert response.json() == {"error": INTERNAL_ERROR}


class TestMiddleware:
    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"
        assert "fbcdn.net" in response.headers["content-security-policy"]

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["x-request-id"] == "req-123"
        assert float(response.headers["x-process-time"]) >= 0

    def test_request_id_is_generated(self, client):
        assert len(client.get("/health").headers["x-request-id"]) == 32

    def test_cors(self, client):
        response = client.get("/health", headers={"Origin": "https://example.org"})
        assert response.headers["access-control-allow-origin"] == "*"

    def test_large_responses_are_compressed_but_proxy_is_not(self, make_client):
        body = b"\x00" * 4096
        client = make_client(handler=lambda request: httpx.Response(200, content=body))
        index = client.get("/", headers={"Accept-Encoding": "gzip"})
        assert index.headers.get("content-encoding") == "gzip"
        proxied = client.get("/proxy-video", params={"url": make_cdn_url("gzip")}, headers={"Accept-Encoding": "gzip"})
        assert "content-encoding" not in proxied.headers
        assert proxied.content == body
