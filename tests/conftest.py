"""
Shared fixtures and document builders for the MediaSift test suite.

URLs produced by ``make_cdn_url`` satisfy every structural check of the
default validator: recognized host, media path, a 64-character hex hash as
the filename and the signed query parameters. Hex tokens can never spell an
exclusion or preview marker.
"""

from __future__ import annotations

import hashlib
from typing import Iterable, List

import pytest

from mediasift.config import Config, LazyConfig

CDN_HOST = "scontent.fsgn5-1.fna.fbcdn.net"


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: tests that drive the HTTP application end to end")


def hex_token(seed: str, label: str, length: int) -> str:
    """Deterministic lowercase hex string of ``length`` characters."""
    digest = ""
    counter = 0
    while len(digest) < length:
        digest += hashlib.sha256(f"{seed}:{label}:{counter}".encode()).hexdigest()
        counter += 1
    return digest[:length]


def make_cdn_url(
    seed: str,
    format_code: str = "m412",
    length: int = 380,
    hash_token: str | None = None,
    host: str = CDN_HOST,
) -> str:
    """
    Build a signed CDN asset URL.

    The URL is padded with a ``_nc_gid`` parameter to exactly ``length``
    characters when the unpadded form is shorter.
    """
    hash_token = hash_token or hex_token(seed, "hash", 64)
    path = f"/o1/v/t2/f2/{format_code}/{hash_token}_n.mp4"
    query = "&".join(
        [
            "_nc_cat=108",
            "_nc_sid=8bf8fe",
            f"efg={hex_token(seed, 'efg', 48)}",
            f"_nc_ht={host}",
            f"_nc_ohc={hex_token(seed, 'ohc', 22)}",
            f"oh=00_{hex_token(seed, 'oh', 40)}",
            "oe=67A1B2C3",
        ]
    )
    url = f"https://{host}{path}?{query}"
    padding = length - len(url) - len("&_nc_gid=")
    if padding > 0:
        url += f"&_nc_gid={hex_token(seed, 'gid', padding)}"
    return url


def wrap_html(body: str, title: str = "Shared video") -> str:
    """Embed ``body`` in a page long enough to pass the caller-layer checks."""
    filler = "\n".join(
        f'<div class="feed-item" data-index="{index}"><span>Lorem ipsum dolor sit amet {index}</span></div>'
        for index in range(12)
    )
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        f"<head><meta charset=\"utf-8\"><title>{title}</title></head>\n"
        "<body>\n"
        f"{filler}\n"
        f"{body}\n"
        "</body>\n"
        "</html>\n"
    )


def player_payload(urls: Iterable[str], field: str = "hd_src") -> str:
    """Inline JSON payload in the style of a player bootstrap script."""
    entries = ",".join(f'{{"{field}":"{url}"}}' for url in urls)
    return f'<script type="application/json">{{"items":[{entries}]}}</script>'


@pytest.fixture
def fresh_settings():
    """Drop the cached global settings before and after the test."""
    LazyConfig.reset()
    yield
    LazyConfig.reset()


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def cdn_url() -> str:
    return make_cdn_url("primary")


@pytest.fixture
def sample_urls() -> List[str]:
    return [make_cdn_url(f"asset-{index}") for index in range(3)]
