"""
Unit tests for structural URL validation.
"""

from __future__ import annotations

import pytest
from conftest import CDN_HOST, hex_token, make_cdn_url

from mediasift.config import ValidationConfig
from mediasift.extractor.validator import UrlValidator, matches_bypass_signature


@pytest.fixture
def validator() -> UrlValidator:
    return UrlValidator(ValidationConfig())


class TestUrlValidator:
    def test_accepts_signed_cdn_asset(self, validator, cdn_url):
        assert validator.rejection_reason(cdn_url) is None
        assert validator.is_valid(cdn_url)

    def test_minimum_length_boundary(self, validator):
        assert validator.is_valid(make_cdn_url("edge", length=340))
        short = make_cdn_url("edge", length=340)[:199]
        assert validator.rejection_reason(short) == "too short"

    @pytest.mark.parametrize(
        "mutate, reason",
        [
            (lambda url: url.replace("_nc_cat=108", "_nc_cat=1 08"), "non-ascii or whitespace"),
            (lambda url: url.replace("_nc_sid", "_nc_sïd"), "non-ascii or whitespace"),
            (lambda url: url.replace("https://", "ftp://"), "not an absolute http(s) URL"),
            (lambda url: url.replace("_n.mp4", "_n.mp4.m3u8"), "manifest or segment marker"),
            (lambda url: url.replace("oe=67A1B2C3", "oe=segment"), "manifest or segment marker"),
            (lambda url: url.replace("_n.mp4", "_n.webm"), "no playable extension"),
            (lambda url: url.replace(CDN_HOST, "video.example.com", 1), "unrecognized host"),
            (lambda url: url.replace("/o1/v/", "/p1/x/"), "no media path segment"),
            (lambda url: url.replace("_nc_cat=108&", "x_cat=108&"), "missing signed query parameters"),
            (lambda url: url.replace("&_nc_ohc=", "&x=").replace("&oh=", "&y="), "missing signed query parameters"),
        ],
    )
    def test_rejection_reasons(self, validator, cdn_url, mutate, reason):
        assert validator.rejection_reason(mutate(cdn_url)) == reason

    def test_filename_must_be_an_opaque_token(self, validator):
        url = make_cdn_url("token", hash_token="clip_" + hex_token("token", "short", 20))
        assert validator.rejection_reason(url) == "filename is not an opaque token"

    def test_either_signature_parameter_is_enough(self, validator, cdn_url):
        assert validator.is_valid(cdn_url.replace("&_nc_ohc=", "&x_ohc="))
        assert validator.is_valid(cdn_url.replace("&oh=", "&x_h="))

    def test_extension_match_is_case_insensitive(self, validator, cdn_url):
        assert validator.is_valid(cdn_url.replace("_n.mp4", "_n.MP4"))

    def test_malformed_url_is_rejected_not_raised(self, validator, cdn_url):
        broken = cdn_url.replace(CDN_HOST, "[" + CDN_HOST, 1)
        assert validator.rejection_reason(broken) == "malformed"

    def test_non_string_input(self, validator):
        assert validator.rejection_reason(None) == "not a string"

    def test_filter_keeps_order(self, validator, sample_urls):
        mixed = [sample_urls[0], "https://example.com/clip.mp4", sample_urls[1]]
        assert validator.filter(mixed) == sample_urls[:2]

    def test_extensions_are_normalized(self):
        config = ValidationConfig(playable_extensions=["MP4", ".Mov"])
        assert config.playable_extensions == [".mp4", ".mov"]


class TestBypassSignature:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://scontent.xx.fbcdn.net/v/short.mp4", True),
            ("http://SCONTENT-a.xx.FBCDN.net/clip.MP4?x=1", True),
            ("https://video.xx.fbcdn.net/scontent/short.mp4", False),
            ("https://scontent.evil.example/v/short.mp4", False),
            ("https://scontent.fbcdn.net.evil.example/v/short.mp4", False),
            ("https://evilfbcdn.net/v/short.mp4", False),
            ("https://fbcdn.net/v/short.mp4", False),
            ("https://scontent.xx.fbcdn.net/v/short.webm", False),
            ("ftp://scontent.xx.fbcdn.net/v/short.mp4", False),
            ("https://[scontent.xx.fbcdn.net/v/short.mp4", False),
        ],
    )
    def test_signature(self, url, expected):
        assert matches_bypass_signature(url, ["scontent"], [".mp4"], ["fbcdn.net"]) is expected

    def test_custom_host_domains(self):
        url = "https://scontent.cdn.example.org/v/short.mp4"
        assert matches_bypass_signature(url, ["scontent"], [".mp4"], ["example.org"])
        assert not matches_bypass_signature(url, ["scontent"], [".mp4"])
