"""Tests for consent_audit.utils.url: host extraction and matching."""

from __future__ import annotations

import pytest

from consent_audit.utils.url import extract_host, host_matches_domain, with_query_params

# ── extract_host ────────────────────────────────────────────────


class TestExtractHost:
    def test_simple_url(self) -> None:
        assert extract_host("https://example.com/path") == "example.com"

    def test_port_and_case(self) -> None:
        assert extract_host("https://WWW.Example.com:8443/") == "www.example.com"

    def test_relative_path(self) -> None:
        assert extract_host("/wp-includes/js/jquery.js") == ""

    def test_empty(self) -> None:
        assert extract_host("") == ""

    def test_invalid_ipv6_literal(self) -> None:
        assert extract_host("http://[::1") == ""


# ── host_matches_domain ─────────────────────────────────────────


class TestHostMatchesDomain:
    @pytest.mark.parametrize(
        ("host", "domain"),
        [
            ("ads.example.com", "ads.example.com"),
            ("cdn.ads.example.com", "ads.example.com"),
            ("CDN.Ads.Example.com", "ads.example.com"),
            ("ads.example.com.", ".ads.example.com"),
        ],
    )
    def test_matches(self, host: str, domain: str) -> None:
        assert host_matches_domain(host, domain)

    @pytest.mark.parametrize(
        ("host", "domain"),
        [
            ("badads.example.com", "ads.example.com"),
            ("example.com", "ads.example.com"),
            ("", "example.com"),
            ("example.com", ""),
        ],
    )
    def test_no_match(self, host: str, domain: str) -> None:
        assert not host_matches_domain(host, domain)


# ── with_query_params ───────────────────────────────────────────


class TestWithQueryParams:
    def test_adds_query(self) -> None:
        assert with_query_params("https://example.com/a/", {"s": "cookie"}) == "https://example.com/a/?s=cookie"

    def test_keeps_existing_query(self) -> None:
        result = with_query_params("https://example.com/?p=7&empty=", {"t": "x y"})
        assert result == "https://example.com/?p=7&empty=&t=x+y"

    def test_keeps_fragment(self) -> None:
        assert with_query_params("https://example.com/#top", {"a": "1"}) == "https://example.com/?a=1#top"
