"""Shared fixtures for the test suite."""

from __future__ import annotations

import pathlib
from collections.abc import Callable, Iterator
from typing import Any
from unittest import mock

import pytest

from consent_audit import config
from consent_audit.host import SiteSnapshot, SnapshotData
from consent_audit.models import reference, site
from consent_audit.utils import cache

# ── Reference Table ─────────────────────────────────────────────


REFERENCE_DATA: dict[str, Any] = {
    "version": "test",
    "components": {
        "pluginX": {
            "name": "pluginX",
            "tracking": True,
            "category": "marketing",
            "domains": ["ads.example.com"],
            "cookies": [{"name": "_ads_id", "category": "marketing"}],
        },
        "google-site-kit/google-site-kit.php": {
            "name": "Site Kit by Google",
            "tracking": True,
            "category": "analytics",
            "domains": ["www.googletagmanager.com", "www.google-analytics.com"],
            "cookies": [
                {"name": "_ga", "category": "analytics", "duration": "2 years", "purpose": "Distinguishes visitors."},
                {"name": "_ga_*", "category": "analytics", "duration": "2 years"},
            ],
        },
        "woocommerce/woocommerce.php": {
            "name": "WooCommerce",
            "tracking": False,
            "category": "necessary",
            "cookies": [{"name": "woocommerce_cart_hash", "category": "necessary"}],
            "localStorage": ["wc_cart_hash_*"],
        },
    },
    "tracking_domains": ["ads.example.com", "google-analytics.com", "googletagmanager.com", "connect.facebook.net"],
    "option_keys": {
        "googlesitekit_tagmanager_settings": {"service": "Google Tag Manager", "category": "analytics"},
    },
    "core_cookies": [
        {"name": "wordpress_test_cookie", "category": "necessary", "purpose": "Checks cookie support."},
        {"name": "wordpress_logged_in_*", "pattern": "prefix", "category": "necessary", "admin_only": True},
        {"name": "comment_author_*", "pattern": "prefix", "category": "functional"},
    ],
    "cookie_heuristics": {
        "_ga": {"service": "Google Analytics", "category": "analytics"},
        "_gat": {"service": "Google Analytics Throttle", "category": "analytics"},
        "_fbp": {"service": "Meta Pixel", "category": "marketing"},
        "PHPSESSID": {"service": "PHP", "category": "necessary"},
    },
}


@pytest.fixture()
def table() -> reference.ReferenceTable:
    """A small reference table covering every lookup section."""
    return reference.ReferenceTable.model_validate(REFERENCE_DATA)


# ── Settings & Cache ────────────────────────────────────────────


@pytest.fixture()
def settings() -> config.AuditSettings:
    return config.AuditSettings(
        max_pages=20,
        concurrency=3,
        page_timeout_seconds=1,
        retry_timeout_seconds=1,
        stagger_ms=0,
        public_base_url="http://testserver",
    )


@pytest.fixture(autouse=True)
def cache_root(tmp_path: pathlib.Path) -> Iterator[pathlib.Path]:
    """Point the result cache at a per-test directory."""
    root = tmp_path / "cache"
    with mock.patch.object(cache, "_CACHE_ROOT", root):
        yield root


# ── Site Snapshots ──────────────────────────────────────────────


def _content_item(item_id: int, item_type: str = "post", **overrides: Any) -> site.ContentItem:
    values: dict[str, Any] = {
        "id": item_id,
        "type": item_type,
        "title": f"{item_type.title()} {item_id}",
        "url": f"https://example.com/{item_type}-{item_id}/",
        "published": f"2026-01-{item_id % 28 + 1:02d}",
    }
    values.update(overrides)
    return site.ContentItem(**values)


@pytest.fixture()
def make_snapshot(tmp_path: pathlib.Path) -> Callable[..., SiteSnapshot]:
    """Build a ``SiteSnapshot`` rooted in the test's temp directory."""

    def _make(**fields: Any) -> SiteSnapshot:
        fields.setdefault("site_url", "https://example.com/")
        return SiteSnapshot(SnapshotData(**fields), tmp_path)

    return _make


@pytest.fixture()
def components_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "components"
    path.mkdir()
    return path


@pytest.fixture()
def make_item() -> Callable[..., site.ContentItem]:
    return _content_item
