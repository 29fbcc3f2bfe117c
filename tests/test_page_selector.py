"""Tests for the live-scan page list builder."""

from __future__ import annotations

import pytest

from consent_audit.analysis import page_selector
from consent_audit.models import site

POST_TYPES = [
    site.ContentType(name="post", label="Posts"),
    site.ContentType(name="page", label="Pages"),
]


class TestFixedEntries:
    """Home and login are always the first two entries."""

    def test_empty_site_has_home_login_and_search(self, make_snapshot):
        pages = page_selector.build_page_list(make_snapshot())
        assert [p.id for p in pages] == ["home", "login", "search"]
        assert pages[0].url == "https://example.com/"
        assert pages[1].url == "https://example.com/wp-login.php"
        assert pages[2].url == "https://example.com/?s=cookie"

    def test_explicit_login_url(self, make_snapshot):
        pages = page_selector.build_page_list(make_snapshot(login_url="https://example.com/signin"))
        assert pages[1].url == "https://example.com/signin"

    def test_archive_url_replaces_search(self, make_snapshot):
        pages = page_selector.build_page_list(make_snapshot(archive_url="https://example.com/blog/"))
        assert pages[2].id == "archive"
        assert pages[2].label == "Archive"

    def test_cap_of_two_keeps_home_and_login(self, make_snapshot, make_item):
        snapshot = make_snapshot(content_types=POST_TYPES, content=[make_item(i) for i in range(1, 6)])
        pages = page_selector.build_page_list(snapshot, max_pages=2)
        assert [p.id for p in pages] == ["home", "login"]

    def test_cap_below_two_rejected(self, make_snapshot):
        with pytest.raises(ValueError):
            page_selector.build_page_list(make_snapshot(), max_pages=1)


class TestCandidates:
    def test_ecommerce_pages_when_active(self, make_snapshot, make_item):
        items = [make_item(10, "page", title="Shop"), make_item(11, "page", title="Cart")]
        snapshot = make_snapshot(content=items, ecommerce_pages={"shop": 10, "cart": 11, "checkout": 0})
        labels = [p.label for p in page_selector.build_page_list(snapshot)]
        assert labels[2:4] == ["Shop: Shop", "Shop: Cart"]

    def test_ecommerce_ignored_when_inactive(self, make_snapshot, make_item):
        snapshot = make_snapshot(content=[make_item(10, "page")])
        labels = [p.label for p in page_selector.build_page_list(snapshot)]
        assert not any(label.startswith("Shop:") for label in labels)

    def test_unpublished_ecommerce_page_skipped(self, make_snapshot, make_item):
        snapshot = make_snapshot(content=[make_item(10, "page", status="draft")], ecommerce_pages={"shop": 10})
        assert all(p.id != 10 for p in page_selector.build_page_list(snapshot))

    def test_one_page_per_template(self, make_snapshot, make_item):
        items = [
            make_item(1, "page", template="landing.php", published="2026-02-01"),
            make_item(2, "page", template="landing.php", published="2026-01-01"),
            make_item(3, "page", template="wide.php"),
        ]
        pages = page_selector.build_page_list(make_snapshot(content=items))
        templates = [p for p in pages if p.label.startswith("Template")]
        assert [p.id for p in templates] == [1, 3]

    def test_template_pages_capped(self, make_snapshot, make_item):
        items = [make_item(i, "page", template=f"t{i}.php") for i in range(1, 9)]
        pages = page_selector.build_page_list(make_snapshot(content=items))
        assert len([p for p in pages if p.label.startswith("Template")]) == page_selector.MAX_TEMPLATE_PAGES

    def test_shortcode_pages_capped(self, make_snapshot, make_item):
        items = [make_item(i, content="Hello [contact-form id=1]") for i in range(1, 6)]
        pages = page_selector.build_page_list(make_snapshot(content=items))
        assert len([p for p in pages if p.label.startswith("Shortcode")]) == page_selector.MAX_SHORTCODE_PAGES

    def test_plain_brackets_are_not_shortcodes(self, make_snapshot, make_item):
        items = [make_item(1, content="See [1] and [ ] here")]
        pages = page_selector.build_page_list(make_snapshot(content=items))
        assert not any(p.label.startswith("Shortcode") for p in pages)

    def test_latest_item_per_public_type(self, make_snapshot, make_item):
        items = [
            make_item(1, "post", published="2026-01-01"),
            make_item(2, "post", published="2026-03-01"),
            make_item(3, "page", published="2026-02-01"),
        ]
        types = [*POST_TYPES, site.ContentType(name="hidden", label="Hidden", public=False)]
        pages = page_selector.build_page_list(make_snapshot(content_types=types, content=items))
        assert [p.label for p in pages[3:]] == ["Posts: Post 2", "Pages: Page 3"]

    def test_excluded_content_types(self, make_snapshot, make_item):
        types = [site.ContentType(name="attachment", label="Media")]
        items = [make_item(1, "attachment")]
        pages = page_selector.build_page_list(make_snapshot(content_types=types, content=items))
        assert [p.id for p in pages] == ["home", "login", "search"]


class TestDeduplication:
    def test_same_item_listed_once(self, make_snapshot, make_item):
        items = [make_item(1, "page", template="landing.php", content="[gallery]")]
        types = [site.ContentType(name="page", label="Pages")]
        pages = page_selector.build_page_list(make_snapshot(content_types=types, content=items))
        assert [p.id for p in pages].count(1) == 1
        assert pages[-1].label.startswith("Template")

    def test_item_at_home_url_dropped(self, make_snapshot, make_item):
        items = [make_item(1, "page", url="https://example.com")]
        types = [site.ContentType(name="page", label="Pages")]
        pages = page_selector.build_page_list(make_snapshot(content_types=types, content=items))
        assert [p.id for p in pages] == ["home", "login", "search"]

    def test_cap_drops_lowest_priority(self, make_snapshot, make_item):
        items = [make_item(i, "page", template=f"t{i}.php") for i in range(1, 4)]
        types = [site.ContentType(name="post", label="Posts")]
        items.append(make_item(99, "post"))
        pages = page_selector.build_page_list(make_snapshot(content_types=types, content=items), max_pages=5)
        assert len(pages) == 5
        assert 99 not in [p.id for p in pages]

    def test_deterministic(self, make_snapshot, make_item):
        items = [make_item(i, "post") for i in range(1, 30)]
        snapshot = make_snapshot(content_types=POST_TYPES, content=items)
        assert page_selector.build_page_list(snapshot) == page_selector.build_page_list(snapshot)
