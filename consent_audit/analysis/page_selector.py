"""
Page list builder for the live scan.

Picks a capped, prioritised set of representative pages so that
cookies set by templates, shortcodes, e-commerce flows and each
public content type have a chance of being observed.

Priority (highest first), which is also the output order:

1. Home page and login page (always present).
2. E-commerce special pages, when an e-commerce extension is active.
3. One archive or search results page.
4. One page per distinct non-default template (up to 5).
5. Pages whose content embeds shortcode markup (up to 3).
6. The most recently published item of each public content type.

When there are more candidates than the cap the list is cut from the
end, so content-type representatives go first.
"""

from __future__ import annotations

import re

from consent_audit.host import SiteHost
from consent_audit.models import site
from consent_audit.utils import logger
from consent_audit.utils import url as url_mod

log = logger.create_logger("PageSelector")

MAX_PAGES = 20
MAX_TEMPLATE_PAGES = 5
MAX_SHORTCODE_PAGES = 3

EXCLUDED_CONTENT_TYPES = frozenset({
    "attachment",
    "revision",
    "nav_menu_item",
    "custom_css",
    "customize_changeset",
    "wp_template",
    "wp_template_part",
    "wp_navigation",
    "wp_block",
    "wp_global_styles",
})

# Role -> label suffix, in the order they are visited.
ECOMMERCE_PAGES: dict[str, str] = {
    "shop": "Shop",
    "cart": "Cart",
    "checkout": "Checkout",
    "myaccount": "My account",
}

_SHORTCODE_RE = re.compile(r"\[[a-z][a-z0-9_-]*(?:\s[^\]]*)?/?\]", re.IGNORECASE)


def _published(items: list[site.ContentItem]) -> list[site.ContentItem]:
    """Published items, newest first (ties broken by id for determinism)."""
    live = [item for item in items if item.status == "publish"]
    return sorted(live, key=lambda item: (item.published, item.id), reverse=True)


def _descriptor(item: site.ContentItem, label: str) -> site.PageDescriptor:
    return site.PageDescriptor(id=item.id, url=item.url, label=label)


def _ecommerce_candidates(host: SiteHost, by_id: dict[int, site.ContentItem]) -> list[site.PageDescriptor]:
    roles = host.ecommerce_pages()
    if roles is None:
        return []

    pages: list[site.PageDescriptor] = []
    for role, suffix in ECOMMERCE_PAGES.items():
        page_id = roles.get(role, 0)
        item = by_id.get(page_id) if page_id > 0 else None
        if item is None or item.status != "publish":
            continue
        pages.append(_descriptor(item, f"Shop: {suffix}"))
    return pages


def _archive_candidate(host: SiteHost) -> site.PageDescriptor:
    archive = host.archive_url()
    if archive:
        return site.PageDescriptor(id="archive", url=archive, label="Archive")
    search_url = url_mod.with_query_params(host.site_url(), {"s": "cookie"})
    return site.PageDescriptor(id="search", url=search_url, label="Search results")


def _template_candidates(published: list[site.ContentItem]) -> list[site.PageDescriptor]:
    pages: list[site.PageDescriptor] = []
    seen: set[str] = set()
    for item in published:
        template = item.template or "default"
        if template == "default" or template in seen:
            continue
        seen.add(template)
        pages.append(_descriptor(item, f"Template {template}: {item.title}"))
        if len(pages) >= MAX_TEMPLATE_PAGES:
            break
    return pages


def _shortcode_candidates(published: list[site.ContentItem]) -> list[site.PageDescriptor]:
    pages = [_descriptor(item, f"Shortcode: {item.title}") for item in published if _SHORTCODE_RE.search(item.content)]
    return pages[:MAX_SHORTCODE_PAGES]


def _content_type_candidates(host: SiteHost, published: list[site.ContentItem]) -> list[site.PageDescriptor]:
    pages: list[site.PageDescriptor] = []
    for content_type in host.content_types():
        if not content_type.public or content_type.name in EXCLUDED_CONTENT_TYPES:
            continue
        latest = next((item for item in published if item.type == content_type.name), None)
        if latest is not None:
            pages.append(_descriptor(latest, f"{content_type.label}: {latest.title}"))
    return pages


def build_page_list(host: SiteHost, max_pages: int = MAX_PAGES) -> list[site.PageDescriptor]:
    """Build the prioritised page list for one run.

    Deterministic for a given site state.  Candidates are de-duplicated
    on id and URL (the higher-priority entry wins) and the result
    never exceeds *max_pages*.

    Raises:
        ValueError: If *max_pages* leaves no room for the home and
            login entries.
    """
    if max_pages < 2:
        raise ValueError(f"max_pages must be at least 2, got {max_pages}")

    items = host.content_items()
    by_id = {item.id: item for item in items}
    published = _published(items)

    candidates = [
        site.PageDescriptor(id="home", url=host.site_url(), label="Homepage"),
        site.PageDescriptor(id="login", url=host.login_url(), label="Login page"),
        *_ecommerce_candidates(host, by_id),
        _archive_candidate(host),
        *_template_candidates(published),
        *_shortcode_candidates(published),
        *_content_type_candidates(host, published),
    ]

    pages: list[site.PageDescriptor] = []
    seen_ids: set[str] = set()
    seen_urls: set[str] = set()
    for page in candidates:
        url_key = page.url.rstrip("/")
        if page.scan_id in seen_ids or url_key in seen_urls:
            continue
        seen_ids.add(page.scan_id)
        seen_urls.add(url_key)
        pages.append(page)

    if len(pages) > max_pages:
        log.info("Page list over cap, dropping lowest priority", {"candidates": len(pages), "cap": max_pages})
        pages = pages[:max_pages]

    log.debug("Page list built", {"pages": len(pages)})
    return pages
