"""
Third-party content detection in served HTML.

``parse_html`` is a pure function over the markup; ``parse_page``
fetches a page with aiohttp first and never raises: any HTTP or
network problem yields an empty finding carrying an ``error``.
"""

from __future__ import annotations

import asyncio

import aiohttp

from consent_audit.analysis import markers
from consent_audit.models import live
from consent_audit.utils import errors, logger

log = logger.create_logger("ContentClassifier")

FETCH_TIMEOUT_SECONDS = 15
USER_AGENT = "ConsentAudit-Scanner/1.0"


def _detect(html_lower: str, table: dict[str, tuple[str, ...]]) -> list[str]:
    """Slugs with at least one marker present; first hit wins per service."""
    return [slug for slug, needles in table.items() if any(needle.lower() in html_lower for needle in needles)]


def extract_tracking_ids(html: str) -> list[live.TrackingId]:
    """Find tracking identifiers and return them redacted.

    Identifiers are de-duplicated on ``(type, raw id)`` before the raw
    value is discarded, so two different containers of the same type
    yield two entries with the same redacted value.
    """
    found: list[live.TrackingId] = []
    seen: set[tuple[str, str]] = set()
    for pattern in markers.TRACKING_ID_PATTERNS:
        for match in pattern.regex.finditer(html):
            raw = match.group(pattern.group)
            if (pattern.type, raw) in seen:
                continue
            seen.add((pattern.type, raw))
            found.append(live.TrackingId(type=pattern.type, service=pattern.service, value=markers.redact(pattern.prefix)))
    return found


def detect_double_stats(html: str) -> list[str]:
    """Analytics families whose loader patterns occur more than once in total."""
    return [family for family, needles in markers.DOUBLE_STATS_FAMILIES.items() if sum(html.count(needle) for needle in needles) > 1]


def parse_html(html: str) -> live.ContentFinding:
    """Classify third-party content in *html*."""
    html_lower = html.lower()
    return live.ContentFinding(
        social_media=_detect(html_lower, markers.SOCIAL_MEDIA_MARKERS),
        thirdparty=_detect(html_lower, markers.THIRDPARTY_MARKERS),
        statistics=_detect(html_lower, markers.STATS_MARKERS),
        tracking_ids=extract_tracking_ids(html),
        double_stats=detect_double_stats(html),
    )


async def _fetch(session: aiohttp.ClientSession, url: str, timeout: float, user_agent: str) -> live.ContentFinding:
    async with session.get(
        url,
        timeout=aiohttp.ClientTimeout(total=timeout),
        ssl=False,
        headers={"User-Agent": user_agent},
    ) as response:
        if response.status < 200 or response.status >= 400:
            return live.ContentFinding(error=f"HTTP error: {response.status}")
        html = await response.text(errors="replace")
    if not html:
        return live.ContentFinding(error="Empty response body")
    return parse_html(html)


async def parse_page(
    url: str,
    http_session: aiohttp.ClientSession | None = None,
    *,
    timeout: float = FETCH_TIMEOUT_SECONDS,
    user_agent: str = USER_AGENT,
) -> live.ContentFinding:
    """Fetch *url* and classify its HTML.

    TLS verification is disabled so staging sites with self-signed
    certificates can be audited.
    """
    try:
        if http_session is not None:
            return await _fetch(http_session, url, timeout, user_agent)
        async with aiohttp.ClientSession() as session:
            return await _fetch(session, url, timeout, user_agent)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
        message = errors.get_error_message(exc)
        log.warn("Page fetch failed", {"url": url, "error": message})
        return live.ContentFinding(error=message)
