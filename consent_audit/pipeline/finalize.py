"""
Server-side evidence handling for the live scan.

Page collectors submit one record per page; the finalize step
classifies the accumulated cookie and storage names, fetches the
reachable pages' HTML for content detection and merges everything
into ``LiveEvidence``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from consent_audit.analysis import cookie_classifier
from consent_audit.models import live, reference, site
from consent_audit.utils import logger

log = logger.create_logger("Finalize")

OWN_CONSENT_COOKIE_PREFIX = "cc_cookie"
PLATFORM_INTERNAL_PREFIX = "wordpress_"
LOGIN_SCAN_ID = "login"

PageFetcher = Callable[[str], Awaitable[live.ContentFinding]]


def parse_submission(payload: dict[str, Any]) -> live.PageEvidence:
    """Build a ``PageEvidence`` record from a collector submission.

    Raises:
        pydantic.ValidationError: If the submission is malformed.
    """
    return live.PageEvidence.model_validate(
        {
            "scanId": payload.get("scanId"),
            "cookies": payload.get("cookies") or [],
            "localStorageKeys": payload.get("localStorage") or [],
            "sessionStorageKeys": payload.get("sessionStorage") or [],
        }
    )


def filter_cookies(evidence: live.PageEvidence) -> list[live.CookieObservation]:
    """Drop the banner's own cookies, and platform-internal ones except on the login page."""
    kept: list[live.CookieObservation] = []
    for cookie in evidence.cookies:
        name = cookie.name.strip()
        if not name or name.startswith(OWN_CONSENT_COOKIE_PREFIX):
            continue
        if name.startswith(PLATFORM_INTERNAL_PREFIX) and evidence.scan_id != LOGIN_SCAN_ID:
            continue
        kept.append(cookie)
    return kept


def aggregate_evidence(
    records: list[live.PageEvidence], table: reference.ReferenceTable
) -> tuple[list[live.LiveCookie], list[live.LiveStorageItem]]:
    """Merge per-page records into classified cookies and storage keys.

    Each name appears once, listing every page it was seen on in
    submission order.
    """
    cookies: dict[str, live.LiveCookie] = {}
    storage: dict[tuple[str, str], live.LiveStorageItem] = {}

    for record in records:
        for observation in filter_cookies(record):
            name = observation.name.strip()
            entry = cookies.get(name)
            if entry is None:
                match = cookie_classifier.classify_cookie(name, table)
                entry = live.LiveCookie(
                    name=name,
                    category=match.category,
                    service=match.service,
                    component_id=match.component_id,
                    duration=match.duration,
                    purpose=match.purpose,
                )
                cookies[name] = entry
            if record.scan_id not in entry.pages:
                entry.pages.append(record.scan_id)

        keyed = [("localStorage", key) for key in record.local_storage_keys]
        keyed += [("sessionStorage", key) for key in record.session_storage_keys]
        for storage_type, key in keyed:
            if not key:
                continue
            item = storage.get((storage_type, key))
            if item is None:
                match = cookie_classifier.classify_storage_key(key, table)
                item = live.LiveStorageItem(
                    name=key,
                    type=storage_type,
                    category=match.category,
                    service=match.service,
                    component_id=match.component_id,
                )
                storage[(storage_type, key)] = item
            if record.scan_id not in item.pages:
                item.pages.append(record.scan_id)

    return list(cookies.values()), list(storage.values())


def merge_content(findings: list[live.ContentFinding]) -> live.ContentFinding:
    """Union of per-page findings.

    The merged ``error`` is set only when no page could be parsed.
    """
    merged = live.ContentFinding()
    seen_ids: set[tuple[str, str]] = set()
    errors: list[str] = []
    for finding in findings:
        if finding.error:
            errors.append(finding.error)
            continue
        for target, values in (
            (merged.social_media, finding.social_media),
            (merged.thirdparty, finding.thirdparty),
            (merged.statistics, finding.statistics),
            (merged.double_stats, finding.double_stats),
        ):
            target.extend(value for value in values if value not in target)
        for tracking_id in finding.tracking_ids:
            if (tracking_id.type, tracking_id.value) not in seen_ids:
                seen_ids.add((tracking_id.type, tracking_id.value))
                merged.tracking_ids.append(tracking_id)
    if errors and len(errors) == len(findings):
        merged.error = errors[0]
    return merged


async def collect_content(pages: list[site.PageDescriptor], fetch: PageFetcher) -> tuple[live.ContentFinding, int]:
    """Fetch and classify every page except the login page.

    The login page is still counted as scanned: its cookies were
    collected by the browser, only its HTML is not worth parsing.
    """
    targets = [page for page in pages if page.scan_id != LOGIN_SCAN_ID]
    findings = await asyncio.gather(*(fetch(page.url) for page in targets))
    for page, finding in zip(targets, findings):
        if finding.error:
            log.warn("Content parse failed", {"page": page.scan_id, "error": finding.error})
    return merge_content(list(findings)), len(pages)
