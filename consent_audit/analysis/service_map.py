"""
Merge static findings and live evidence into service records.

Records are keyed by ``normalize_key(name)``.  The seed pass creates
one ``potential`` record per known tracking component; enrichment
passes attach scripts, stored identifiers and theme hits; the upgrade
pass confirms records backed by live cookies or by content detected
in served HTML.  A record's status never moves back to ``potential``.
"""

from __future__ import annotations

from consent_audit.analysis import markers
from consent_audit.models import live as live_models
from consent_audit.models import reference, services, static
from consent_audit.utils import logger
from consent_audit.utils import url as url_mod

log = logger.create_logger("ServiceMap")

CATEGORY_PRIORITY: dict[str, int] = {
    "marketing": 0,
    "analytics": 1,
    "other": 2,
    "functional": 3,
    "necessary": 4,
    "unclassified": 5,
}

CONSENT_EXEMPT_COOKIE_CATEGORIES = frozenset({"necessary", "functional"})


def _append_unique(items: list[str], *values: str) -> None:
    for value in values:
        if value and value not in items:
            items.append(value)


class _ServiceIndex:
    """Insertion-ordered records with lookup by name and by domain."""

    def __init__(self) -> None:
        self.records: dict[str, services.ServiceRecord] = {}

    def get(self, name: str) -> services.ServiceRecord | None:
        return self.records.get(services.normalize_key(name))

    def find_or_create(self, name: str, category: reference.Category) -> services.ServiceRecord:
        key = services.normalize_key(name)
        record = self.records.get(key)
        if record is None:
            record = services.ServiceRecord(name=name, key=key, category=category)
            self.records[key] = record
        return record

    def find_by_domain(self, host: str) -> services.ServiceRecord | None:
        """Record declaring *host* (or a parent or child of it) as one of its domains."""
        for record in self.records.values():
            for domain in record.domains:
                if url_mod.host_matches_domain(host, domain) or url_mod.host_matches_domain(domain, host):
                    return record
        return None


# ============================================================================
# Passes
# ============================================================================


def _seed(index: _ServiceIndex, result: static.StaticResult) -> None:
    for match in result.known_matches:
        record = index.find_or_create(match.name, match.category)
        _append_unique(record.domains, *match.domains)
        _append_unique(record.cookies.potential, *(cookie.name for cookie in match.cookies))


def _attach_scripts(index: _ServiceIndex, result: static.StaticResult) -> None:
    for script in result.script_matches:
        host = url_mod.extract_host(script.src) or script.domain
        record = index.find_by_domain(host)
        if record is None:
            record = index.find_or_create(host, "other")
            _append_unique(record.domains, host)
        _append_unique(record.scripts, script.src)


def _attach_options(index: _ServiceIndex, result: static.StaticResult) -> None:
    for match in result.option_matches:
        record = index.find_or_create(match.service, match.category)
        if match.pattern:
            _append_unique(record.tracking_ids, match.pattern)


def _attach_theme(index: _ServiceIndex, result: static.StaticResult) -> None:
    for match in result.theme_matches:
        theme_file = f"{match.theme}/{match.file}"
        if match.match_type == "tracking_id" and match.service:
            record = index.find_or_create(match.service, match.category)
            _append_unique(record.tracking_ids, match.match)
        else:
            record = index.find_by_domain(match.match.split("/", 1)[0])
            if record is None:
                record = index.find_or_create(match.match, "other")
                _append_unique(record.domains, match.match)
        _append_unique(record.theme_files, theme_file)


def _upgrade_from_cookies(index: _ServiceIndex, evidence: live_models.LiveEvidence) -> None:
    for cookie in evidence.live_cookies:
        if cookie.category in CONSENT_EXEMPT_COOKIE_CATEGORIES:
            continue
        record = index.find_or_create(cookie.service or cookie.name, cookie.category)
        record.confirm()
        if cookie.name in record.cookies.potential:
            record.cookies.potential.remove(cookie.name)
        _append_unique(record.cookies.confirmed, cookie.name)
        _append_unique(record.pages, *cookie.pages)


def _keys_overlap(left: str, right: str) -> bool:
    return bool(left) and bool(right) and (left in right or right in left)


def _upgrade_from_content(index: _ServiceIndex, evidence: live_models.LiveEvidence) -> list[str]:
    """Confirm records matching detected content; return vendors with no record."""
    unmatched: list[str] = []
    for slug in evidence.content.detected_slugs():
        vendor = markers.vendor_name(slug)
        keys = {services.normalize_key(slug), services.normalize_key(vendor)}
        matched = False
        for record in index.records.values():
            if any(_keys_overlap(key, record.key) for key in keys):
                record.confirm()
                matched = True
        if not matched:
            _append_unique(unmatched, vendor)
    return unmatched


def _sort_key(record: services.ServiceRecord) -> tuple[int, int, str]:
    return (
        0 if record.status == "confirmed" else 1,
        CATEGORY_PRIORITY.get(record.category, len(CATEGORY_PRIORITY)),
        record.name.casefold(),
    )


def _merge(
    result: static.StaticResult, evidence: live_models.LiveEvidence | None
) -> tuple[list[services.ServiceRecord], list[str]]:
    index = _ServiceIndex()
    _seed(index, result)
    _attach_scripts(index, result)
    _attach_options(index, result)
    _attach_theme(index, result)

    additional: list[str] = []
    if evidence is not None:
        _upgrade_from_cookies(index, evidence)
        additional = _upgrade_from_content(index, evidence)

    records = sorted(index.records.values(), key=_sort_key)
    log.debug(
        "Service map built",
        {
            "services": len(records),
            "confirmed": sum(1 for record in records if record.status == "confirmed"),
            "additionalContent": len(additional),
        },
    )
    return records, additional


# ============================================================================
# Public API
# ============================================================================


def build_service_map(
    result: static.StaticResult, evidence: live_models.LiveEvidence | None = None
) -> list[services.ServiceRecord]:
    """Merge findings into ordered service records.

    Confirmed records come first; within a status, records are ordered
    marketing, analytics, other, functional, necessary, unclassified,
    then by name.
    """
    records, _ = _merge(result, evidence)
    return records


def _core_cookie_entries(
    result: static.StaticResult, evidence: live_models.LiveEvidence | None
) -> list[services.CoreCookieEntry]:
    entries = [
        (definition, services.CoreCookieEntry(name=definition.name, purpose=definition.purpose, duration=definition.duration))
        for definition in result.core_cookies
    ]
    if evidence is None:
        return [entry for _, entry in entries]

    observed: list[services.CoreCookieEntry] = []
    for cookie in evidence.live_cookies:
        if cookie.category != "necessary":
            continue
        entry = next((entry for definition, entry in entries if definition.matches(cookie.name)), None)
        if entry is None:
            entry = next((item for item in observed if item.name == cookie.name), None)
        if entry is None:
            entry = services.CoreCookieEntry(name=cookie.name, purpose=cookie.purpose, duration=cookie.duration)
            observed.append(entry)
        entry.observed = True
        _append_unique(entry.pages, *cookie.pages)
    return [entry for _, entry in entries] + observed


def build_consent_view(
    result: static.StaticResult, evidence: live_models.LiveEvidence | None = None
) -> services.ConsentView:
    """Services that need consent, the platform-core cookies, and unmatched content."""
    records, additional = _merge(result, evidence)
    return services.ConsentView(
        services=[record for record in records if record.category != "necessary"],
        core_cookies=_core_cookie_entries(result, evidence),
        additional_content=additional,
    )
