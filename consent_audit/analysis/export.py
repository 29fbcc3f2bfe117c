"""
Projection of an audit into the canonical export document.

Pure: everything comes from the static result and the live evidence
passed in, with the marker tables supplying vendor names and domains
for services that were only seen in page HTML.  Network-level fields
(redirect chain, request counts) have no source here and stay empty.
"""

from __future__ import annotations

import datetime

import consent_audit
from consent_audit.analysis import markers
from consent_audit.models import export, live, static
from consent_audit.utils import url as url_mod

GTM_URL = "https://www.googletagmanager.com/gtm.js"
GTM_DOMAIN = "www.googletagmanager.com"

FIRST_PARTY_VENDORS = frozenset({"", "WordPress"})

_FONT_SERVICES: dict[str, str] = {
    "google-fonts": "fonts.googleapis.com",
    "adobe-fonts": "use.typekit.net",
}


def _iso(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None
    return datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc).isoformat()


def _category_for_slug(slug: str, content: live.ContentFinding) -> str:
    if slug in content.statistics:
        return "analytics"
    if slug in content.social_media:
        return "marketing"
    if slug in content.thirdparty:
        return "functional"
    return "unclassified"


def _suggested_block(domains: list[str]) -> export.SuggestedBlock | None:
    return export.SuggestedBlock(value=domains[0]) if domains else None


class _Projector:
    """Holds the two inputs and the lookups shared by the builders."""

    def __init__(self, result: static.StaticResult, evidence: live.LiveEvidence | None) -> None:
        self.static = result
        self.live = evidence or live.LiveEvidence(timestamp=0.0)
        self.content = self.live.content
        self.site_host = url_mod.extract_host(result.site_url)
        self.detected = self.content.detected_slugs()
        self.known_by_id = {match.component_id: match for match in result.known_matches}

    def _block_for_component(self, component_id: str | None) -> export.SuggestedBlock | None:
        known = self.known_by_id.get(component_id or "")
        return _suggested_block(known.domains) if known else None

    # ------------------------------------------------------------------

    def cookies(self) -> list[export.ExportCookie]:
        cookies: list[export.ExportCookie] = []
        seen: set[str] = set()

        for cookie in self.live.live_cookies:
            if not cookie.name or cookie.name in seen:
                continue
            seen.add(cookie.name)
            cookies.append(
                export.ExportCookie(
                    name=cookie.name,
                    source="javascript",
                    is_third_party=cookie.service not in FIRST_PARTY_VENDORS,
                    category=cookie.category,
                    vendor=cookie.service or None,
                    description=cookie.purpose or None,
                    suggested_block=self._block_for_component(cookie.component_id),
                    detection_method="live_scan",
                    pages_found=list(cookie.pages),
                    component_source=cookie.service or None,
                    component_slug=cookie.component_id,
                    duration=cookie.duration or None,
                )
            )

        for match in self.static.known_matches:
            for definition in match.cookies:
                if not definition.name or definition.name in seen:
                    continue
                seen.add(definition.name)
                cookies.append(
                    export.ExportCookie(
                        name=definition.name,
                        source="known_database",
                        is_third_party=match.name not in FIRST_PARTY_VENDORS,
                        category=definition.category if definition.category != "unclassified" else match.category,
                        vendor=match.name,
                        description=definition.purpose or None,
                        suggested_block=_suggested_block(match.domains),
                        detection_method="known_database",
                        component_source=match.name,
                        component_slug=match.component_id,
                        duration=definition.duration or None,
                    )
                )

        for definition in self.static.core_cookies:
            if not definition.name or definition.name in seen:
                continue
            seen.add(definition.name)
            cookies.append(
                export.ExportCookie(
                    name=definition.name,
                    domain=self.site_host,
                    source="platform_core",
                    category=definition.category,
                    vendor="WordPress",
                    description=definition.purpose or None,
                    detection_method="platform_core",
                    component_source="WordPress",
                    duration=definition.duration or None,
                    admin_only=definition.admin_only,
                )
            )
        return cookies

    def storage(self) -> list[export.ExportStorage]:
        return [
            export.ExportStorage(
                type=item.type,
                key=item.name,
                origin=self.site_host,
                category=item.category,
                vendor=item.service or None,
                suggested_block=self._block_for_component(item.component_id),
                pages_found=list(item.pages),
                component_source=item.service or None,
                component_slug=item.component_id,
            )
            for item in self.live.live_storage
        ]

    def tracking_pixels(self) -> list[export.TrackingPixel]:
        return [
            export.TrackingPixel(
                url=info.domain,
                domain=info.domain,
                type=info.type,
                vendor=markers.vendor_name(slug),
                category=info.category,
            )
            for slug, info in markers.PIXEL_SERVICES.items()
            if slug in self.detected
        ]

    def third_party_scripts(self) -> list[export.ThirdPartyScript]:
        scripts: list[export.ThirdPartyScript] = []
        seen_domains: set[str] = set()
        for script in self.static.script_matches:
            domain = url_mod.extract_host(script.src) or script.domain
            scripts.append(
                export.ThirdPartyScript(
                    url=script.src,
                    domain=domain,
                    initiator=self.static.site_url,
                    handle=script.handle or None,
                    detection_method="enqueued_script",
                )
            )
            seen_domains.add(domain)

        for slug in [*self.content.thirdparty, *self.content.social_media, *self.content.statistics]:
            domain = markers.SERVICE_DOMAINS.get(slug, "")
            if not domain or domain in seen_domains:
                continue
            seen_domains.add(domain)
            scripts.append(
                export.ThirdPartyScript(
                    url=f"https://{domain}",
                    domain=domain,
                    initiator=self.static.site_url,
                    detection_method="html_parse",
                )
            )
        return scripts

    def tag_managers(self) -> list[export.TagManager]:
        has_gtm = any(tracking_id.type == "gtm" for tracking_id in self.content.tracking_ids)
        if has_gtm or "google-tag-manager" in self.content.statistics:
            return [export.TagManager(url=GTM_URL, domain=GTM_DOMAIN, name="Google Tag Manager")]
        return []

    def fonts(self) -> list[export.FontEntry]:
        return [
            export.FontEntry(url=f"https://{domain}", domain=domain)
            for slug, domain in _FONT_SERVICES.items()
            if slug in self.detected
        ]

    def iframes(self) -> list[export.IframeEntry]:
        iframes: list[export.IframeEntry] = []
        for slug in markers.IFRAME_SERVICES:
            if slug not in self.detected:
                continue
            domain = markers.SERVICE_DOMAINS.get(slug, f"{slug}.com")
            iframes.append(
                export.IframeEntry(
                    src=f"https://{domain}",
                    origin=domain,
                    vendor=markers.vendor_name(slug),
                    category=_category_for_slug(slug, self.content),
                )
            )
        return iframes

    def script_cookie_map(self) -> dict[str, list[str]]:
        mapping: dict[str, list[str]] = {}
        for match in self.static.known_matches:
            names = [cookie.name for cookie in match.cookies if cookie.name]
            if not names:
                continue
            for domain in match.domains:
                bucket = mapping.setdefault(domain, [])
                bucket.extend(name for name in names if name not in bucket)
        return mapping

    def trackers(self) -> list[export.TrackerEntry]:
        trackers: list[export.TrackerEntry] = []
        seen: set[str] = set()

        def claim(key: str) -> bool:
            key = key.lower()
            if not key or key in seen:
                return False
            seen.add(key)
            return True

        for match in self.static.known_matches:
            if claim(match.name):
                domain = match.domains[0] if match.domains else ""
                trackers.append(
                    export.TrackerEntry(
                        url=f"https://{domain}" if domain else "",
                        domain=domain,
                        vendor=match.name,
                        category=match.category,
                        detection_method="known_database",
                        component_slug=match.component_id,
                    )
                )

        for script in self.static.script_matches:
            domain = url_mod.extract_host(script.src) or script.domain
            if claim(domain):
                trackers.append(export.TrackerEntry(url=script.src, domain=domain, detection_method="enqueued_script"))

        for slug in [*self.content.statistics, *self.content.social_media, *self.content.thirdparty]:
            if claim(slug):
                domain = markers.SERVICE_DOMAINS.get(slug, "")
                trackers.append(
                    export.TrackerEntry(
                        url=f"https://{domain}" if domain else "",
                        domain=domain,
                        vendor=markers.vendor_name(slug),
                        category=_category_for_slug(slug, self.content),
                        detection_method="html_parse",
                    )
                )

        for option in self.static.option_matches:
            if claim(option.service):
                trackers.append(
                    export.TrackerEntry(
                        vendor=option.service,
                        category=option.category,
                        detection_method="options_table",
                        component_slug=option.component_slug,
                    )
                )

        for theme_match in self.static.theme_matches:
            if claim(theme_match.match):
                trackers.append(export.TrackerEntry(domain=theme_match.match, detection_method="theme_scan"))
        return trackers

    def meta(self) -> export.ExportMeta:
        return export.ExportMeta(
            scanner_version=consent_audit.__version__,
            site_url=self.static.site_url,
            active_components=self.static.active_component_count,
            active_theme=self.static.theme_name,
            pages_scanned=self.live.pages_scanned,
            static_scan_time=self.static.scan_time,
            clean_components=[component.name for component in self.static.clean_components],
            not_in_database=[component.name for component in self.static.unknown_components],
            double_stats=list(self.content.double_stats),
            options_tracking=[
                export.OptionTrackingMeta(service=option.service, category=option.category, source=option.source)
                for option in self.static.option_matches
            ],
            theme_tracking=[
                export.ThemeTrackingMeta(
                    theme=theme_match.theme,
                    file=theme_match.file,
                    match=theme_match.match,
                    match_type=theme_match.match_type,
                )
                for theme_match in self.static.theme_matches
            ],
        )

    def scan_duration_ms(self) -> int:
        if self.live.started_at is not None and self.live.timestamp:
            return max(0, int((self.live.timestamp - self.live.started_at) * 1000))
        return int(self.static.scan_time * 1000)


def export_audit(result: static.StaticResult, evidence: live.LiveEvidence | None = None) -> export.CanonicalAuditDocument:
    """Build the canonical document for one audit."""
    projector = _Projector(result, evidence)
    cookies = projector.cookies()
    storage = projector.storage()
    pixels = projector.tracking_pixels()
    scripts = projector.third_party_scripts()
    managers = projector.tag_managers()
    fonts = projector.fonts()
    iframes = projector.iframes()
    trackers = projector.trackers()

    stats = export.ExportStats(
        total=len(cookies) + len(storage) + len(trackers),
        cookies=len(cookies),
        local_storage=sum(1 for item in storage if item.type == "localStorage"),
        session_storage=sum(1 for item in storage if item.type == "sessionStorage"),
        tracking_pixels=len(pixels),
        third_party_scripts=len(scripts),
        tag_managers=len(managers),
        fonts=len(fonts),
        iframes=len(iframes),
        trackers=len(trackers),
    )

    has_live = evidence is not None
    return export.CanonicalAuditDocument(
        url=result.site_url,
        final_url=result.site_url,
        scan_duration=projector.scan_duration_ms(),
        started_at=_iso(projector.live.started_at) if has_live else None,
        completed_at=_iso(projector.live.timestamp) if has_live else None,
        stats=stats,
        cookies=cookies,
        storage=storage,
        tracking_pixels=pixels,
        third_party_scripts=scripts,
        tag_managers=managers,
        fonts=fonts,
        iframes=iframes,
        script_cookie_map=projector.script_cookie_map(),
        trackers=trackers,
        errors=[projector.content.error] if projector.content.error else [],
        meta=projector.meta(),
    )
