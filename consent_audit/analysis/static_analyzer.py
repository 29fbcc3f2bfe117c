"""
Static (no network) analysis of the audited site.

Inspects the active components, stored configuration and theme
templates for evidence of tracking, within a wall-clock budget and a
per-component file budget.  Running out of either budget marks the
result ``partial``; nothing already found is thrown away.

Passes, in order:

1. Per active component: reference-table lookup (short-circuits),
   no-scan allow-list, source-text scan, stored options whose key
   contains the component slug.
2. Known option keys from the reference table.
3. Theme templates of the active theme and its parent.
4. Enqueued scripts served from tracking domains.
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import time
from collections.abc import Callable, Iterator
from typing import Any

from consent_audit import config
from consent_audit.analysis import cookie_classifier, markers, source_scan
from consent_audit.host import SiteHost
from consent_audit.models import reference, site, static
from consent_audit.utils import logger
from consent_audit.utils import url as url_mod

log = logger.create_logger("StaticAnalyzer")

# Consent tooling and the auditor itself; never source-scanned.
NO_SCAN_SLUGS = frozenset({
    "consent-audit",
    "cookie-law-info",
    "cookieyes",
    "iubenda-cookie-law-solution",
    "complianz-gdpr",
    "complianz-gdpr-premium",
    "real-cookie-banner",
    "cookie-notice",
    "gdpr-cookie-compliance",
    "wp-consent-api",
    "uk-cookie-consent",
    "cookiebot",
})

OPTIONS_PER_SLUG = 50


def component_hash(components: list[site.ComponentInfo]) -> str:
    """Content hash of the active component list (order-independent)."""
    ids = sorted(component.id for component in components)
    return hashlib.md5(json.dumps(ids, separators=(",", ":")).encode("utf-8")).hexdigest()


def iter_strings(value: Any) -> Iterator[str]:
    """Yield every string inside *value*, descending through dicts and lists."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_strings(item)


def find_config_ids(value: Any) -> list[markers.ConfigIdPrefix]:
    """Identifier prefixes present anywhere inside an option value."""
    found: list[markers.ConfigIdPrefix] = []
    for text in iter_strings(value):
        for entry in markers.CONFIG_ID_PREFIXES:
            if entry not in found and entry.regex.search(text):
                found.append(entry)
    return found


class StaticAnalyzer:
    """One static analysis run over a ``SiteHost``.

    ``clock`` is injectable so budget behaviour can be exercised
    without real waiting.
    """

    def __init__(
        self,
        host: SiteHost,
        table: reference.ReferenceTable,
        settings: config.AuditSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._host = host
        self._table = table
        self._settings = settings or config.get_settings()
        self._clock = clock
        self._deadline = 0.0
        self._timed_out = False

    def _out_of_time(self) -> bool:
        if not self._timed_out and self._clock() > self._deadline:
            self._timed_out = True
            log.warn("Static scan time budget exhausted", {"budgetSeconds": self._settings.max_scan_seconds})
        return self._timed_out

    # ------------------------------------------------------------------
    # Component passes
    # ------------------------------------------------------------------

    def _scan_source(self, component: site.ComponentInfo, result: static.StaticResult) -> None:
        root = self._host.component_dir(component)
        if root is None:
            return
        scan = source_scan.scan_component(
            component,
            root,
            self._table.tracking_domains,
            max_files=self._settings.max_files_per_component,
            max_file_size=self._settings.max_file_size,
            deadline=self._deadline,
            clock=self._clock,
        )
        result.source_domain_matches.extend(scan.domain_matches)
        for match in scan.cookie_matches:
            match.category = cookie_classifier.classify_cookie(match.match, self._table).category
            result.source_cookie_matches.append(match)
        if scan.file_cap_hit:
            result.partial = True
        if scan.timed_out:
            self._timed_out = True
            log.warn("Static scan time budget exhausted", {"component": component.id})

    def _scan_component_options(self, component: site.ComponentInfo, result: static.StaticResult) -> None:
        for key, value in self._host.find_options(component.slug, OPTIONS_PER_SLUG):
            for entry in find_config_ids(value):
                result.option_matches.append(
                    static.OptionTableMatch(
                        category=entry.category,
                        option_key=key,
                        service=entry.service,
                        source="tracking_id_pattern",
                        pattern=markers.redact(entry.prefix),
                        component_slug=component.slug,
                    )
                )

    def _scan_components(self, components: list[site.ComponentInfo], result: static.StaticResult) -> None:
        for component in components:
            known = self._table.components.get(component.id)
            if known is not None:
                summary = static.ComponentSummary(component_id=component.id, name=known.name)
                if known.tracking:
                    result.known_matches.append(
                        static.KnownComponentMatch(
                            component_id=component.id,
                            name=known.name,
                            category=known.category,
                            domains=list(known.domains),
                            cookies=list(known.cookies),
                            local_storage=list(known.local_storage),
                        )
                    )
                else:
                    result.clean_components.append(summary)
                continue

            if component.slug in NO_SCAN_SLUGS:
                log.debug("Skipping allow-listed component", {"component": component.id})
                continue

            result.unknown_components.append(
                static.ComponentSummary(component_id=component.id, name=component.display_name)
            )
            if self._out_of_time():
                continue
            self._scan_source(component, result)
            if self._out_of_time():
                continue
            self._scan_component_options(component, result)

    # ------------------------------------------------------------------
    # Site-wide passes
    # ------------------------------------------------------------------

    def _scan_known_option_keys(self, result: static.StaticResult) -> None:
        if not self._table.option_keys:
            return
        stored = self._host.get_options(list(self._table.option_keys))
        for key, value in stored.items():
            if not value:
                continue
            known = self._table.option_keys[key]
            result.option_matches.append(
                static.OptionTableMatch(
                    category=known.category,
                    option_key=key,
                    service=known.service or key,
                    source="known_option_key",
                )
            )

    def _scan_theme_file(self, theme: site.ThemeDir, path: pathlib.Path, result: static.StaticResult) -> None:
        try:
            if path.stat().st_size > self._settings.max_file_size:
                return
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            log.debug("Unreadable theme file", {"file": str(path), "error": str(exc)})
            return

        seen_domains: set[str] = set()
        for line_no, line in enumerate(text.splitlines(), start=1):
            line_lower = line.lower()
            for domain in self._table.tracking_domains:
                if domain and domain not in seen_domains and domain.lower() in line_lower:
                    seen_domains.add(domain)
                    result.theme_matches.append(
                        static.ThemeFileMatch(
                            theme=theme.name,
                            theme_type=theme.kind,
                            file=path.name,
                            match=domain,
                            match_type="tracking_domain",
                            line=line_no,
                        )
                    )
            for entry in markers.CONFIG_ID_PREFIXES:
                if entry.regex.search(line):
                    result.theme_matches.append(
                        static.ThemeFileMatch(
                            category=entry.category,
                            theme=theme.name,
                            theme_type=theme.kind,
                            file=path.name,
                            match=markers.redact(entry.prefix),
                            match_type="tracking_id",
                            line=line_no,
                            service=entry.service,
                        )
                    )

    def _scan_themes(self, themes: list[site.ThemeDir], result: static.StaticResult) -> None:
        for theme in themes:
            for filename in self._settings.theme_files:
                if self._out_of_time():
                    return
                path = pathlib.Path(theme.path) / filename
                if path.is_file():
                    self._scan_theme_file(theme, path, result)

    def _scan_scripts(self, result: static.StaticResult) -> None:
        for script in self._host.enqueued_scripts():
            script_host = url_mod.extract_host(script.src)
            for domain in self._table.tracking_domains:
                if "/" in domain:
                    hit = domain.lower() in script.src.lower()
                else:
                    hit = url_mod.host_matches_domain(script_host, domain)
                if hit:
                    result.script_matches.append(static.ScriptMatch(handle=script.handle, src=script.src, domain=domain))
                    break

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self) -> static.StaticResult:
        """Run every pass and return the collected findings."""
        started = self._clock()
        self._deadline = started + self._settings.max_scan_seconds
        self._timed_out = False
        log.start_timer("static-scan")

        components = self._host.active_components()
        themes = self._host.theme_dirs()
        result = static.StaticResult(
            site_url=self._host.site_url(),
            core_cookies=list(self._table.core_cookies),
            active_component_count=len(components),
            theme_name=themes[0].name if themes else "",
            component_hash=component_hash(components),
        )

        self._scan_components(components, result)
        if not self._out_of_time():
            self._scan_known_option_keys(result)
        if not self._out_of_time():
            self._scan_themes(themes, result)
        if not self._out_of_time():
            self._scan_scripts(result)

        result.partial = result.partial or self._timed_out
        result.scan_time = round(self._clock() - started, 3)
        log.end_timer("static-scan", "Static scan complete")
        log.info(
            "Static findings",
            {
                "findings": len(result.findings()),
                "known": len(result.known_matches),
                "unknown": len(result.unknown_components),
                "sourceDomains": len(result.source_domain_matches),
                "sourceCookies": len(result.source_cookie_matches),
                "options": len(result.option_matches),
                "theme": len(result.theme_matches),
                "scripts": len(result.script_matches),
                "partial": result.partial,
            },
        )
        return result
