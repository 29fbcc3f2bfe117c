"""
One audit run and its cached results.

``AuditRun`` owns the scan token, the evidence buffer filled by page
collectors and the cached static/combined results for one site.  The
cached combined result is tied to the active-component hash: when the
installed components change, the cache entry is discarded on the next
read.

Every public operation returns an ``Envelope`` so the HTTP layer can
map it straight onto a response.
"""

from __future__ import annotations

import functools
import hmac
import secrets
import time
from collections.abc import Callable
from typing import Any

import pydantic

from consent_audit import config
from consent_audit.analysis import content_classifier, export, page_selector, service_map, static_analyzer
from consent_audit.host import SiteHost
from consent_audit.models import live, reference, services, site, static
from consent_audit.models import export as export_models
from consent_audit.pipeline import finalize as finalize_mod
from consent_audit.pipeline.orchestrator import LiveScanOutcome
from consent_audit.utils import cache, errors, logger
from consent_audit.utils import url as url_mod

log = logger.create_logger("AuditRun")

STATIC_NAMESPACE = "static"
RESULTS_NAMESPACE = "results"


class AuditRun:
    """Lifecycle of audits for one site."""

    def __init__(
        self,
        host: SiteHost,
        table: reference.ReferenceTable,
        settings: config.AuditSettings | None = None,
        *,
        fetch: finalize_mod.PageFetcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._host = host
        self._table = table
        self._settings = settings or config.get_settings()
        self._fetch = fetch or functools.partial(
            content_classifier.parse_page,
            timeout=self._settings.fetch_timeout_seconds,
            user_agent=self._settings.user_agent,
        )
        self._clock = clock
        self._token: live.ScanToken | None = None
        self._evidence: list[live.PageEvidence] = []
        self._started_at: float | None = None
        self._cache_key = url_mod.extract_host(host.site_url()) or "site"

    # ------------------------------------------------------------------
    # Scan token
    # ------------------------------------------------------------------

    def issue_token(self) -> live.ScanToken:
        """Start a live scan: new token, empty evidence buffer."""
        now = self._clock()
        self._token = live.ScanToken(
            value=secrets.token_urlsafe(32),
            issued_at=now,
            expires_at=now + self._settings.token_ttl_seconds,
        )
        self._evidence = []
        self._started_at = now
        log.info("Scan token issued", {"expiresInSeconds": self._settings.token_ttl_seconds})
        return self._token

    def validate_token(self, value: Any) -> bool:
        token = self._token
        if token is None or not isinstance(value, str) or not value:
            return False
        if token.is_expired(self._clock()):
            return False
        return hmac.compare_digest(token.value.encode("utf-8"), value.encode("utf-8"))

    def invalidate_token(self) -> None:
        self._token = None

    # ------------------------------------------------------------------
    # Evidence sink
    # ------------------------------------------------------------------

    def submit_evidence(self, payload: Any) -> services.Envelope[dict[str, str]]:
        """Record one page's collector submission."""
        if not isinstance(payload, dict) or not payload.get("scanId") or not payload.get("token"):
            return services.Envelope.fail("Missing scanId or token", 400)
        if not self.validate_token(payload.get("token")):
            log.warn("Rejected evidence submission: invalid or expired token", {"scanId": str(payload.get("scanId"))})
            return services.Envelope.fail("Invalid or expired scan token", 403)
        try:
            record = finalize_mod.parse_submission(payload)
        except pydantic.ValidationError as exc:
            log.warn("Malformed evidence submission", {"error": errors.get_error_message(exc)})
            return services.Envelope.fail("Malformed evidence", 400)

        self._evidence.append(record)
        log.debug(
            "Evidence stored",
            {"page": record.scan_id, "cookies": len(record.cookies), "buffered": len(self._evidence)},
        )
        return services.Envelope.ok({"status": "ok", "page": record.scan_id})

    # ------------------------------------------------------------------
    # Static analysis
    # ------------------------------------------------------------------

    def current_hash(self) -> str:
        return static_analyzer.component_hash(self._host.active_components())

    def run_static(self, force: bool = False) -> services.Envelope[static.StaticResult]:
        """Static analysis, served from cache while the component hash is unchanged."""
        component_hash = self.current_hash()
        if not force:
            cached = cache.load(STATIC_NAMESPACE, component_hash, static.StaticResult)
            if cached is not None:
                log.info("Static result served from cache", {"componentHash": component_hash})
                return services.Envelope.ok(cached)

        result = static_analyzer.StaticAnalyzer(self._host, self._table, self._settings).run()
        cache.save(STATIC_NAMESPACE, component_hash, result, self._settings.static_ttl_seconds)
        return services.Envelope.ok(result)

    def page_list(self) -> services.Envelope[list[site.PageDescriptor]]:
        try:
            pages = page_selector.build_page_list(self._host, self._settings.max_pages)
        except ValueError as exc:
            return services.Envelope.fail(errors.get_error_message(exc), 400)
        return services.Envelope.ok(pages)

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _static_result(self) -> static.StaticResult:
        envelope = self.run_static()
        if envelope.data is None:
            raise RuntimeError(envelope.error or "Static analysis produced no result")
        return envelope.data

    def _store(self, result: services.AuditResult) -> None:
        cache.save(RESULTS_NAMESPACE, self._cache_key, result, self._settings.results_ttl_seconds)

    async def finalize(self, pages: Any, token: Any) -> services.Envelope[live.LiveEvidence]:
        """Aggregate buffered evidence and parse the reachable pages' HTML."""
        if not self.validate_token(token):
            log.warn("Rejected finalize request: invalid or expired token")
            return services.Envelope.fail("Invalid or expired scan token", 403)
        try:
            descriptors = [site.PageDescriptor.model_validate(page) for page in pages or []]
        except (pydantic.ValidationError, TypeError) as exc:
            return services.Envelope.fail(f"Malformed page list: {errors.get_error_message(exc)}", 400)

        log.start_timer("finalize")
        content, scanned = await finalize_mod.collect_content(descriptors, self._fetch)
        cookies, storage = finalize_mod.aggregate_evidence(self._evidence, self._table)
        now = self._clock()
        evidence = live.LiveEvidence(
            live_cookies=cookies,
            live_storage=storage,
            content=content,
            page_statuses={page.scan_id: "ok" for page in descriptors},
            pages_scanned=scanned,
            started_at=self._started_at,
            timestamp=now,
        )

        result_static = self._static_result()
        started = self._started_at if self._started_at is not None else now
        self._store(
            services.AuditResult(
                static=result_static,
                live=evidence,
                services=service_map.build_service_map(result_static, evidence),
                started_at=started,
                completed_at=now,
                elapsed=round(now - started, 3),
                partial=result_static.partial,
                pages_scanned=scanned,
                component_hash=result_static.component_hash,
            )
        )
        self._evidence = []
        log.end_timer("finalize", "Live evidence finalized")
        log.info("Live evidence", {"cookies": len(cookies), "storage": len(storage), "pages": scanned})
        return services.Envelope.ok(evidence)

    def apply_outcome(self, outcome: LiveScanOutcome) -> services.Envelope[services.AuditResult]:
        """Fold the orchestrator's view of the run into the stored result.

        A transport failure at finalize still stores the static
        findings, flagged with the error.
        """
        if outcome.error:
            result_static = self._static_result()
            now = self._clock()
            started = self._started_at if self._started_at is not None else now
            result = services.AuditResult(
                static=result_static,
                services=service_map.build_service_map(result_static),
                started_at=started,
                completed_at=now,
                elapsed=round(now - started, 3),
                partial=result_static.partial,
                component_hash=result_static.component_hash,
                error=outcome.error,
            )
            self._store(result)
            return services.Envelope.ok(result)

        envelope = self.results()
        if not envelope.success or envelope.data is None:
            return envelope
        result = envelope.data
        if result.live is not None:
            result.live.page_statuses = {**result.live.page_statuses, **outcome.page_statuses}
            self._store(result)
        return services.Envelope.ok(result)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def results(self) -> services.Envelope[services.AuditResult]:
        result = cache.load(RESULTS_NAMESPACE, self._cache_key, services.AuditResult)
        if result is None:
            return services.Envelope.fail("No audit results available", 404)
        if result.component_hash != self.current_hash():
            log.info("Active components changed, discarding cached results")
            cache.delete(RESULTS_NAMESPACE, self._cache_key)
            return services.Envelope.fail("Audit results are stale", 404)
        return services.Envelope.ok(result)

    def clear(self) -> services.Envelope[dict[str, bool]]:
        removed = cache.delete(RESULTS_NAMESPACE, self._cache_key)
        cache.delete(STATIC_NAMESPACE, self.current_hash())
        self.invalidate_token()
        self._evidence = []
        self._started_at = None
        log.info("Audit results cleared", {"removed": removed})
        return services.Envelope.ok({"cleared": True})

    def status(self) -> dict[str, Any]:
        token = self._token
        return {
            "tokenActive": token is not None and not token.is_expired(self._clock()),
            "evidenceCount": len(self._evidence),
            "pagesReported": list(dict.fromkeys(record.scan_id for record in self._evidence)),
            "componentHash": self.current_hash(),
        }

    def export(self) -> services.Envelope[export_models.CanonicalAuditDocument]:
        envelope = self.results()
        if not envelope.success or envelope.data is None:
            return services.Envelope.fail(envelope.error or "No audit results available", envelope.status_code)
        return services.Envelope.ok(export.export_audit(envelope.data.static, envelope.data.live))

    def consent_view(self) -> services.Envelope[services.ConsentView]:
        envelope = self.results()
        if not envelope.success or envelope.data is None:
            return services.Envelope.fail(envelope.error or "No audit results available", envelope.status_code)
        return services.Envelope.ok(service_map.build_consent_view(envelope.data.static, envelope.data.live))
