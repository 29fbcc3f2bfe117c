"""Tests for the audit run lifecycle: token, evidence sink, finalize, results."""

from __future__ import annotations

import asyncio
from unittest import mock

import pytest

from consent_audit.analysis import content_classifier, static_analyzer
from consent_audit.models import live, services
from consent_audit.pipeline import audit_run
from consent_audit.pipeline.orchestrator import LiveScanOutcome

PAGE_HTML = '<iframe src="https://www.youtube.com/embed/x"></iframe><script src="https://ads.example.com/a.js"></script>'

PAGES = [
    {"id": "home", "url": "https://example.com/", "label": "Homepage"},
    {"id": "login", "url": "https://example.com/wp-login.php", "label": "Login page"},
]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def fetched():
    return []


@pytest.fixture()
def make_run(make_snapshot, table, settings, fetched):
    async def fetch(url):
        fetched.append(url)
        return content_classifier.parse_html(PAGE_HTML)

    def _make(components=({"id": "pluginX", "name": "Plugin X"},), clock=None):
        snapshot = make_snapshot(active_components=list(components))
        return audit_run.AuditRun(snapshot, table, settings, fetch=fetch, clock=clock or FakeClock())

    return _make


@pytest.fixture()
def run(make_run):
    return make_run()


def submit(run, scan_id="home", token=None, **fields):
    payload = {"scanId": scan_id, "token": token if token is not None else run.issue_token().value}
    payload.update(fields)
    return run.submit_evidence(payload)


def finalize_run(run, cookies=("_ads_id", "wordpress_test_cookie")):
    token = run.issue_token().value
    run.submit_evidence({"scanId": "home", "token": token, "cookies": [{"name": n, "hasValue": True} for n in cookies]})
    run.submit_evidence({"scanId": "login", "token": token, "cookies": [{"name": "wordpress_test_cookie"}]})
    return asyncio.run(run.finalize(PAGES, token))


class TestToken:
    def test_issue_and_validate(self, run):
        token = run.issue_token()
        assert run.validate_token(token.value)
        assert not run.validate_token("wrong")
        assert not run.validate_token(None)
        assert token.expires_at - token.issued_at == 3600

    def test_reissue_replaces_token_and_buffer(self, run):
        first = run.issue_token().value
        run.submit_evidence({"scanId": "home", "token": first})
        second = run.issue_token().value
        assert not run.validate_token(first)
        assert run.validate_token(second)
        assert run.status()["evidenceCount"] == 0

    def test_expired(self, make_run):
        clock = FakeClock()
        run = make_run(clock=clock)
        token = run.issue_token().value
        clock.now += 3601
        assert not run.validate_token(token)
        assert run.status()["tokenActive"] is False

    def test_no_token_issued(self, run):
        assert not run.validate_token("anything")


class TestEvidenceSink:
    def test_accepted(self, run):
        envelope = submit(run, cookies=[{"name": "_ga", "hasValue": True}])
        assert envelope.success
        assert envelope.data == {"status": "ok", "page": "home"}
        status = run.status()
        assert status["evidenceCount"] == 1
        assert status["pagesReported"] == ["home"]
        assert status["tokenActive"] is True

    @pytest.mark.parametrize("payload", [None, [], "x", {"token": "t"}, {"scanId": "home"}, {"scanId": "", "token": "t"}])
    def test_missing_fields(self, run, payload):
        run.issue_token()
        envelope = run.submit_evidence(payload)
        assert envelope.status_code == 400
        assert envelope.error == "Missing scanId or token"

    def test_bad_token_rejected_and_not_stored(self, run):
        run.issue_token()
        envelope = submit(run, token="forged")
        assert envelope.status_code == 403
        assert envelope.error == "Invalid or expired scan token"
        assert run.status()["evidenceCount"] == 0

    def test_malformed_body(self, run):
        envelope = submit(run, cookies="not-a-list")
        assert envelope.status_code == 400
        assert envelope.error == "Malformed evidence"


class TestStatic:
    def test_cached_by_component_hash(self, run):
        first = run.run_static()
        with mock.patch.object(static_analyzer.StaticAnalyzer, "run") as analyzer_run:
            second = run.run_static()
        analyzer_run.assert_not_called()
        assert second.data == first.data

    def test_force_bypasses_cache(self, run):
        run.run_static()
        with mock.patch.object(static_analyzer.StaticAnalyzer, "run", return_value=run.run_static().data) as analyzer_run:
            run.run_static(force=True)
        analyzer_run.assert_called_once()

    def test_page_list(self, run):
        envelope = run.page_list()
        assert [p.id for p in envelope.data][:2] == ["home", "login"]

    def test_page_list_bad_cap(self, make_snapshot, table, settings):
        bad = settings.model_copy(update={"max_pages": 1})
        envelope = audit_run.AuditRun(make_snapshot(), table, bad).page_list()
        assert envelope.status_code == 400


class TestFinalize:
    def test_builds_evidence(self, run, fetched):
        envelope = finalize_run(run)
        assert envelope.success
        evidence = envelope.data
        assert [c.name for c in evidence.live_cookies] == ["_ads_id", "wordpress_test_cookie"]
        assert evidence.live_cookies[1].pages == ["login"]
        assert evidence.pages_scanned == 2
        assert evidence.content.thirdparty == ["youtube"]
        assert fetched == ["https://example.com/"]
        assert evidence.page_statuses == {"home": "ok", "login": "ok"}

    def test_stores_result_and_clears_buffer(self, run):
        finalize_run(run)
        assert run.status()["evidenceCount"] == 0
        result = run.results().data
        assert result.live is not None
        (record,) = result.services
        assert record.name == "pluginX"
        assert record.status == "confirmed"
        assert result.component_hash == run.current_hash()

    def test_bad_token(self, run):
        run.issue_token()
        envelope = asyncio.run(run.finalize(PAGES, "forged"))
        assert envelope.status_code == 403

    @pytest.mark.parametrize("pages", [[{"url": "https://example.com/"}], 5])
    def test_malformed_pages(self, run, pages):
        token = run.issue_token().value
        envelope = asyncio.run(run.finalize(pages, token))
        assert envelope.status_code == 400


class TestResults:
    def test_none_yet(self, run):
        envelope = run.results()
        assert envelope.status_code == 404
        assert envelope.error == "No audit results available"

    def test_stale_after_component_change(self, run, make_run):
        finalize_run(run)
        changed = make_run(components=[{"id": "pluginX"}, {"id": "new-plugin/new.php"}])
        envelope = changed.results()
        assert envelope.status_code == 404
        assert envelope.error == "Audit results are stale"
        assert run.results().error == "No audit results available"

    def test_clear(self, run):
        finalize_run(run)
        assert run.clear().data == {"cleared": True}
        assert run.results().status_code == 404
        assert run.status()["tokenActive"] is False

    def test_export_and_consent_view(self, run):
        finalize_run(run)
        document = run.export().data
        assert document.url == "https://example.com/"
        assert "_ads_id" in [c.name for c in document.cookies]
        view = run.consent_view().data
        assert [s.name for s in view.services] == ["pluginX"]
        assert view.additional_content == ["YouTube / Google"]

    def test_export_without_results(self, run):
        assert run.export().status_code == 404
        assert run.consent_view().status_code == 404


class TestApplyOutcome:
    def test_error_stores_static_only_result(self, run):
        run.issue_token()
        envelope = run.apply_outcome(LiveScanOutcome(error="HTTP error: 502"))
        result = envelope.data
        assert result.error == "HTTP error: 502"
        assert result.live is None
        assert run.results().data.error == "HTTP error: 502"

    def test_page_statuses_merged(self, run):
        finalize_run(run)
        outcome = LiveScanOutcome(page_statuses={"home": "ok", "login": "ok", "9": "timeout"}, evidence=live.LiveEvidence())
        result = run.apply_outcome(outcome).data
        assert result.live.page_statuses["9"] == "timeout"
        assert run.results().data.live.page_statuses["9"] == "timeout"

    def test_no_stored_result(self, run):
        envelope = run.apply_outcome(LiveScanOutcome())
        assert envelope.status_code == 404

    def test_static_failure_raises(self, run):
        with mock.patch.object(run, "run_static", return_value=services.Envelope.fail("static scan failed")):
            with pytest.raises(RuntimeError, match="static scan failed"):
                run.apply_outcome(LiveScanOutcome(error="HTTP error: 502"))
