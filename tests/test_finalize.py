"""Tests for evidence parsing, filtering and aggregation."""

from __future__ import annotations

import asyncio

import pydantic
import pytest

from consent_audit.models import live, site
from consent_audit.pipeline import finalize


def evidence(scan_id, cookies=(), local=(), session=()):
    return live.PageEvidence(
        scan_id=scan_id,
        cookies=[live.CookieObservation(name=name, has_value=True) for name in cookies],
        local_storage_keys=list(local),
        session_storage_keys=list(session),
    )


class TestParseSubmission:
    def test_collector_payload(self):
        record = finalize.parse_submission(
            {
                "scanId": "home",
                "token": "tok",
                "cookies": [{"name": "_ga", "hasValue": True}, {"name": "empty"}],
                "localStorage": ["a"],
                "sessionStorage": ["b"],
            }
        )
        assert record.scan_id == "home"
        assert [(c.name, c.has_value) for c in record.cookies] == [("_ga", True), ("empty", False)]
        assert record.local_storage_keys == ["a"]
        assert record.session_storage_keys == ["b"]

    def test_missing_lists_default_empty(self):
        record = finalize.parse_submission({"scanId": "3"})
        assert record.cookies == []
        assert record.local_storage_keys == []

    def test_cookie_values_are_not_kept(self):
        record = finalize.parse_submission({"scanId": "home", "cookies": [{"name": "_ga", "value": "GA1.2.secret"}]})
        assert "secret" not in record.model_dump_json()

    @pytest.mark.parametrize(
        "payload",
        [{}, {"scanId": None}, {"scanId": "home", "cookies": "nope"}, {"scanId": "home", "cookies": [{"value": "x"}]}],
    )
    def test_malformed(self, payload):
        with pytest.raises(pydantic.ValidationError):
            finalize.parse_submission(payload)


class TestFilterCookies:
    def test_own_consent_cookie_dropped(self):
        names = [c.name for c in finalize.filter_cookies(evidence("home", ["cc_cookie", "cc_cookie_prefs", "_ga"]))]
        assert names == ["_ga"]

    def test_platform_cookies_only_on_login(self):
        cookies = ["wordpress_test_cookie", "wordpress_logged_in_x", "_ga"]
        assert [c.name for c in finalize.filter_cookies(evidence("home", cookies))] == ["_ga"]
        assert [c.name for c in finalize.filter_cookies(evidence("login", cookies))] == cookies

    def test_blank_names_dropped(self):
        assert finalize.filter_cookies(evidence("home", ["", "  "])) == []


class TestAggregate:
    def test_cookies_merged_across_pages(self, table):
        records = [evidence("home", ["_ga", "_ads_id"]), evidence("3", ["_ga"]), evidence("3", ["_ga"])]
        cookies, _ = finalize.aggregate_evidence(records, table)
        by_name = {c.name: c for c in cookies}
        assert list(by_name) == ["_ga", "_ads_id"]
        assert by_name["_ga"].pages == ["home", "3"]
        assert by_name["_ga"].category == "analytics"
        assert by_name["_ads_id"].service == "pluginX"
        assert by_name["_ads_id"].component_id == "pluginX"
        assert by_name["_ads_id"].source == "confirmed"

    def test_login_platform_cookie_classified(self, table):
        cookies, _ = finalize.aggregate_evidence([evidence("login", ["wordpress_test_cookie"])], table)
        assert [(c.name, c.category, c.service) for c in cookies] == [("wordpress_test_cookie", "necessary", "WordPress")]

    def test_storage_keyed_by_type(self, table):
        records = [evidence("home", local=["wc_cart_hash_1", "shared"], session=["shared", ""])]
        _, storage = finalize.aggregate_evidence(records, table)
        assert [(s.type, s.name) for s in storage] == [
            ("localStorage", "wc_cart_hash_1"),
            ("localStorage", "shared"),
            ("sessionStorage", "shared"),
        ]
        assert storage[0].service == "WooCommerce"
        assert storage[0].pages == ["home"]

    def test_empty(self, table):
        assert finalize.aggregate_evidence([], table) == ([], [])


class TestMergeContent:
    def test_union_without_duplicates(self):
        merged = finalize.merge_content(
            [
                live.ContentFinding(statistics=["google-analytics"], tracking_ids=[live.TrackingId(type="gtm", service="GTM", value="GTM-***")]),
                live.ContentFinding(
                    statistics=["google-analytics", "matomo"],
                    thirdparty=["youtube"],
                    tracking_ids=[live.TrackingId(type="gtm", service="GTM", value="GTM-***")],
                    double_stats=["Google Analytics"],
                ),
            ]
        )
        assert merged.statistics == ["google-analytics", "matomo"]
        assert merged.thirdparty == ["youtube"]
        assert len(merged.tracking_ids) == 1
        assert merged.double_stats == ["Google Analytics"]
        assert merged.error is None

    def test_partial_failure_is_not_an_error(self):
        merged = finalize.merge_content([live.ContentFinding(error="HTTP error: 500"), live.ContentFinding(social_media=["facebook"])])
        assert merged.error is None
        assert merged.social_media == ["facebook"]

    def test_total_failure_keeps_first_error(self):
        merged = finalize.merge_content([live.ContentFinding(error="HTTP error: 500"), live.ContentFinding(error="timeout")])
        assert merged.error == "HTTP error: 500"


class TestCollectContent:
    def test_login_skipped_but_counted(self):
        fetched: list[str] = []

        async def fetch(url):
            fetched.append(url)
            return live.ContentFinding(thirdparty=["vimeo"])

        pages = [
            site.PageDescriptor(id="home", url="https://example.com/", label="Homepage"),
            site.PageDescriptor(id="login", url="https://example.com/wp-login.php", label="Login page"),
            site.PageDescriptor(id=5, url="https://example.com/p5/", label="Page 5"),
        ]
        finding, scanned = asyncio.run(finalize.collect_content(pages, fetch))
        assert sorted(fetched) == ["https://example.com/", "https://example.com/p5/"]
        assert scanned == 3
        assert finding.thirdparty == ["vimeo"]

    def test_no_pages(self):
        async def fetch(url):
            raise AssertionError("not called")

        finding, scanned = asyncio.run(finalize.collect_content([], fetch))
        assert scanned == 0
        assert finding.error is None
