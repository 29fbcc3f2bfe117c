"""Tests for per-component source-text scanning."""

from __future__ import annotations

import itertools

import pytest

from consent_audit.analysis import source_scan
from consent_audit.models import site

COMPONENT = site.ComponentInfo(id="pluginY/pluginY.php", name="Plugin Y")

MAIN_PHP = """<?php
// setcookie('commented_out', 1);
setcookie('tracker_id', $value, time() + 3600);
setcookie('tracker_id', $other);
$url = 'https://ADS.example.com/pixel.js';
echo '<img src="https://ads.example.com/p.gif">';
"""


@pytest.fixture()
def plugin_root(components_dir):
    root = components_dir / "pluginY"
    root.mkdir()
    (root / "pluginY.php").write_text(MAIN_PHP)
    return root


def scan(root, **overrides):
    options = {"max_files": 50, "max_file_size": 100_000, "deadline": float("inf")}
    options.update(overrides)
    return source_scan.scan_component(COMPONENT, root, ["ads.example.com"], **options)


class TestFindCookieCalls:
    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ("setcookie('a', 1);", [("setcookie", "a")]),
            ('setrawcookie("b", $v);', [("setrawcookie", "b")]),
            ("$_COOKIE['c'] = 'x';", [("$_COOKIE", "c")]),
            ("header('Set-Cookie: d=1; Path=/');", [("header", "d")]),
            ("document.cookie = 'e=1; path=/';", [("document.cookie", "e")]),
            ("$response->set_cookie('f', 1);", [("set_cookie", "f")]),
        ],
    )
    def test_call_styles(self, line, expected):
        assert source_scan.find_cookie_calls(line) == expected

    def test_reads_are_not_writes(self):
        assert source_scan.find_cookie_calls("if ($_COOKIE['c'] == 'x') {}") == []
        assert source_scan.find_cookie_calls("if (document.cookie == '') {}") == []

    @pytest.mark.parametrize("line", ["// setcookie('a', 1);", "# setcookie('a', 1);", " * setcookie('a')", "/* setcookie('a') */"])
    def test_comment_lines_ignored(self, line):
        assert source_scan.find_cookie_calls(line) == []


class TestIterSourceFiles:
    def test_sorted_and_filtered(self, tmp_path):
        for rel in ["b.php", "a.js", "readme.txt", "sub/c.php", "vendor/v.php", "node_modules/n.js"]:
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("x")
        names = [p.relative_to(tmp_path).as_posix() for p in source_scan.iter_source_files(tmp_path)]
        assert names == ["a.js", "b.php", "sub/c.php"]


class TestScanComponent:
    def test_domain_and_cookie_hits(self, plugin_root):
        result = scan(plugin_root)
        assert [(m.match, m.file, m.line) for m in result.domain_matches] == [("ads.example.com", "pluginY/pluginY.php", 5)]
        assert [(m.match, m.method, m.line) for m in result.cookie_matches] == [("tracker_id", "setcookie", 3)]
        assert result.cookie_matches[0].component_name == "Plugin Y"
        assert result.files_scanned == 1
        assert not result.file_cap_hit
        assert not result.timed_out

    def test_domain_reported_once_per_component(self, plugin_root):
        (plugin_root / "second.php").write_text("<?php // ads.example.com\n")
        result = scan(plugin_root)
        assert len(result.domain_matches) == 1

    def test_file_cap(self, plugin_root):
        (plugin_root / "a.php").write_text("<?php\n")
        (plugin_root / "b.php").write_text("<?php\n")
        result = scan(plugin_root, max_files=2)
        assert result.file_cap_hit
        assert result.files_scanned == 2

    def test_exact_file_count_is_not_cap_hit(self, plugin_root):
        result = scan(plugin_root, max_files=1)
        assert not result.file_cap_hit

    def test_oversize_file_skipped(self, plugin_root):
        result = scan(plugin_root, max_file_size=10)
        assert result.files_scanned == 0
        assert result.domain_matches == []

    def test_deadline_stops_scan(self, plugin_root):
        ticks = itertools.count(100)
        result = scan(plugin_root, deadline=50.0, clock=lambda: next(ticks))
        assert result.timed_out
        assert result.files_scanned == 0

    def test_missing_directory_yields_nothing(self, tmp_path):
        result = scan(tmp_path / "absent")
        assert result.files_scanned == 0
        assert result.domain_matches == []
