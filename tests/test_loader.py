"""Tests for consent_audit.data.loader: reference table loading and caching."""

from __future__ import annotations

import json
import pathlib
from unittest import mock

import pytest

from consent_audit.data import loader
from consent_audit.models import reference


@pytest.fixture(autouse=True)
def _fresh_cache():
    with mock.patch.dict(loader._reference_cache, clear=True):
        yield


class TestLoadJson:
    def test_bundled_file_loads(self) -> None:
        data = loader._load_json(loader.DEFAULT_REFERENCE_FILE)
        assert isinstance(data, dict)
        assert data["components"]

    def test_missing_file_raises(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(FileNotFoundError):
            loader._load_json(tmp_path / "nonexistent.json")

    def test_invalid_json_names_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{")
        with pytest.raises(json.JSONDecodeError, match="broken.json"):
            loader._load_json(path)


class TestLoadReference:
    def test_bundled_table(self) -> None:
        table = loader.load_reference()
        assert table.version
        assert "google-site-kit/google-site-kit.php" in table.components
        assert table.tracking_domains
        assert table.core_cookies
        assert table.cookie_heuristics

    def test_bundled_wildcards_are_prefix_entries(self) -> None:
        table = loader.load_reference()
        for component in table.components.values():
            for cookie in component.cookies:
                if cookie.name.endswith("*"):
                    assert cookie.pattern == "prefix"

    def test_missing_file_gives_empty_table(self, tmp_path: pathlib.Path) -> None:
        assert loader.load_reference(tmp_path / "absent.json") == reference.ReferenceTable()

    def test_corrupt_file_gives_empty_table(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("[1, 2")
        assert loader.load_reference(path).components == {}

    def test_top_level_array_gives_empty_table(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "shape.json"
        path.write_text(json.dumps([{"tracking": True}]))
        assert loader.load_reference(path) == reference.ReferenceTable()

    def test_bad_component_entry_dropped_alone(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "mixed.json"
        path.write_text(
            json.dumps(
                {
                    "components": {
                        "broken": {"tracking": True, "cookies": "not-a-list"},
                        "pluginX": {"tracking": True, "cookies": [{"name": "_ads_id", "category": "marketing"}]},
                    },
                    "tracking_domains": ["ads.example.com"],
                }
            )
        )
        table = loader.load_reference(path)
        assert list(table.components) == ["pluginX"]
        assert table.tracking_domains == ["ads.example.com"]

    def test_component_name_and_category_defaults(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bare.json"
        path.write_text(
            json.dumps(
                {
                    "components": {
                        "pluginX": {"tracking": True, "cookies": [{"name": "a", "category": "necessary"}, {"name": "b", "category": "analytics"}]},
                        "pluginY": {"name": "Plugin Y", "category": "functional", "cookies": [{"name": "c", "category": "marketing"}]},
                        "pluginZ": {},
                    }
                }
            )
        )
        components = loader.load_reference(path).components
        assert (components["pluginX"].name, components["pluginX"].category) == ("pluginX", "analytics")
        assert (components["pluginY"].name, components["pluginY"].category) == ("Plugin Y", "functional")
        assert (components["pluginZ"].name, components["pluginZ"].category) == ("pluginZ", "unclassified")

    def test_partial_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "partial.json"
        path.write_text(json.dumps({"tracking_domains": ["ads.example.com"]}))
        table = loader.load_reference(path)
        assert table.tracking_domains == ["ads.example.com"]
        assert table.components == {}


class TestGetReference:
    def test_cached(self) -> None:
        assert loader.get_reference() is loader.get_reference()

    def test_cached_per_path(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "partial.json"
        path.write_text("{}")
        assert loader.get_reference(path) is not loader.get_reference()
