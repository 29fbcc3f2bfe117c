"""
Access to the audited site.

The audit never talks to the site's platform directly; everything it
needs (active components, content, stored options, theme templates,
enqueued scripts) comes through the ``SiteHost`` protocol.
``SiteSnapshot`` implements it from a JSON export of the site plus
the component and theme directories on disk.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Protocol

import pydantic

from consent_audit.models import site
from consent_audit.utils import logger

log = logger.create_logger("SiteHost")


class SiteHost(Protocol):
    """Read-only view of the site being audited."""

    def site_url(self) -> str: ...

    def login_url(self) -> str: ...

    def active_components(self) -> list[site.ComponentInfo]: ...

    def component_dir(self, component: site.ComponentInfo) -> pathlib.Path | None: ...

    def content_types(self) -> list[site.ContentType]: ...

    def content_items(self) -> list[site.ContentItem]: ...

    def ecommerce_pages(self) -> dict[str, int] | None: ...

    def archive_url(self) -> str | None: ...

    def get_options(self, keys: list[str]) -> dict[str, Any]: ...

    def find_options(self, fragment: str, limit: int = 50) -> list[tuple[str, Any]]: ...

    def theme_dirs(self) -> list[site.ThemeDir]: ...

    def enqueued_scripts(self) -> list[site.EnqueuedScript]: ...


class SnapshotData(pydantic.BaseModel):
    """On-disk layout of a site snapshot."""

    site_url: str
    login_url: str = ""
    components_dir: str = ""
    active_components: list[site.ComponentInfo] = pydantic.Field(default_factory=list)
    content_types: list[site.ContentType] = pydantic.Field(default_factory=list)
    content: list[site.ContentItem] = pydantic.Field(default_factory=list)
    ecommerce_pages: dict[str, int] | None = None
    archive_url: str | None = None
    options: dict[str, Any] = pydantic.Field(default_factory=dict)
    themes: list[site.ThemeDir] = pydantic.Field(default_factory=list)
    enqueued_scripts: list[site.EnqueuedScript] = pydantic.Field(default_factory=list)


class SiteSnapshot:
    """``SiteHost`` backed by a JSON snapshot file.

    Relative ``components_dir`` and theme paths are resolved against
    the snapshot file's directory.
    """

    def __init__(self, data: SnapshotData, base_dir: pathlib.Path | None = None) -> None:
        self._data = data
        self._base_dir = base_dir or pathlib.Path.cwd()

    @classmethod
    def load(cls, path: str | pathlib.Path) -> SiteSnapshot:
        snapshot_path = pathlib.Path(path)
        raw = json.loads(snapshot_path.read_text(encoding="utf-8"))
        data = SnapshotData.model_validate(raw)
        log.info(
            "Site snapshot loaded",
            {"site": data.site_url, "components": len(data.active_components), "content": len(data.content)},
        )
        return cls(data, snapshot_path.resolve().parent)

    def _resolve(self, value: str) -> pathlib.Path:
        path = pathlib.Path(value)
        return path if path.is_absolute() else self._base_dir / path

    def site_url(self) -> str:
        return self._data.site_url

    def login_url(self) -> str:
        return self._data.login_url or self._data.site_url.rstrip("/") + "/wp-login.php"

    def active_components(self) -> list[site.ComponentInfo]:
        return list(self._data.active_components)

    def component_dir(self, component: site.ComponentInfo) -> pathlib.Path | None:
        if not self._data.components_dir:
            return None
        path = self._resolve(self._data.components_dir) / component.slug
        return path if path.is_dir() else None

    def content_types(self) -> list[site.ContentType]:
        return list(self._data.content_types)

    def content_items(self) -> list[site.ContentItem]:
        return list(self._data.content)

    def ecommerce_pages(self) -> dict[str, int] | None:
        return dict(self._data.ecommerce_pages) if self._data.ecommerce_pages is not None else None

    def archive_url(self) -> str | None:
        return self._data.archive_url

    def get_options(self, keys: list[str]) -> dict[str, Any]:
        return {key: self._data.options[key] for key in keys if key in self._data.options}

    def find_options(self, fragment: str, limit: int = 50) -> list[tuple[str, Any]]:
        """Options whose key contains *fragment*, in key order (SQL ``LIKE %fragment%``)."""
        matches = [(key, value) for key, value in sorted(self._data.options.items()) if fragment in key]
        return matches[:limit]

    def theme_dirs(self) -> list[site.ThemeDir]:
        return [theme.model_copy(update={"path": str(self._resolve(theme.path))}) for theme in self._data.themes]

    def enqueued_scripts(self) -> list[site.EnqueuedScript]:
        return list(self._data.enqueued_scripts)
