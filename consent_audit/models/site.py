"""Pydantic models describing the audited site as seen through its host."""

from __future__ import annotations

from typing import Literal

import pydantic

from consent_audit.utils import serialization


class PageDescriptor(pydantic.BaseModel):
    """One page to visit during a live scan.

    ``id`` is opaque and only stable for the duration of one run:
    ``"home"`` and ``"login"`` for the fixed entries, the content
    item id for everything else.
    """

    model_config = serialization.CAMEL_CONFIG

    id: str | int
    url: str
    label: str

    @property
    def scan_id(self) -> str:
        return str(self.id)


class ComponentInfo(pydantic.BaseModel):
    """An active installed component (plugin, extension, module).

    ``id`` is the key used by the reference table, e.g.
    ``"google-site-kit/google-site-kit.php"``; its first path segment
    is the component slug.
    """

    id: str
    name: str = ""

    @property
    def slug(self) -> str:
        return self.id.split("/", 1)[0]

    @property
    def display_name(self) -> str:
        return self.name or self.slug


class ContentType(pydantic.BaseModel):
    name: str
    label: str
    public: bool = True


class ContentItem(pydantic.BaseModel):
    """A published (or draft) piece of site content."""

    id: int
    type: str
    title: str = ""
    url: str
    status: str = "publish"
    published: str = ""
    template: str = "default"
    content: str = ""


class ThemeDir(pydantic.BaseModel):
    name: str
    path: str
    kind: Literal["child", "parent"] = "child"


class EnqueuedScript(pydantic.BaseModel):
    handle: str
    src: str
