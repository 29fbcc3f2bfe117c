"""Pydantic models for live-scan evidence.

Cookie values are never part of any model here: the page collector
reports a cookie's name and whether it had a value, nothing more.
"""

from __future__ import annotations

import time
from typing import Literal

import pydantic

from consent_audit.models.reference import Category
from consent_audit.utils import serialization

PageStatus = Literal["ok", "timeout"]


class ScanToken(pydantic.BaseModel):
    """Credential authorising page collectors to submit evidence for one run."""

    value: str
    issued_at: float
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class CookieObservation(pydantic.BaseModel):
    model_config = serialization.CAMEL_CONFIG

    name: str
    has_value: bool = False


class PageEvidence(pydantic.BaseModel):
    """Cookie and storage key names observed on one page."""

    model_config = serialization.CAMEL_CONFIG

    scan_id: str
    cookies: list[CookieObservation] = pydantic.Field(default_factory=list)
    local_storage_keys: list[str] = pydantic.Field(default_factory=list)
    session_storage_keys: list[str] = pydantic.Field(default_factory=list)
    timestamp: float = pydantic.Field(default_factory=time.time)


class TrackingId(pydantic.BaseModel):
    """A tracking identifier found in page HTML, already redacted."""

    type: str
    service: str
    value: str


class ContentFinding(pydantic.BaseModel):
    """Services and identifiers detected in served HTML."""

    model_config = serialization.CAMEL_CONFIG

    social_media: list[str] = pydantic.Field(default_factory=list)
    thirdparty: list[str] = pydantic.Field(default_factory=list)
    statistics: list[str] = pydantic.Field(default_factory=list)
    tracking_ids: list[TrackingId] = pydantic.Field(default_factory=list)
    double_stats: list[str] = pydantic.Field(default_factory=list)
    error: str | None = None

    def detected_slugs(self) -> list[str]:
        """All detected service slugs, de-duplicated, in table order."""
        return list(dict.fromkeys([*self.social_media, *self.thirdparty, *self.statistics]))


class LiveCookie(pydantic.BaseModel):
    """One cookie name aggregated across every page it was seen on."""

    model_config = serialization.CAMEL_CONFIG

    name: str
    type: Literal["cookie"] = "cookie"
    pages: list[str] = pydantic.Field(default_factory=list)
    category: Category = "unclassified"
    service: str = ""
    component_id: str | None = None
    duration: str = ""
    purpose: str = ""
    source: Literal["confirmed"] = "confirmed"


class LiveStorageItem(pydantic.BaseModel):
    model_config = serialization.CAMEL_CONFIG

    name: str
    type: Literal["localStorage", "sessionStorage"]
    pages: list[str] = pydantic.Field(default_factory=list)
    category: Category = "unclassified"
    service: str = ""
    component_id: str | None = None
    source: Literal["confirmed"] = "confirmed"


class LiveEvidence(pydantic.BaseModel):
    """Output of the finalize step."""

    model_config = serialization.CAMEL_CONFIG

    live_cookies: list[LiveCookie] = pydantic.Field(default_factory=list)
    live_storage: list[LiveStorageItem] = pydantic.Field(default_factory=list)
    content: ContentFinding = pydantic.Field(default_factory=ContentFinding)
    page_statuses: dict[str, PageStatus] = pydantic.Field(default_factory=dict)
    pages_scanned: int = 0
    started_at: float | None = None
    timestamp: float = pydantic.Field(default_factory=time.time)
