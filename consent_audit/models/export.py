"""Pydantic models for the canonical audit document (camelCase on the wire)."""

from __future__ import annotations

import pydantic

from consent_audit.utils import serialization


class _ExportModel(pydantic.BaseModel):
    model_config = serialization.CAMEL_CONFIG


class SuggestedBlock(_ExportModel):
    type: str = "domain"
    value: str


class ExportCookie(_ExportModel):
    """One cookie; ``value`` is always empty and the attribute fields unknown."""

    name: str
    value: str = ""
    domain: str = ""
    path: str = "/"
    expires: str = ""
    http_only: bool | None = None
    secure: bool | None = None
    same_site: str | None = None
    source: str
    source_script: str = ""
    is_third_party: bool = False
    category: str = "unclassified"
    vendor: str | None = None
    description: str | None = None
    suggested_block: SuggestedBlock | None = None
    frame_context: str = "main-frame"
    attribution: str | None = None
    tag_manager_attribution: str | None = None
    script_attribution: str | None = None
    detection_method: str
    pages_found: list[str] = pydantic.Field(default_factory=list)
    component_source: str | None = None
    component_slug: str | None = None
    duration: str | None = None
    admin_only: bool | None = None


class ExportStorage(_ExportModel):
    type: str
    key: str
    value: str = ""
    origin: str = ""
    source_script: str = ""
    category: str = "unclassified"
    vendor: str | None = None
    suggested_block: SuggestedBlock | None = None
    pages_found: list[str] = pydantic.Field(default_factory=list)
    component_source: str | None = None
    component_slug: str | None = None


class TrackingPixel(_ExportModel):
    url: str
    domain: str
    type: str
    source_script: str | None = None
    vendor: str
    category: str
    detection_method: str = "html_parse"


class ThirdPartyScript(_ExportModel):
    url: str
    domain: str
    initiator: str
    handle: str | None = None
    detection_method: str


class TagManager(_ExportModel):
    url: str
    domain: str
    name: str
    detection_method: str = "html_parse"


class FontEntry(_ExportModel):
    url: str
    domain: str
    detection_method: str = "html_parse"


class IframeEntry(_ExportModel):
    src: str
    origin: str
    vendor: str
    category: str
    detection_method: str = "html_parse"


class TrackerEntry(_ExportModel):
    url: str = ""
    domain: str = ""
    vendor: str | None = None
    category: str = "unclassified"
    detection_method: str
    component_slug: str | None = None


class Others(_ExportModel):
    scripts: list[str] = pydantic.Field(default_factory=list)
    iframes: list[str] = pydantic.Field(default_factory=list)
    google_fonts: list[str] = pydantic.Field(default_factory=list)


class ExportStats(_ExportModel):
    total: int = 0
    cookies: int = 0
    local_storage: int = 0
    session_storage: int = 0
    tracking_pixels: int = 0
    third_party_scripts: int = 0
    tag_managers: int = 0
    fonts: int = 0
    iframes: int = 0
    trackers: int = 0


class OptionTrackingMeta(_ExportModel):
    service: str
    category: str
    source: str


class ThemeTrackingMeta(_ExportModel):
    theme: str
    file: str
    match: str
    match_type: str


class ExportMeta(_ExportModel):
    scanner_version: str
    scan_source: str = "consent_audit"
    site_url: str
    active_components: int = 0
    active_theme: str = ""
    pages_scanned: int = 0
    static_scan_time: float = 0.0
    clean_components: list[str] = pydantic.Field(default_factory=list)
    not_in_database: list[str] = pydantic.Field(default_factory=list)
    double_stats: list[str] = pydantic.Field(default_factory=list)
    options_tracking: list[OptionTrackingMeta] = pydantic.Field(default_factory=list)
    theme_tracking: list[ThemeTrackingMeta] = pydantic.Field(default_factory=list)


class CanonicalAuditDocument(_ExportModel):
    """Stable external schema shared with the remote scanner."""

    url: str
    final_url: str
    scan_duration: int = 0
    started_at: str | None = None
    completed_at: str | None = None
    stats: ExportStats = pydantic.Field(default_factory=ExportStats)
    cookies: list[ExportCookie] = pydantic.Field(default_factory=list)
    storage: list[ExportStorage] = pydantic.Field(default_factory=list)
    tracking_pixels: list[TrackingPixel] = pydantic.Field(default_factory=list)
    third_party_scripts: list[ThirdPartyScript] = pydantic.Field(default_factory=list)
    tag_managers: list[TagManager] = pydantic.Field(default_factory=list)
    fonts: list[FontEntry] = pydantic.Field(default_factory=list)
    iframes: list[IframeEntry] = pydantic.Field(default_factory=list)
    script_cookie_map: dict[str, list[str]] = pydantic.Field(default_factory=dict)
    trackers: list[TrackerEntry] = pydantic.Field(default_factory=list)
    others: Others = pydantic.Field(default_factory=Others)
    redirect_chain: list[str] = pydantic.Field(default_factory=list)
    total_requests: int = 0
    blocked_requests: int = 0
    errors: list[str] = pydantic.Field(default_factory=list)
    meta: ExportMeta
