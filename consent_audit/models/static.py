"""Pydantic models for static (no network) analysis findings.

Every finding carries a ``kind`` discriminator and a ``provenance``
tag naming the detection method that produced it.
"""

from __future__ import annotations

from typing import Annotated, Literal

import pydantic

from consent_audit.models.reference import Category, CookieDefinition
from consent_audit.utils import serialization

Provenance = Literal["known_database", "source_scan", "options_table", "theme_scan"]


class KnownComponentMatch(pydantic.BaseModel):
    """An active component found in the reference table."""

    model_config = serialization.CAMEL_CONFIG

    kind: Literal["known_component"] = "known_component"
    provenance: Literal["known_database"] = "known_database"
    component_id: str
    name: str
    category: Category
    domains: list[str] = pydantic.Field(default_factory=list)
    cookies: list[CookieDefinition] = pydantic.Field(default_factory=list)
    local_storage: list[str] = pydantic.Field(default_factory=list)


class SourcePatternMatch(pydantic.BaseModel):
    """A hit in a component's own source files.

    ``pattern_type="cookie_call"`` records the cookie name in
    ``match`` and the call style in ``method``;
    ``pattern_type="tracking_domain"`` records the domain.
    """

    model_config = serialization.CAMEL_CONFIG

    kind: Literal["source_pattern"] = "source_pattern"
    provenance: Literal["source_scan"] = "source_scan"
    category: Category = "unclassified"
    component_id: str
    component_name: str
    pattern_type: Literal["cookie_call", "tracking_domain"]
    match: str
    method: str | None = None
    file: str
    line: int


class OptionTableMatch(pydantic.BaseModel):
    """Tracking evidence in stored configuration.

    ``pattern`` holds the redacted identifier (``"GTM-***"``) for
    identifier hits and is ``None`` for known option keys.
    """

    model_config = serialization.CAMEL_CONFIG

    kind: Literal["option_table"] = "option_table"
    provenance: Literal["options_table"] = "options_table"
    category: Category = "analytics"
    option_key: str
    service: str
    source: Literal["known_option_key", "tracking_id_pattern"]
    pattern: str | None = None
    component_slug: str | None = None


class ThemeFileMatch(pydantic.BaseModel):
    """A tracking domain or hard-coded identifier in a theme template."""

    model_config = serialization.CAMEL_CONFIG

    kind: Literal["theme_file"] = "theme_file"
    provenance: Literal["theme_scan"] = "theme_scan"
    category: Category = "unclassified"
    theme: str
    theme_type: Literal["child", "parent"]
    file: str
    match: str
    match_type: Literal["tracking_domain", "tracking_id"]
    line: int | None = None
    service: str | None = None


StaticFinding = Annotated[
    KnownComponentMatch | SourcePatternMatch | OptionTableMatch | ThemeFileMatch,
    pydantic.Field(discriminator="kind"),
]


class ScriptMatch(pydantic.BaseModel):
    """An enqueued script served from a tracking domain."""

    model_config = serialization.CAMEL_CONFIG

    handle: str
    src: str
    domain: str


class ComponentSummary(pydantic.BaseModel):
    model_config = serialization.CAMEL_CONFIG

    component_id: str
    name: str


class StaticResult(pydantic.BaseModel):
    """Output of one static analysis run."""

    model_config = serialization.CAMEL_CONFIG

    site_url: str
    known_matches: list[KnownComponentMatch] = pydantic.Field(default_factory=list)
    clean_components: list[ComponentSummary] = pydantic.Field(default_factory=list)
    unknown_components: list[ComponentSummary] = pydantic.Field(default_factory=list)
    source_cookie_matches: list[SourcePatternMatch] = pydantic.Field(default_factory=list)
    source_domain_matches: list[SourcePatternMatch] = pydantic.Field(default_factory=list)
    option_matches: list[OptionTableMatch] = pydantic.Field(default_factory=list)
    theme_matches: list[ThemeFileMatch] = pydantic.Field(default_factory=list)
    script_matches: list[ScriptMatch] = pydantic.Field(default_factory=list)
    core_cookies: list[CookieDefinition] = pydantic.Field(default_factory=list)
    active_component_count: int = 0
    theme_name: str = ""
    scan_time: float = 0.0
    partial: bool = False
    component_hash: str = ""

    def findings(self) -> list[StaticFinding]:
        """Every finding in detection order."""
        return [
            *self.known_matches,
            *self.source_domain_matches,
            *self.source_cookie_matches,
            *self.option_matches,
            *self.theme_matches,
        ]
