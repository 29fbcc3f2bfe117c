"""Pydantic models for the known-service reference table."""

from __future__ import annotations

from typing import Literal

import pydantic

from consent_audit.utils import serialization

Category = Literal["analytics", "marketing", "functional", "necessary", "other", "unclassified"]


class CookieDefinition(pydantic.BaseModel):
    """A cookie (or storage key) declared by a component or the platform core.

    ``pattern="prefix"`` entries match any name starting with ``name``
    once trailing ``*`` and ``.`` characters are stripped.
    """

    model_config = serialization.CAMEL_CONFIG

    name: str
    pattern: Literal["exact", "prefix"] = "exact"
    category: Category = "unclassified"
    duration: str = ""
    purpose: str = ""
    admin_only: bool = False

    @pydantic.model_validator(mode="after")
    def _wildcard_is_prefix(self) -> CookieDefinition:
        if self.name.endswith("*"):
            self.pattern = "prefix"
        return self

    @property
    def prefix(self) -> str:
        return self.name.rstrip("*.")

    def matches(self, name: str, *, allow_prefix: bool = True) -> bool:
        """Check *name* against this definition (exact, or prefix when allowed)."""
        if self.pattern == "prefix":
            return allow_prefix and bool(self.prefix) and name.startswith(self.prefix)
        return name == self.name


# Strongest consent requirement first; used when a component declares no
# category of its own.
CATEGORY_STRENGTH: tuple[Category, ...] = ("marketing", "analytics", "functional", "other", "necessary")


class ComponentReference(pydantic.BaseModel):
    """Reference entry for one installable component.

    ``name`` defaults to the component id (filled in by
    :class:`ReferenceTable`).  Without an explicit ``category`` the
    entry takes the strongest category among its cookies.
    """

    model_config = pydantic.ConfigDict(populate_by_name=True)

    name: str = ""
    tracking: bool = False
    category: Category = "unclassified"
    domains: list[str] = pydantic.Field(default_factory=list)
    cookies: list[CookieDefinition] = pydantic.Field(default_factory=list)
    local_storage: list[str] = pydantic.Field(default_factory=list, alias="localStorage")

    @pydantic.model_validator(mode="after")
    def _category_from_cookies(self) -> ComponentReference:
        if "category" not in self.model_fields_set:
            declared = {cookie.category for cookie in self.cookies}
            self.category = next((c for c in CATEGORY_STRENGTH if c in declared), "unclassified")
        return self


class OptionKeyReference(pydantic.BaseModel):
    """A stored-configuration key known to belong to a tracking service."""

    service: str = ""
    category: Category = "analytics"


class HeuristicHint(pydantic.BaseModel):
    """Cookie-name prefix hint used when nothing more specific matches."""

    service: str = ""
    category: Category = "unclassified"


class ReferenceTable(pydantic.BaseModel):
    """The whole known-service database.

    Every section defaults to empty so a missing or partial file
    degrades to "nothing known" instead of failing the run.
    """

    version: str = ""
    components: dict[str, ComponentReference] = pydantic.Field(default_factory=dict)
    tracking_domains: list[str] = pydantic.Field(default_factory=list)
    option_keys: dict[str, OptionKeyReference] = pydantic.Field(default_factory=dict)
    core_cookies: list[CookieDefinition] = pydantic.Field(default_factory=list)
    cookie_heuristics: dict[str, HeuristicHint] = pydantic.Field(default_factory=dict)

    @pydantic.model_validator(mode="after")
    def _default_component_names(self) -> ReferenceTable:
        for component_id, component in self.components.items():
            if not component.name:
                component.name = component_id
        return self
