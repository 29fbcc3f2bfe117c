"""Pydantic models for merged service records and run results."""

from __future__ import annotations

import re
from typing import Any, Generic, Literal, TypeVar

import pydantic

from consent_audit.models.live import LiveEvidence
from consent_audit.models.reference import Category
from consent_audit.models.static import StaticResult
from consent_audit.utils import serialization

ServiceStatus = Literal["potential", "confirmed"]

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

T = TypeVar("T")


def normalize_key(name: str) -> str:
    """Lower-case *name* and strip everything that is not a letter or digit."""
    return _NON_ALNUM_RE.sub("", name.lower())


class ServiceCookies(pydantic.BaseModel):
    potential: list[str] = pydantic.Field(default_factory=list)
    confirmed: list[str] = pydantic.Field(default_factory=list)


class ServiceRecord(pydantic.BaseModel):
    """Canonical view of one third-party service.

    ``status`` only ever moves from ``potential`` to ``confirmed``;
    use :meth:`confirm` rather than assigning it.
    """

    model_config = serialization.CAMEL_CONFIG

    name: str
    key: str
    category: Category = "unclassified"
    status: ServiceStatus = "potential"
    domains: list[str] = pydantic.Field(default_factory=list)
    cookies: ServiceCookies = pydantic.Field(default_factory=ServiceCookies)
    scripts: list[str] = pydantic.Field(default_factory=list)
    tracking_ids: list[str] = pydantic.Field(default_factory=list)
    theme_files: list[str] = pydantic.Field(default_factory=list)
    pages: list[str] = pydantic.Field(default_factory=list)

    def confirm(self) -> None:
        self.status = "confirmed"


class CoreCookieEntry(pydantic.BaseModel):
    """A platform-core (necessary) cookie, declared and/or observed."""

    model_config = serialization.CAMEL_CONFIG

    name: str
    purpose: str = ""
    duration: str = ""
    observed: bool = False
    pages: list[str] = pydantic.Field(default_factory=list)


class ConsentView(pydantic.BaseModel):
    """What a consent banner needs to be configured with."""

    model_config = serialization.CAMEL_CONFIG

    services: list[ServiceRecord] = pydantic.Field(default_factory=list)
    core_cookies: list[CoreCookieEntry] = pydantic.Field(default_factory=list)
    additional_content: list[str] = pydantic.Field(default_factory=list)


class AuditResult(pydantic.BaseModel):
    """Everything one audit run produced."""

    model_config = serialization.CAMEL_CONFIG

    static: StaticResult
    live: LiveEvidence | None = None
    services: list[ServiceRecord] = pydantic.Field(default_factory=list)
    started_at: float
    completed_at: float | None = None
    elapsed: float = 0.0
    partial: bool = False
    pages_scanned: int = 0
    component_hash: str = ""
    error: str | None = None


class Envelope(pydantic.BaseModel, Generic[T]):
    """Success/failure result returned at every network boundary."""

    model_config = serialization.CAMEL_CONFIG

    success: bool
    data: T | None = None
    error: str | None = None
    status_code: int = 200

    @classmethod
    def ok(cls, data: Any, status_code: int = 200) -> Envelope[Any]:
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: int = 500) -> Envelope[Any]:
        return cls(success=False, error=error, status_code=status_code)
