"""
Cookie name classification against the reference table.

Resolution order for a bare cookie (or storage key) name:

1. Exact name in a known component's cookie list.
2. Prefix entry in a known component's cookie list.
3. Platform-core cookies, exact then prefix.
4. Heuristic name-prefix hints.
5. ``unclassified``.

Exact entries win over prefix entries across *all* components, so a
component declaring ``_ga`` outranks another declaring ``_ga*``.
"""

from __future__ import annotations

import dataclasses
from typing import Literal

from consent_audit.models import reference

MatchType = Literal["exact", "prefix", "core", "heuristic", "none"]


@dataclasses.dataclass(frozen=True)
class CookieClassification:
    """Resolved category and provenance for one name."""

    category: reference.Category
    service: str = ""
    purpose: str = ""
    duration: str = ""
    match_type: MatchType = "none"
    component_id: str | None = None


UNCLASSIFIED = CookieClassification(category="unclassified")


def _component_pass(name: str, table: reference.ReferenceTable, *, prefix: bool) -> CookieClassification | None:
    wanted = "prefix" if prefix else "exact"
    for component_id, component in table.components.items():
        for cookie in component.cookies:
            if cookie.pattern == wanted and cookie.matches(name):
                return CookieClassification(
                    category=cookie.category,
                    service=component.name,
                    purpose=cookie.purpose,
                    duration=cookie.duration,
                    match_type="prefix" if prefix else "exact",
                    component_id=component_id,
                )
    return None


def _core_pass(name: str, table: reference.ReferenceTable) -> CookieClassification | None:
    exact = [cookie for cookie in table.core_cookies if cookie.pattern == "exact"]
    prefixed = [cookie for cookie in table.core_cookies if cookie.pattern == "prefix"]
    for cookie in [*exact, *prefixed]:
        if cookie.matches(name):
            return CookieClassification(
                category=cookie.category,
                service="WordPress",
                purpose=cookie.purpose,
                duration=cookie.duration,
                match_type="core",
            )
    return None


def _heuristic_pass(name: str, table: reference.ReferenceTable) -> CookieClassification | None:
    # Longest prefix first so "_gat" is not shadowed by "_ga".
    for prefix in sorted(table.cookie_heuristics, key=len, reverse=True):
        if name.startswith(prefix):
            hint = table.cookie_heuristics[prefix]
            return CookieClassification(category=hint.category, service=hint.service, match_type="heuristic")
    return None


def classify_cookie(name: str, table: reference.ReferenceTable) -> CookieClassification:
    """Resolve *name* to a category and service."""
    if not name:
        return UNCLASSIFIED
    return (
        _component_pass(name, table, prefix=False)
        or _component_pass(name, table, prefix=True)
        or _core_pass(name, table)
        or _heuristic_pass(name, table)
        or UNCLASSIFIED
    )


def classify_storage_key(name: str, table: reference.ReferenceTable) -> CookieClassification:
    """Resolve a storage key: component ``localStorage`` declarations, then cookie rules."""
    for component_id, component in table.components.items():
        for key in component.local_storage:
            stem = key.rstrip("*")
            if name == key or (key.endswith("*") and stem and name.startswith(stem)):
                return CookieClassification(
                    category=component.category,
                    service=component.name,
                    match_type="prefix" if key.endswith("*") else "exact",
                    component_id=component_id,
                )
    return classify_cookie(name, table)
