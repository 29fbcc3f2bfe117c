"""
Data loader for the known-service reference table.

The bundled ``known-services.json`` lives alongside this module; a
different file can be selected with ``CONSENT_AUDIT_REFERENCE_DATA``.
A missing or corrupt table degrades to an empty one (and a warning)
so that lookups stay null-safe and the audit still runs.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any

import pydantic

from consent_audit.models import reference
from consent_audit.utils import logger

log = logger.create_logger("ReferenceData")

# Resolve path to the data directory (same directory as this module)
_DATA_DIR = pathlib.Path(__file__).resolve().parent

DEFAULT_REFERENCE_FILE = _DATA_DIR / "known-services.json"

# ============================================================================
# JSON File Loading
# ============================================================================


def _load_json(path: pathlib.Path) -> Any:
    """Load and parse a JSON file.

    Raises:
        FileNotFoundError: If the JSON file does not exist.
        json.JSONDecodeError: If the file contains invalid JSON.
    """
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    with open(path, encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as exc:
            raise json.JSONDecodeError(
                f"Invalid JSON in {path.name}: {exc.msg}",
                exc.doc,
                exc.pos,
            ) from exc


def _valid_components(raw: Any) -> dict[str, reference.ComponentReference]:
    """Validate component entries one at a time, dropping the bad ones."""
    if not isinstance(raw, dict):
        if raw is not None:
            log.warn("Reference components are not an object, ignoring them")
        return {}
    components: dict[str, reference.ComponentReference] = {}
    for component_id, entry in raw.items():
        try:
            components[component_id] = reference.ComponentReference.model_validate(entry)
        except pydantic.ValidationError as exc:
            log.warn(
                "Dropping malformed reference entry",
                {"component": component_id, "errors": exc.error_count()},
            )
    return components


def load_reference(path: str | pathlib.Path | None = None) -> reference.ReferenceTable:
    """Load a reference table, falling back to an empty one on any problem.

    A malformed component entry only costs that entry; the rest of the
    table is kept.
    """
    target = pathlib.Path(path) if path else DEFAULT_REFERENCE_FILE
    try:
        raw = _load_json(target)
        if not isinstance(raw, dict):
            raise ValueError("Reference data must be a JSON object")
        sections = {key: value for key, value in raw.items() if key != "components"}
        table = reference.ReferenceTable.model_validate(
            {**sections, "components": _valid_components(raw.get("components"))}
        )
    except (OSError, ValueError, pydantic.ValidationError) as exc:
        log.warn("Reference data unavailable, using empty tables", {"path": str(target), "error": str(exc)})
        return reference.ReferenceTable()

    log.debug(
        "Reference data loaded",
        {
            "version": table.version,
            "components": len(table.components),
            "trackingDomains": len(table.tracking_domains),
            "coreCookies": len(table.core_cookies),
        },
    )
    return table


# ============================================================================
# Cached access
# ============================================================================

_reference_cache: dict[str, reference.ReferenceTable] = {}


def get_reference(path: str | pathlib.Path | None = None) -> reference.ReferenceTable:
    """Get a reference table (lazy loaded and cached per path)."""
    key = str(path or DEFAULT_REFERENCE_FILE)
    if key not in _reference_cache:
        _reference_cache[key] = load_reference(path)
    return _reference_cache[key]
