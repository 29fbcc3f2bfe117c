"""Shared serialization helpers for camelCase conversion.

``snake_to_camel`` is the alias generator behind ``CAMEL_CONFIG``,
the model config shared by every model that crosses the HTTP
boundary (evidence submissions, finalize responses, the export
document and the SSE payloads).
"""

from __future__ import annotations

from typing import Any

import pydantic


def snake_to_camel(name: str) -> str:
    """Convert a snake_case string to camelCase.

    Args:
        name: A snake_case identifier such as
            ``"session_storage_keys"``.

    Returns:
        The camelCase equivalent, e.g. ``"sessionStorageKeys"``.
    """
    parts = name.split("_")
    return parts[0] + "".join(w.capitalize() for w in parts[1:])


CAMEL_CONFIG = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)


def to_camel_dict(model: pydantic.BaseModel) -> dict[str, Any]:
    """Dump *model* to JSON-safe data using its camelCase aliases."""
    return model.model_dump(mode="json", by_alias=True)
