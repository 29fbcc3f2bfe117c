"""
Server-Sent Events formatting and serialization helpers.

Pure functions with no side-effects.
"""

from __future__ import annotations

import json
from typing import Any

import pydantic

from consent_audit.utils import serialization

# ====================================================================
# Serialization
# ====================================================================


def to_jsonable(value: Any) -> Any:
    """Convert models (and lists/dicts of them) into camelCase JSON data."""
    if isinstance(value, pydantic.BaseModel):
        return serialization.to_camel_dict(value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    return value


# ====================================================================
# SSE Formatting
# ====================================================================


def format_sse_event(event_type: str, data: dict[str, Any]) -> str:
    """Format a Server-Sent Event string."""
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


def format_progress_event(step: str, message: str, progress: int) -> str:
    """Format a progress SSE event."""
    return format_sse_event(
        "progress",
        {"step": step, "message": message, "progress": progress},
    )


def format_page_status_event(page_id: str, status: str, label: str) -> str:
    return format_sse_event("pageStatus", {"pageId": page_id, "status": status, "label": label})


def scan_progress(completed: int, total: int, *, start: int = 20, end: int = 85) -> int:
    """Map page completions onto the overall progress bar range."""
    if total <= 0:
        return end
    return start + round((end - start) * min(completed, total) / total)
