"""Parse-or-null JSON extraction from free-form model output.

Models wrap JSON in prose or code fences. Both helpers take the span from the
first opening bracket to the last closing bracket, decode it, and check the
top-level type. Any failure yields None; nothing here raises.
"""

from __future__ import annotations

import json


def _extract(raw: str | None, opener: str, closer: str) -> object | None:
    if not raw:
        return None
    try:
        start = raw.index(opener)
        end = raw.rindex(closer) + 1
    except ValueError:
        return None
    if end <= start:
        return None
    try:
        return json.loads(raw[start:end])
    except json.JSONDecodeError:
        return None


def extract_json_array(raw: str | None) -> list | None:
    """Return the JSON array embedded in *raw*, or None."""
    value = _extract(raw, "[", "]")
    return value if isinstance(value, list) else None


def extract_json_object(raw: str | None) -> dict | None:
    """Return the JSON object embedded in *raw*, or None."""
    value = _extract(raw, "{", "}")
    return value if isinstance(value, dict) else None
