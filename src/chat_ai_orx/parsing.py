from __future__ import annotations

from typing import Any


def json_object(value: Any) -> dict[str, Any]:
    """Return `value` if it decoded to a JSON object, else an empty mapping."""
    if isinstance(value, dict):
        return value
    return {}


def text_field(body: dict[str, Any], key: str) -> str | None:
    value = body.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None
