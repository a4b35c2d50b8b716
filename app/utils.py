"""Utility helpers for the CineTrack gateway."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping


PLACEHOLDER_TITLES = frozenset({"", "unknown", "untitled", "?", "n/a", "tbd"})
_YEAR_RE = re.compile(r"^(\d{4})")


def make_cache_key(operation: str, params: Mapping[str, Any] | None = None) -> str:
    """Return a deterministic cache key for an operation and its parameters.

    Keys are order-independent; ``None`` and empty-string values are dropped and
    string values are trimmed and lower-cased so equivalent requests collide.
    """

    normalized: dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip().lower()
            if not value:
                continue
        normalized[str(key)] = value
    encoded = json.dumps(normalized, sort_keys=True, separators=(",", ":"), default=str)
    return f"{operation}:{encoded}"


def is_placeholder_title(title: str | None, item_id: int | None = None) -> bool:
    """Return whether ``title`` is missing or only a stand-in value."""

    cleaned = (title or "").strip()
    if cleaned.casefold() in PLACEHOLDER_TITLES:
        return True
    if item_id is not None and cleaned.lstrip("#") == str(item_id):
        return True
    return False


def extract_year(date_value: Any) -> int | None:
    if isinstance(date_value, int):
        return date_value
    if not isinstance(date_value, str):
        return None
    match = _YEAR_RE.match(date_value.strip())
    if not match:
        return None
    return int(match.group(1))


def coerce_positive_int(value: Any) -> int | None:
    """Return ``value`` as a positive integer or ``None``."""

    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None
