"""Pure helper functions shared across subsystems."""

from __future__ import annotations

import datetime
from typing import Any, Optional


def _normalize_optional_str(value: Any) -> Optional[str]:
    """Convert arbitrary input into a trimmed string or None."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def _split_csv(value: Optional[str]) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty entries."""
    if not value:
        return []
    items: list[str] = []
    for entry in value.split(","):
        text = _normalize_optional_str(entry)
        if text:
            items.append(text)
    return items


def _utc_today(now: Optional[datetime.datetime] = None) -> str:
    """Return the UTC calendar date as ``YYYY-MM-DD``."""
    current = now or datetime.datetime.now(datetime.timezone.utc)
    if current.tzinfo is not None:
        current = current.astimezone(datetime.timezone.utc)
    return current.strftime("%Y-%m-%d")
