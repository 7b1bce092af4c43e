"""Shared utility functions for Praxis."""

from __future__ import annotations

import json
import math
import re
from datetime import UTC, datetime
from typing import Any

_PLACEHOLDER = re.compile(r"{{\s*([\w.-]+)\s*}}")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def coerce_number(value: Any) -> float | None:
    """Return a finite float from a number or numeric string, else None.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def render_prompt(template: str, variables: dict[str, Any]) -> str:
    """Replace ``{{ name }}`` placeholders. Unknown placeholders are left as-is."""

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str)

    return _PLACEHOLDER.sub(_sub, template)
