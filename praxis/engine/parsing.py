"""Tolerant parser for provider reflection text.

Never raises. A usable text yields ParsedReflection (with defaults filled in
for any missing line); an empty or unusable text yields ParseError, whose
``fallback`` is still persistable.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID

from praxis.network.schemas import Behavior

DEFAULT_IMPACT = 0.2
DEFAULT_CONFIDENCE = 0.6
EMPTY_SUMMARY = "No reflection generated."

_FIELD_LINE = re.compile(
    r"^\s*(?:[-*+]\s*|\d+[.)]\s*)?"  # bullet or "2." / "2)" list marker
    r"[*_]*\s*(reflection|impact(?:\s+score)?|confidence|behavior)\s*[*_]*\s*:\s*[*_]*\s*"
    r"(.*?)[*_]*\s*$",
    re.IGNORECASE,
)
_NUMBER = re.compile(r"[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?")
_UUID = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


@dataclass
class ParsedReflection:
    summary: str
    content: str
    impact: float = DEFAULT_IMPACT
    confidence: float = DEFAULT_CONFIDENCE
    behavior_id: UUID | None = None
    behavior_ref: str | None = None  # raw "Behavior:" value
    defaulted: list[str] = field(default_factory=list)


@dataclass
class ParseError:
    reason: str
    fallback: ParsedReflection


ParseResult = ParsedReflection | ParseError


def _number(value: str) -> float | None:
    match = _NUMBER.search(value)
    if match is None:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def resolve_behavior(value: str, behaviors: Sequence[Behavior] = ()) -> UUID | None:
    """UUID embedded in ``value``, else the behavior whose name or action type matches."""
    match = _UUID.search(value)
    if match:
        return UUID(match.group(0))
    wanted = value.strip().strip("`'\"").lower()
    if not wanted:
        return None
    for behavior in behaviors:
        if wanted in (behavior.name.lower(), behavior.action_type.lower(), str(behavior.id)):
            return behavior.id
    return None


def parse_reflection(text: str | None, behaviors: Sequence[Behavior] = ()) -> ParseResult:
    raw = (text or "").strip()
    if not raw:
        return ParseError(
            reason="empty response",
            fallback=ParsedReflection(
                summary=EMPTY_SUMMARY,
                content=EMPTY_SUMMARY,
                defaulted=["summary", "impact", "confidence"],
            ),
        )

    fields: dict[str, str] = {}
    first_line = ""
    for line in raw.splitlines():
        if not first_line and line.strip():
            first_line = line.strip()
        m = _FIELD_LINE.match(line)
        if m is None:
            continue
        key = m.group(1).lower()
        key = "impact" if key.startswith("impact") else key
        fields.setdefault(key, m.group(2))

    parsed = ParsedReflection(summary="", content=raw)

    summary = fields.get("reflection", "").strip()
    if not summary:
        summary = first_line or EMPTY_SUMMARY
        parsed.defaulted.append("summary")
    parsed.summary = summary

    impact = _number(fields["impact"]) if "impact" in fields else None
    if impact is None:
        parsed.defaulted.append("impact")
    else:
        parsed.impact = impact

    confidence = _number(fields["confidence"]) if "confidence" in fields else None
    if confidence is None:
        parsed.defaulted.append("confidence")
    else:
        parsed.confidence = confidence

    if "behavior" in fields:
        parsed.behavior_ref = fields["behavior"]
        parsed.behavior_id = resolve_behavior(fields["behavior"], behaviors)

    return parsed
