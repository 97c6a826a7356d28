from __future__ import annotations

import re
from typing import Dict, List

from api.explanation import LEGACY_DISCLAIMER, AnyExplanation, Explanation, LegacyExplanation

# Any markdown heading line; the title decides which section (if any) it opens.
_HEADING_RE = re.compile(r"^[ \t]{0,3}#{1,6}(?:[ \t]+|$)(?P<title>[^\n]*?)[ \t#]*$", re.MULTILINE)

_SECTION_FIELDS = {
    "what happened": "what_happened",
    "possible drivers": "possible_drivers",
    "market context": "market_context",
    "what to watch": "what_to_watch",
    "disclaimer": "disclaimer",
}


def _normalise_title(title: str) -> str:
    title = title.strip().strip("*_").strip()
    title = title.rstrip(":").strip()
    return re.sub(r"\s+", " ", title).lower()


def extract_sections(raw_text: str) -> Dict[str, str]:
    """Map section field -> body for every known heading found (first occurrence wins)."""
    headings = list(_HEADING_RE.finditer(raw_text))
    found: Dict[str, str] = {}
    for i, match in enumerate(headings):
        field_name = _SECTION_FIELDS.get(_normalise_title(match.group("title")))
        if field_name is None or field_name in found:
            continue
        end = headings[i + 1].start() if i + 1 < len(headings) else len(raw_text)
        found[field_name] = raw_text[match.end():end].strip()
    return found


def parse_legacy(raw_text: str) -> LegacyExplanation:
    lines: List[str] = [line.strip() for line in raw_text.splitlines() if line.strip()]
    return LegacyExplanation(
        summary=lines[0] if lines else "Market analysis",
        reasons=lines[1:-1],
        disclaimer=LEGACY_DISCLAIMER,
    )


def parse_response(raw_text: str) -> AnyExplanation:
    """Heading-based extraction first; LegacyExplanation when the key sections are missing."""
    raw_text = raw_text or ""
    sections = extract_sections(raw_text)
    if not sections.get("what_happened") and not sections.get("possible_drivers"):
        return parse_legacy(raw_text)
    return Explanation(**{name: sections.get(name, "") for name in _SECTION_FIELDS.values()})
