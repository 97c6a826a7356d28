from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

LEGACY_DISCLAIMER = "This is market analysis and not financial advice."


@dataclass(frozen=True)
class Explanation:
    """Five-section narrative. Empty strings mean the section had no content."""

    what_happened: str = ""
    possible_drivers: str = ""
    market_context: str = ""
    what_to_watch: str = ""
    disclaimer: str = ""

    def sections(self) -> List[tuple]:
        return [
            ("What Happened", self.what_happened),
            ("Possible Drivers", self.possible_drivers),
            ("Market Context", self.market_context),
            ("What to Watch", self.what_to_watch),
            ("Disclaimer", self.disclaimer),
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "whatHappened": self.what_happened,
            "possibleDrivers": self.possible_drivers,
            "marketContext": self.market_context,
            "whatToWatch": self.what_to_watch,
            "disclaimer": self.disclaimer,
        }


@dataclass(frozen=True)
class LegacyExplanation:
    """Degraded shape used when a reply carries no recognisable section headings."""

    summary: str
    reasons: List[str] = field(default_factory=list)
    disclaimer: str = LEGACY_DISCLAIMER

    def to_dict(self) -> Dict[str, Any]:
        return {"summary": self.summary, "reasons": list(self.reasons), "disclaimer": self.disclaimer}


AnyExplanation = Union[Explanation, LegacyExplanation]


def explanation_from_dict(data: Dict[str, Any]) -> AnyExplanation:
    """Rebuild whichever shape was serialised, keyed on whatHappened vs summary."""
    if "whatHappened" in data:
        return Explanation(
            what_happened=str(data.get("whatHappened") or ""),
            possible_drivers=str(data.get("possibleDrivers") or ""),
            market_context=str(data.get("marketContext") or ""),
            what_to_watch=str(data.get("whatToWatch") or ""),
            disclaimer=str(data.get("disclaimer") or ""),
        )
    if "summary" in data:
        return LegacyExplanation(
            summary=str(data.get("summary") or ""),
            reasons=[str(r) for r in data.get("reasons") or []],
            disclaimer=str(data.get("disclaimer") or LEGACY_DISCLAIMER),
        )
    raise ValueError("Payload is neither an explanation nor a legacy explanation")
