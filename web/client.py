from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, Optional, Sequence, Tuple

import requests

from api.explanation import AnyExplanation, Explanation, LegacyExplanation, explanation_from_dict

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, Optional[int]]

NO_CONTENT = "No content."


class ExplanationCache:
    """Session-scoped memo of explanations keyed by (coinId, range, focal timestamp or None)."""

    def __init__(self) -> None:
        self._items: Dict[Hashable, AnyExplanation] = {}

    @staticmethod
    def key(coin_id: str, range_: str, timestamp: Optional[int] = None) -> CacheKey:
        return (coin_id, range_, timestamp)

    def get(self, key: CacheKey) -> Optional[AnyExplanation]:
        return self._items.get(key)

    def set(self, key: CacheKey, value: AnyExplanation) -> None:
        self._items[key] = value

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


class ExplainClientError(RuntimeError):
    """Raised when the explanation service cannot be reached."""


def render_text(explanation: AnyExplanation) -> str:
    """Plain-text rendering; empty sections show as 'No content.'"""
    if isinstance(explanation, LegacyExplanation):
        lines = [explanation.summary or NO_CONTENT]
        lines.extend(f"- {reason}" for reason in explanation.reasons)
        lines.append("")
        lines.append(explanation.disclaimer or NO_CONTENT)
        return "\n".join(lines)
    blocks = [f"{title}\n{body or NO_CONTENT}" for title, body in explanation.sections()]
    return "\n\n".join(blocks)


def _point_question(point: Dict[str, Any], chart_data: Sequence[Dict[str, Any]]) -> str:
    ts = int(point["timestamp"])
    price = float(point["price"])
    index = next((i for i, p in enumerate(chart_data) if p.get("timestamp") == ts), -1)
    local_change = 0.0
    if index > 0:
        prev = float(chart_data[index - 1]["price"])
        if prev:
            local_change = (price - prev) / prev * 100
    when = datetime.fromtimestamp(ts / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    return f"Analyze the price at {when}. Price: ${price:.2f}, Local change: {local_change:.2f}%"


def _point_fallback(point: Dict[str, Any], range_: str) -> Explanation:
    ts = int(point["timestamp"])
    when = datetime.fromtimestamp(ts / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    return Explanation(
        what_happened=f"At {when}, the price was ${float(point['price']):,.2f}.",
        possible_drivers="Market dynamics at this point suggest normal trading activity with standard volatility patterns.",
        market_context=f"This price point sits within the expected range for the {range_} timeframe.",
        what_to_watch="",
        disclaimer="This analysis is for informational purposes only and not investment advice.",
    )


class ExplainClient:
    """HTTP client for the explain-move route with an injected per-session cache."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        cache: Optional[ExplanationCache] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("EXPLAIN_API_URL", "http://localhost:5000/api")).rstrip("/")
        self.cache = cache if cache is not None else ExplanationCache()
        self.session = session or requests.Session()
        self.timeout = timeout or float(os.getenv("LLM_TIMEOUT", "20")) + 10
        self.coin_id: Optional[str] = None
        self.range: Optional[str] = None
        self._latest: Optional[CacheKey] = None
        self._lock = threading.Lock()

    def select(self, coin_id: str, range_: str) -> None:
        """Switch coin/range; cached explanations belong to the old selection and are dropped."""
        if (coin_id, range_) != (self.coin_id, self.range):
            self.cache.clear()
        self.coin_id, self.range = coin_id, range_

    def explain_move(self, coin_id: str, range_: str, question: str = "") -> Dict[str, Any]:
        try:
            resp = self.session.post(
                f"{self.base_url}/explain-move",
                json={"coinId": coin_id, "range": range_, "question": question},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise ExplainClientError(f"explain-move request failed: {exc}") from exc
        except ValueError as exc:
            raise ExplainClientError("explain-move returned invalid JSON") from exc
        try:
            payload["explanation"] = explanation_from_dict(payload.get("explanation") or {})
        except ValueError as exc:
            raise ExplainClientError(str(exc)) from exc
        return payload

    def explain(self, coin_id: str, range_: str, question: str = "",
                timestamp: Optional[int] = None) -> Optional[AnyExplanation]:
        """Cached explanation for the key; None if a newer request superseded this one."""
        key = self.cache.key(coin_id, range_, timestamp)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        with self._lock:
            self._latest = key
        explanation = self.explain_move(coin_id, range_, question)["explanation"]
        return self._commit(key, explanation)

    def analyze_point(self, point: Dict[str, Any], chart_data: Sequence[Dict[str, Any]]) -> Optional[AnyExplanation]:
        """Explain one hovered chart point of the current selection."""
        if self.coin_id is None or self.range is None:
            raise ValueError("select() a coin and range first")
        coin_id, range_ = self.coin_id, self.range
        key = self.cache.key(coin_id, range_, int(point["timestamp"]))
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        with self._lock:
            self._latest = key
        try:
            explanation = self.explain_move(coin_id, range_, _point_question(point, chart_data))["explanation"]
        except ExplainClientError as exc:
            logger.warning("Point analysis failed, using local fallback: %s", exc)
            explanation = _point_fallback(point, range_)
        return self._commit(key, explanation)

    def _commit(self, key: CacheKey, explanation: AnyExplanation) -> Optional[AnyExplanation]:
        with self._lock:
            if self._latest != key:
                logger.info("Discarding stale explanation for %s", key)
                return None
            self.cache.set(key, explanation)
            return explanation
