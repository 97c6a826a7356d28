from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from market.snapshot import MarketSnapshot

RANGE_LABELS = {
    "24h": "last 24 hours",
    "7d": "last 7 days",
    "30d": "last 30 days",
    "90d": "last 90 days",
}
VALID_RANGES = tuple(RANGE_LABELS)


@dataclass
class MoveStats:
    first_price: float
    last_price: float
    mid_price: Optional[float]
    change_pct: float
    period_high: float
    period_low: float
    volatility: float


def safe_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        val = float(value)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(val):
        return None
    return val


def pct_change(new: float, base: float) -> float:
    """Percent change from base to new; nan/inf instead of ZeroDivisionError."""
    if base == 0:
        if new == 0:
            return float("nan")
        return float("inf") if new > 0 else float("-inf")
    return (new - base) / base * 100


def range_label(range_: str) -> str:
    return RANGE_LABELS.get(range_, range_)


def compute_move_stats(snapshot: MarketSnapshot, default_price: Optional[float] = None) -> MoveStats:
    """Derived quantities over the chart; with no chart, every price falls back to default_price (or 0)."""
    prices = np.asarray(snapshot.prices, dtype=float)
    if prices.size:
        first, last = float(prices[0]), float(prices[-1])
        high, low = float(prices.max()), float(prices.min())
        mid: Optional[float] = float(prices[prices.size // 2])
    else:
        first = last = high = low = float(default_price or 0.0)
        mid = None
    return MoveStats(
        first_price=first,
        last_price=last,
        mid_price=mid,
        change_pct=round(pct_change(last, first), 2),
        period_high=high,
        period_low=low,
        volatility=pct_change(high, low),
    )


def volatility_label(volatility: float) -> str:
    if volatility > 10:
        return "High"
    if volatility > 5:
        return "Moderate"
    return "Low"


def volume_ratio(snapshot: MarketSnapshot) -> Optional[float]:
    volume = safe_float(snapshot.stats.volume_24h)
    cap = safe_float(snapshot.stats.market_cap)
    if volume is None or not cap:
        return None
    return volume / cap


def volume_label(ratio: Optional[float]) -> str:
    # ratio of exactly 0.05 counts as elevated
    if ratio is None:
        return "normal"
    if ratio >= 0.1:
        return "unusually high"
    if ratio >= 0.05:
        return "elevated"
    return "normal"


def rank_tier(rank: Optional[int]) -> str:
    if rank is None:
        return "notable"
    if rank <= 10:
        return "major"
    if rank <= 50:
        return "significant"
    return "notable"
