from __future__ import annotations

from typing import Optional

from api.stats import (
    compute_move_stats,
    pct_change,
    range_label,
    safe_float,
    volatility_label,
    volume_label,
    volume_ratio,
)
from market.snapshot import MarketSnapshot

SYSTEM_PROMPT = (
    "You are a professional crypto market analyst. Provide detailed, data-driven analysis "
    "without mentioning that you are an AI. Never provide investment advice."
)

SECTION_HEADINGS = (
    "What Happened",
    "Possible Drivers",
    "Market Context",
    "What to Watch",
    "Disclaimer",
)

_FORMAT_INSTRUCTIONS = """INSTRUCTIONS:
Provide a comprehensive analysis in this EXACT format:

## What Happened
[Write 2-3 sentences with specific numbers describing the price action, mentioning the exact move from $X to $Y and the percentage change]

## Possible Drivers
[Write 3-4 detailed paragraphs explaining likely causes. Be specific about:
- Technical factors (support/resistance levels, moving averages)
- Market structure (funding rates, liquidations, options expiry)
- Fundamental catalysts (protocol updates, partnerships, regulatory news)
- Macro correlation (traditional markets, dollar strength, risk sentiment)]

## Market Context
[Write 1-2 paragraphs placing this move in broader context - how does it compare to the recent range, is it following Bitcoin's trend, where are we in the market cycle]

## What to Watch
[Write 3-4 sentences about key levels, upcoming events, or indicators to monitor. Include specific price levels like "Watch the $X support level" or "Resistance at $Y"]

## Disclaimer
[One concise sentence - do NOT mention being an AI. Simply state this is market analysis, not financial advice]

IMPORTANT:
- Use the exact section headings shown above
- Use specific numbers from the data provided
- Do NOT use generic phrases like "cryptocurrency markets are volatile"
- Do NOT mention that you are an AI or language model
- Do NOT give investment advice
- Be confident and direct in your analysis
- Reference actual price levels and percentages"""


def _fmt(value: Optional[float], scale: float = 1.0, prefix: str = "", suffix: str = "") -> str:
    val = safe_float(value)
    if val is None:
        return "N/A"
    return f"{prefix}{val / scale:.2f}{suffix}"


def build_prompt(coin_id: str, range_: str, snapshot: MarketSnapshot, question: Optional[str] = "") -> str:
    """Turn a market snapshot (and optional user question) into the analyst prompt."""
    stats = snapshot.stats
    move = compute_move_stats(snapshot)
    coin_name = snapshot.coin.name or coin_id

    arrow = "↑" if move.change_pct > 0 else "↓"
    ath = safe_float(stats.ath)
    if ath:
        ath_line = f"${ath:.2f} ({pct_change(move.last_price, ath):.1f}% from ATH)"
    else:
        ath_line = "N/A"
    rank = stats.market_cap_rank if stats.market_cap_rank is not None else "N/A"

    if move.mid_price is not None and move.last_price > move.mid_price:
        pace = "accelerated"
    else:
        pace = "decelerated"

    lines = [
        f"You are a professional crypto market analyst. Provide a detailed analysis of {coin_name}'s price movement.",
        "",
        "MARKET DATA:",
        f"- Coin: {coin_name} ({coin_id.upper()})",
        f"- Time Range: {range_label(range_)}",
        f"- Starting Price: ${move.first_price:.2f}",
        f"- Current Price: ${move.last_price:.2f}",
        f"- Total Change: {move.change_pct:.2f}% {arrow}",
        f"- Period High: ${move.period_high:.2f}",
        f"- Period Low: ${move.period_low:.2f}",
        f"- Volatility: {move.volatility:.2f}% range",
        f"- 24h Volume: {_fmt(stats.volume_24h, 1e6, '$', 'M')}",
        f"- Market Cap: {_fmt(stats.market_cap, 1e9, '$', 'B')} (Rank #{rank})",
        f"- 24h Change: {_fmt(stats.price_change_24h)}%",
        f"- 7d Change: {_fmt(stats.price_change_7d)}%",
        f"- All-Time High: {ath_line}",
        "",
        "KEY OBSERVATIONS:",
        f"- Price {pace} in the second half of the period",
        f"- {volatility_label(move.volatility)} volatility observed",
        f"- Volume is {volume_label(volume_ratio(snapshot))} relative to market cap",
        "",
    ]
    question = (question or "").strip()
    if question:
        lines.append(f"USER QUESTION: {question}")
        lines.append("")
    lines.append(_FORMAT_INSTRUCTIONS)
    return "\n".join(lines)
