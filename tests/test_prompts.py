import math

from api.prompts import SECTION_HEADINGS, build_prompt
from api.stats import compute_move_stats, range_label, volatility_label, volume_label
from tests.conftest import make_snapshot


def test_prompt_embeds_figures_and_headings(btc_snapshot):
    prompt = build_prompt("bitcoin", "24h", btc_snapshot, "")
    assert "Bitcoin (BITCOIN)" in prompt
    assert "Time Range: last 24 hours" in prompt
    assert "Starting Price: $45000.00" in prompt
    assert "Current Price: $51234.56" in prompt
    assert "Total Change: 13.85% ↑" in prompt
    assert "Period High: $52000.00" in prompt
    assert "Period Low: $44000.00" in prompt
    assert "Volatility: 18.18% range" in prompt
    assert "Market Cap: $1000.00B (Rank #1)" in prompt
    assert "High volatility observed" in prompt
    assert "Volume is elevated relative to market cap" in prompt
    for heading in SECTION_HEADINGS:
        assert f"## {heading}" in prompt
    assert "USER QUESTION" not in prompt


def test_question_is_appended_before_instructions(btc_snapshot):
    prompt = build_prompt("bitcoin", "7d", btc_snapshot, "Why did it pump?")
    assert "USER QUESTION: Why did it pump?" in prompt
    assert prompt.index("USER QUESTION") < prompt.index("INSTRUCTIONS:")


def test_unknown_range_uses_raw_string():
    assert range_label("1y") == "1y"
    assert range_label("90d") == "last 90 days"


def test_missing_stats_render_as_na():
    snapshot = make_snapshot([10.0, 11.0], market_cap=None, volume_24h=None, ath=None,
                             market_cap_rank=None, price_change_24h=None)
    prompt = build_prompt("foo", "7d", snapshot, None)
    assert "24h Volume: N/A" in prompt
    assert "Rank #N/A" in prompt
    assert "All-Time High: N/A" in prompt
    assert "Volume is normal relative to market cap" in prompt


def test_empty_chart_produces_nan_not_an_exception():
    snapshot = make_snapshot([])
    stats = compute_move_stats(snapshot)
    assert math.isnan(stats.change_pct)
    assert math.isnan(stats.volatility)
    prompt = build_prompt("bitcoin", "24h", snapshot, "")
    assert "Total Change: nan%" in prompt


def test_single_point_has_zero_volatility():
    stats = compute_move_stats(make_snapshot([123.45]))
    assert stats.period_high == stats.period_low == 123.45
    assert stats.volatility == 0
    assert stats.change_pct == 0


def test_threshold_labels():
    assert volatility_label(10.01) == "High"
    assert volatility_label(10.0) == "Moderate"
    assert volatility_label(5.0) == "Low"
    assert volume_label(0.1) == "unusually high"
    assert volume_label(0.05) == "elevated"
    assert volume_label(0.0499) == "normal"
    assert volume_label(None) == "normal"
