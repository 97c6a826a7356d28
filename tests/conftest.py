from __future__ import annotations

from typing import List, Optional

import pytest

from market.snapshot import CoinInfo, MarketSnapshot, MarketStats, PricePoint
from utils.llm_client import LLMClientError, LLMResponse, TextProvider

T0 = 1_700_000_000_000


def make_snapshot(prices: List[float], **stats) -> MarketSnapshot:
    defaults = dict(
        current_price=prices[-1] if prices else 100.0,
        market_cap=1e12,
        volume_24h=5e10,
        price_change_24h=2.34,
        price_change_7d=-1.2,
        ath=69000.0,
        market_cap_rank=1,
    )
    defaults.update(stats)
    return MarketSnapshot(
        coin=CoinInfo(id="bitcoin", symbol="btc", name="Bitcoin"),
        stats=MarketStats(**defaults),
        chart_data=[PricePoint(timestamp=T0 + i * 3_600_000, price=p) for i, p in enumerate(prices)],
    )


class FakeProvider(TextProvider):
    name = "fake"

    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None, configured: bool = True):
        self.reply = reply
        self.error = error
        self.configured = configured
        self.calls: List[dict] = []

    def is_configured(self) -> bool:
        return self.configured

    def generate(self, prompt, *, system=None, temperature=0.7, max_tokens=800):
        self.calls.append({"prompt": prompt, "system": system})
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.reply or "", provider=self.name)


@pytest.fixture
def btc_snapshot() -> MarketSnapshot:
    return make_snapshot([45000.0, 52000.0, 44000.0, 51234.56])


@pytest.fixture
def no_llm_env(monkeypatch):
    for var in ("OPENAI_API_KEY", "GEMINI_API_KEY", "OLLAMA_URL", "LLM_ENABLED"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def failing_provider() -> FakeProvider:
    return FakeProvider(error=LLMClientError("boom"))
