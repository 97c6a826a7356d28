# market/coingecko.py
from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import requests

from market.snapshot import CoinInfo, MarketSnapshot, MarketStats, PricePoint

logger = logging.getLogger(__name__)

BASE_URL = os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3").rstrip("/")
REQUEST_TIMEOUT = float(os.getenv("COINGECKO_TIMEOUT", "10"))
CACHE_TTL = float(os.getenv("MARKET_CACHE_TTL", "300"))
COINS_LIST_TTL = 86400.0

RANGE_DAYS = {"24h": 1, "7d": 7, "30d": 30, "90d": 90}
HOUR_MS = 3_600_000
DAY_MS = 86_400_000

MOCK_COINS = [
    {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"},
    {"id": "ethereum", "symbol": "eth", "name": "Ethereum"},
    {"id": "binancecoin", "symbol": "bnb", "name": "Binance Coin"},
    {"id": "solana", "symbol": "sol", "name": "Solana"},
    {"id": "cardano", "symbol": "ada", "name": "Cardano"},
    {"id": "ripple", "symbol": "xrp", "name": "Ripple"},
    {"id": "polkadot", "symbol": "dot", "name": "Polkadot"},
    {"id": "dogecoin", "symbol": "doge", "name": "Dogecoin"},
    {"id": "avalanche-2", "symbol": "avax", "name": "Avalanche"},
    {"id": "chainlink", "symbol": "link", "name": "Chainlink"},
]


class MarketDataError(RuntimeError):
    """Raised when CoinGecko cannot serve a request."""


class TTLCache:
    """Tiny in-process key/value store with per-entry expiry. Last write wins."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._items: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            expires, value = item
            if expires <= self._clock():
                del self._items[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._items[key] = (self._clock() + (ttl if ttl is not None else self.ttl), value)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


_cache = TTLCache(CACHE_TTL)


def get_range_days(range_: str) -> int:
    return RANGE_DAYS.get(range_, 7)


def _get_json(path: str, params: Dict[str, Any]) -> Any:
    url = f"{BASE_URL}/{path.lstrip('/')}"
    try:
        resp = requests.get(url, params=params, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.json()
    except requests.RequestException as exc:
        raise MarketDataError(f"CoinGecko request to {path} failed: {exc}") from exc
    except ValueError as exc:
        raise MarketDataError(f"CoinGecko returned invalid JSON for {path}") from exc


def _fetch_snapshot(coin_id: str, range_: str) -> MarketSnapshot:
    days = get_range_days(range_)
    markets = _get_json(
        "coins/markets",
        {
            "vs_currency": "usd",
            "ids": coin_id,
            "order": "market_cap_desc",
            "per_page": 1,
            "page": 1,
            "sparkline": "false",
            "price_change_percentage": "24h,7d,30d",
        },
    )
    chart_params: Dict[str, Any] = {"vs_currency": "usd", "days": days}
    # Up to 30 days CoinGecko picks hourly granularity on its own
    if days > 30:
        chart_params["interval"] = "daily"
    chart = _get_json(f"coins/{coin_id}/market_chart", chart_params)

    coin = markets[0] if isinstance(markets, list) and markets else {}
    history = chart.get("prices") if isinstance(chart, dict) else None
    if not isinstance(history, list):
        raise MarketDataError(f"No price history for {coin_id}")

    points = []
    for row in history:
        try:
            ts, price = int(row[0]), float(row[1])
        except (TypeError, ValueError, IndexError):
            continue
        points.append(PricePoint(timestamp=ts, price=price))
    points.sort(key=lambda p: p.timestamp)

    stats = MarketStats.from_dict({
        "currentPrice": coin.get("current_price"),
        "marketCap": coin.get("market_cap"),
        "volume24h": coin.get("total_volume"),
        "priceChange24h": coin.get("price_change_percentage_24h"),
        "priceChange7d": coin.get("price_change_percentage_7d_in_currency"),
        "priceChange30d": coin.get("price_change_percentage_30d_in_currency"),
        "ath": coin.get("ath"),
        "athDate": coin.get("ath_date"),
        "atl": coin.get("atl"),
        "atlDate": coin.get("atl_date"),
        "circulatingSupply": coin.get("circulating_supply"),
        "totalSupply": coin.get("total_supply"),
        "marketCapRank": coin.get("market_cap_rank"),
    })
    return MarketSnapshot(
        coin=CoinInfo(
            id=coin.get("id") or coin_id,
            symbol=coin.get("symbol") or "",
            name=coin.get("name") or "",
            image=coin.get("image"),
        ),
        stats=stats,
        chart_data=points,
    )


def get_market_data(coin_id: str = "bitcoin", range_: str = "7d") -> MarketSnapshot:
    """Snapshot for one coin over one range; cached, mock data on provider failure."""
    key = f"market_{coin_id}_{range_}"
    cached = _cache.get(key)
    if cached is not None:
        logger.info("Cache hit: %s", key)
        return cached

    try:
        snapshot = _fetch_snapshot(coin_id, range_)
    except MarketDataError as exc:
        logger.warning("CoinGecko unavailable, using mock data for %s/%s: %s", coin_id, range_, exc)
        return get_mock_market_data(coin_id, range_)

    _cache.set(key, snapshot)
    return snapshot


def get_coins_list() -> List[Dict[str, Any]]:
    cached = _cache.get("coins_list")
    if cached is not None:
        return cached
    try:
        data = _get_json("coins/list", {})
    except MarketDataError as exc:
        logger.warning("CoinGecko coins list failed: %s", exc)
        return list(MOCK_COINS)
    if not isinstance(data, list):
        logger.warning("Unexpected coins list payload from CoinGecko")
        return list(MOCK_COINS)
    top = data[:100]
    _cache.set("coins_list", top, ttl=COINS_LIST_TTL)
    return top


def get_mock_market_data(
    coin_id: str,
    range_: str,
    now_ms: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> MarketSnapshot:
    """Plausible synthetic snapshot. Prices stay within +-5% of the base so they are always > 0."""
    rng = rng or np.random.default_rng()
    now = int(now_ms if now_ms is not None else time.time() * 1000)
    days = get_range_days(range_)
    n_points = 24 if days == 1 else days
    step = HOUR_MS if days == 1 else DAY_MS

    base = 50000.0 if coin_id == "bitcoin" else 3000.0 if coin_id == "ethereum" else 100.0
    volatility = 0.05
    moves = (rng.random(n_points) - 0.5) * 2 * volatility
    points = [
        PricePoint(timestamp=now - (n_points - i) * step, price=float(base * (1 + moves[i])))
        for i in range(n_points)
    ]

    symbol = {"bitcoin": "btc", "ethereum": "eth"}.get(coin_id, coin_id[:3])
    stats = MarketStats(
        current_price=base,
        market_cap=base * 19_000_000,
        volume_24h=base * 1_000_000,
        price_change_24h=float((rng.random() - 0.5) * 10),
        price_change_7d=float((rng.random() - 0.5) * 20),
        price_change_30d=float((rng.random() - 0.5) * 30),
        ath=base * 1.5,
        ath_date=PricePoint(now - 30 * DAY_MS, 0.0).date,
        atl=base * 0.5,
        atl_date=PricePoint(now - 180 * DAY_MS, 0.0).date,
        circulating_supply=19_000_000,
        total_supply=21_000_000,
        market_cap_rank=1,
    )
    return MarketSnapshot(
        coin=CoinInfo(
            id=coin_id,
            symbol=symbol,
            name=coin_id[:1].upper() + coin_id[1:],
            image="https://via.placeholder.com/50",
        ),
        stats=stats,
        chart_data=points,
    )


def clear_cache() -> None:
    _cache.clear()
