from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _opt_int(value: Any) -> Optional[int]:
    val = _opt_float(value)
    return int(val) if val is not None else None


@dataclass
class CoinInfo:
    id: str
    symbol: str = ""
    name: str = ""
    image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "symbol": self.symbol, "name": self.name, "image": self.image}


@dataclass
class MarketStats:
    """Current statistics for one coin. Any field may be None when the upstream omits it."""

    current_price: Optional[float] = None
    market_cap: Optional[float] = None
    volume_24h: Optional[float] = None
    price_change_24h: Optional[float] = None
    price_change_7d: Optional[float] = None
    price_change_30d: Optional[float] = None
    ath: Optional[float] = None
    ath_date: Optional[str] = None
    atl: Optional[float] = None
    atl_date: Optional[str] = None
    circulating_supply: Optional[float] = None
    total_supply: Optional[float] = None
    market_cap_rank: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MarketStats":
        data = data or {}
        return cls(
            current_price=_opt_float(data.get("currentPrice")),
            market_cap=_opt_float(data.get("marketCap")),
            volume_24h=_opt_float(data.get("volume24h")),
            price_change_24h=_opt_float(data.get("priceChange24h")),
            price_change_7d=_opt_float(data.get("priceChange7d")),
            price_change_30d=_opt_float(data.get("priceChange30d")),
            ath=_opt_float(data.get("ath")),
            ath_date=data.get("athDate"),
            atl=_opt_float(data.get("atl")),
            atl_date=data.get("atlDate"),
            circulating_supply=_opt_float(data.get("circulatingSupply")),
            total_supply=_opt_float(data.get("totalSupply")),
            market_cap_rank=_opt_int(data.get("marketCapRank")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPrice": self.current_price,
            "marketCap": self.market_cap,
            "volume24h": self.volume_24h,
            "priceChange24h": self.price_change_24h,
            "priceChange7d": self.price_change_7d,
            "priceChange30d": self.price_change_30d,
            "ath": self.ath,
            "athDate": self.ath_date,
            "atl": self.atl,
            "atlDate": self.atl_date,
            "circulatingSupply": self.circulating_supply,
            "totalSupply": self.total_supply,
            "marketCapRank": self.market_cap_rank,
        }


@dataclass
class PricePoint:
    timestamp: int
    price: float

    @property
    def date(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)
        return dt.isoformat().replace("+00:00", "Z")

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "date": self.date, "price": self.price}


@dataclass
class MarketSnapshot:
    coin: CoinInfo
    stats: MarketStats = field(default_factory=MarketStats)
    chart_data: List[PricePoint] = field(default_factory=list)

    @property
    def prices(self) -> List[float]:
        return [p.price for p in self.chart_data]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coin": self.coin.to_dict(),
            "stats": self.stats.to_dict(),
            "chartData": [p.to_dict() for p in self.chart_data],
        }
