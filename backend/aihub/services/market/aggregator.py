# backend/aihub/services/market/aggregator.py
"""
Iranian market snapshot (currency, gold, crypto, stocks).

Each category is fetched from SourceArena concurrently; a category whose
request fails or returns nothing falls back to the built-in sample data.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from aihub.core.config import Settings, settings as default_settings
from aihub.models._time import utcnow

log = structlog.get_logger(__name__)

# response key -> SourceArena path
CATEGORIES: Tuple[Tuple[str, str], ...] = (
    ("currency", "/currency"),
    ("gold", "/gold"),
    ("crypto", "/crypto"),
    ("stocks", "/stock"),
)


@dataclass(frozen=True)
class MarketItem:
    symbol: str
    name: str
    price: float
    change: float
    change_percent: float

    def to_dict(self, last_update: datetime) -> Dict[str, Any]:
        d = asdict(self)
        return {
            "symbol": d["symbol"],
            "name": d["name"],
            "price": d["price"],
            "change": d["change"],
            "changePercent": d["change_percent"],
            "lastUpdate": last_update.isoformat(),
        }


SAMPLE_DATA: Dict[str, List[MarketItem]] = {
    "currency": [
        MarketItem("USD", "دلار آمریکا", 65000, 500, 0.77),
        MarketItem("EUR", "یورو", 71000, -300, -0.42),
    ],
    "gold": [
        MarketItem("GOLD", "طلای ۱۸ عیار", 4500000, 50000, 1.12),
        MarketItem("COIN", "سکه امامی", 48000000, 500000, 1.05),
    ],
    "crypto": [
        MarketItem("BTC", "بیتکوین", 6500000000, 100000000, 1.56),
        MarketItem("ETH", "اتریوم", 250000000, -5000000, -1.96),
    ],
    "stocks": [
        MarketItem("FOLD", "فولاد مبارکه", 5890, 120, 2.08),
        MarketItem("SHPA", "شپنا", 12450, -230, -1.81),
        MarketItem("KHOD", "خودرو", 2340, 50, 2.18),
        MarketItem("BMLT", "بانک ملت", 4520, 80, 1.80),
        MarketItem("PTAP", "پتروشیمی تاپیکو", 15800, -150, -0.94),
    ],
}


def sample_snapshot(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    out: Dict[str, Any] = {key: [i.to_dict(now) for i in items] for key, items in SAMPLE_DATA.items()}
    out["lastUpdate"] = now.isoformat()
    return out


async def _fetch(client: httpx.AsyncClient, path: str) -> Any:
    resp = await client.get(path)
    resp.raise_for_status()
    return resp.json()


async def fetch_snapshot(
    *,
    cfg: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    cfg = cfg or default_settings
    now = utcnow()
    snapshot = sample_snapshot(now)
    sources = {key: "sample" for key, _ in CATEGORIES}

    if cfg.market_source_url:
        async with httpx.AsyncClient(
            base_url=cfg.market_source_url.rstrip("/"),
            timeout=cfg.market_timeout_s,
            transport=transport,
        ) as client:
            results = await asyncio.gather(
                *(_fetch(client, path) for _, path in CATEGORIES),
                return_exceptions=True,
            )
        for (key, path), res in zip(CATEGORIES, results):
            if isinstance(res, BaseException):
                log.warning("market.fetch_failed", category=key, path=path, error=repr(res))
                continue
            if not res:
                log.info("market.empty", category=key)
                continue
            snapshot[key] = res
            sources[key] = "live"

    snapshot["sources"] = sources
    return snapshot
