# backend/tests/test_market.py
from __future__ import annotations

import httpx

from aihub.core.config import Settings
from aihub.services.market import aggregator

LIVE_USD = [{"symbol": "USD", "name": "دلار آمریکا", "price": 82000, "change": 1000, "changePercent": 1.23}]


def _cfg() -> Settings:
    return Settings(market_source_url="https://market.test/api", market_timeout_s=1.0)


async def test_all_categories_live():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json=LIVE_USD)

    snap = await aggregator.fetch_snapshot(cfg=_cfg(), transport=httpx.MockTransport(handler))

    assert sorted(paths) == ["/api/crypto", "/api/currency", "/api/gold", "/api/stock"]
    assert snap["sources"] == {"currency": "live", "gold": "live", "crypto": "live", "stocks": "live"}
    assert snap["currency"] == LIVE_USD


async def test_failed_or_empty_categories_fall_back_to_sample():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/currency"):
            return httpx.Response(200, json=LIVE_USD)
        if request.url.path.endswith("/gold"):
            return httpx.Response(503)
        if request.url.path.endswith("/crypto"):
            raise httpx.ConnectTimeout("slow", request=request)
        return httpx.Response(200, json=[])

    snap = await aggregator.fetch_snapshot(cfg=_cfg(), transport=httpx.MockTransport(handler))

    assert snap["sources"] == {"currency": "live", "gold": "sample", "crypto": "sample", "stocks": "sample"}
    assert snap["currency"] == LIVE_USD
    assert [i["symbol"] for i in snap["gold"]] == ["GOLD", "COIN"]
    assert len(snap["stocks"]) == 5
    assert set(snap["crypto"][0]) == {"symbol", "name", "price", "change", "changePercent", "lastUpdate"}


async def test_market_endpoint_without_source(client, monkeypatch):
    monkeypatch.setattr(aggregator, "default_settings", Settings(market_source_url=""))

    resp = await client.get("/api/v1/market")

    assert resp.status_code == 200
    body = resp.json()
    assert set(body["sources"].values()) == {"sample"}
    assert body["currency"][0]["symbol"] == "USD"
    assert body["lastUpdate"] == body["currency"][0]["lastUpdate"]
