"""
API 层集成测试
注入假的数据库与行情源，走完整的 FastAPI 路由 / 依赖 / 异常处理
"""
import math
from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from coinpulse.app import create_app
from coinpulse.auth import CurrentUser, get_current_user
from coinpulse.config import Settings
from coinpulse.exchange import Candle, MarketDataSource, TickerSnapshot, UpstreamError
from coinpulse.services import ServiceContainer
from coinpulse.services.ai_provider_service import NO_PROVIDER_MESSAGE

USER = CurrentUser(id=uuid4(), username="alice", email="alice@example.com")


class _DummyPool:
    def __init__(self, coins=None, healthy=True):
        self.coins = coins or []
        self.healthy = healthy

    async def fetchval(self, query, *args):
        if not self.healthy:
            raise ConnectionError("pool closed")
        return 1

    async def fetch(self, query, *args):
        if "FROM coins" in query:
            return self.coins
        return []

    async def fetchrow(self, query, *args):
        return None

    async def execute(self, query, *args):
        return "OK"


class _DummyRedis:
    async def ping(self):
        return True

    async def get(self, key):
        return None


class _FakeSource(MarketDataSource):
    def __init__(self, candles=None, fail=False):
        self.candles = candles or []
        self.fail = fail

    async def fetch_ticker(self, market):
        if self.fail:
            raise UpstreamError("exchange down", 503, "fake")
        return TickerSnapshot(market, 65000.0, 1.5, 1.2e9, 0)

    async def fetch_candles(self, market, interval, limit, end_time=None):
        if self.fail:
            raise UpstreamError("exchange down", 503, "fake")
        return list(self.candles)

    async def fetch_orderbook(self, market, limit):
        raise UpstreamError("not available", 503, "fake")


def _candles(n=60):
    out = []
    for i in range(n):
        close = 100 + 5 * math.sin(i / 3)
        out.append(Candle(time=i * 3600, open=close, high=close + 1, low=close - 1, close=close, volume=10))
    # 倒序返回，路由需要自行排序
    return list(reversed(out))


def _client(pool=None, source=None, authenticated=True) -> AsyncClient:
    settings = Settings(ALERTS_ENABLED=False)
    db = SimpleNamespace(pg_pool=pool or _DummyPool(), redis=_DummyRedis())
    services = ServiceContainer(settings, db, source or _FakeSource())
    app = create_app(settings, services=services)
    if authenticated:
        app.dependency_overrides[get_current_user] = lambda: USER
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_reports_dependencies():
    async with _client() as client:
        resp = await client.get("/api/health")
    body = resp.json()
    assert resp.status_code == 200
    assert body["status"] == "healthy"
    assert body["service"] == "coinpulse"
    assert body["checks"]["postgres"] == "connected"
    assert body["checks"]["websocketClients"] == 0


@pytest.mark.asyncio
async def test_health_degraded_when_postgres_fails():
    async with _client(pool=_DummyPool(healthy=False)) as client:
        body = (await client.get("/api/health")).json()
    assert body["status"] == "degraded"
    assert body["checks"]["postgres"].startswith("error:")


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope():
    async with _client() as client:
        resp = await client.get("/api/nope")
    assert resp.status_code == 404
    assert "error" in resp.json()


@pytest.mark.asyncio
async def test_protected_route_requires_token():
    async with _client(authenticated=False) as client:
        resp = await client.get("/api/alerts")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Not authenticated"}


@pytest.mark.asyncio
async def test_markets_list_expands_variants():
    coins = [{"id": 1, "symbol": "BTCUSDT"}, {"id": 2, "symbol": "ETHUSDT"}]
    async with _client(pool=_DummyPool(coins=coins)) as client:
        resp = await client.get("/api/markets", params={"query": "btc", "type": "perp"})
    data = resp.json()["data"]
    assert [m["marketId"] for m in data] == ["BI:PERP:BTCUSDT", "BY:PERP:BTCUSDT"]
    assert data[0]["base"] == "BTC"
    assert data[0]["fundingIntervalSec"] == 8 * 3600


@pytest.mark.asyncio
async def test_market_metrics():
    async with _client(source=_FakeSource(candles=_candles(80))) as client:
        resp = await client.get("/api/markets/bi:perp:btcusdt/metrics")
    body = resp.json()
    assert resp.status_code == 200
    assert body["marketId"] == "BI:PERP:BTCUSDT"
    assert body["price"] == 65000.0
    assert body["natr5m14"] > 0


@pytest.mark.asyncio
async def test_market_metrics_invalid_id_and_upstream_failure():
    async with _client(source=_FakeSource(fail=True)) as client:
        bad = await client.get("/api/markets/XX:SPOT:BTC/metrics")
        down = await client.get("/api/markets/BI:SPOT:BTCUSDT/metrics")
    assert bad.status_code == 400
    assert bad.json() == {"error": "Invalid marketId"}
    assert down.status_code == 400


@pytest.mark.asyncio
async def test_analysis_endpoint_shape():
    async with _client(source=_FakeSource(candles=_candles())) as client:
        resp = await client.get("/api/analysis/btcusdt", params={"interval": "1h", "limit": 60})
    body = resp.json()
    assert resp.status_code == 200
    assert body["symbol"] == "BTCUSDT"
    assert 0 <= body["rsi"]["value"] <= 100
    assert set(body["sma"]) == {"p9", "p21", "p50"}
    assert body["supportResistance"]["lookback"] == 60


@pytest.mark.asyncio
async def test_analysis_errors():
    async with _client(source=_FakeSource(candles=_candles(1))) as client:
        too_few = await client.get("/api/analysis/BTCUSDT")
        bad_exchange = await client.get("/api/analysis/BTCUSDT", params={"exchange": "kraken"})
    assert too_few.status_code == 400
    assert bad_exchange.status_code == 400

    async with _client(source=_FakeSource(fail=True)) as client:
        down = await client.get("/api/analysis/BTCUSDT")
    assert down.status_code == 500
    assert down.json()["error"].startswith("Failed to fetch candles")


@pytest.mark.asyncio
async def test_alert_validation_and_invalid_id():
    async with _client() as client:
        bad_type = await client.post(
            "/api/alerts", json={"coinId": 1, "conditionType": "price_sideways", "conditionValue": 1}
        )
        bad_id = await client.delete("/api/alerts/abc")
    assert bad_type.status_code == 400
    assert "conditionType" in bad_type.json()["error"]
    assert bad_id.status_code == 400
    assert bad_id.json() == {"error": "Invalid alert ID"}


@pytest.mark.asyncio
async def test_chat_without_provider_returns_guidance():
    async with _client() as client:
        resp = await client.post("/api/ai/chat", json={"message": "hi"})
    assert resp.status_code == 200
    assert resp.json() == {"response": NO_PROVIDER_MESSAGE}


@pytest.mark.asyncio
async def test_conversations_is_empty_list():
    async with _client() as client:
        resp = await client.get("/api/ai/conversations")
    assert resp.json() == []


@pytest.mark.asyncio
async def test_watchlist_requires_coin_reference():
    async with _client() as client:
        resp = await client.post("/api/watchlist", json={})
    assert resp.status_code == 400
    assert resp.json() == {"error": "coinId or symbol is required"}
