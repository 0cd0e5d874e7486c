import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from coinpulse.exchange import (
    Exchange,
    ExchangeMarketDataSource,
    MarketId,
    MarketType,
    UpstreamError,
    sort_candles,
)
from coinpulse.exchange.base_exchange import PublicHttpClient, _extract_error_message
from coinpulse.exchange.binance_client import BinancePerpAdapter, BinanceSpotAdapter
from coinpulse.exchange.bybit_client import BybitPerpAdapter, BybitSpotAdapter, to_bybit_interval


class _FakeHttp:
    """按顺序返回预置响应，并记录请求"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def get_json(self, url, params=None, source=""):
        self.calls.append((url, dict(params or {})))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    async def close(self):
        return None


@pytest.mark.asyncio
async def test_binance_spot_ticker_decoding():
    http = _FakeHttp({"symbol": "BTCUSDT", "lastPrice": "65000.10", "priceChangePercent": "-1.5", "quoteVolume": "123456.7"})
    adapter = BinanceSpotAdapter(http, "https://api.binance.test")

    ticker = await adapter.fetch_ticker("btcusdt")

    assert http.calls[0] == ("https://api.binance.test/api/v3/ticker/24hr", {"symbol": "BTCUSDT"})
    assert ticker.market == MarketId(Exchange.BINANCE, MarketType.SPOT, "BTCUSDT")
    assert ticker.price == pytest.approx(65000.10)
    assert ticker.change_percent == pytest.approx(-1.5)
    assert ticker.quote_volume == pytest.approx(123456.7)


@pytest.mark.asyncio
async def test_binance_perp_klines_use_futures_path_and_ms_end_time():
    rows = [
        [1700000060000, "2", "3", "1", "2.5", "10", 0, "0"],
        [1700000000000, "1", "2", "0.5", "1.5", "5", 0, "0"],
        ["bad"],
    ]
    http = _FakeHttp(rows)
    adapter = BinancePerpAdapter(http, "https://fapi.binance.test")

    candles = await adapter.fetch_candles("ETHUSDT", "1m", 2, end_time=1700000100)

    url, params = http.calls[0]
    assert url == "https://fapi.binance.test/fapi/v1/klines"
    assert params["endTime"] == 1700000100 * 1000
    assert len(candles) == 2
    assert [c.time for c in sort_candles(candles)] == [1700000000, 1700000060]
    assert candles[0].close == pytest.approx(2.5)


@pytest.mark.asyncio
async def test_binance_orderbook_levels():
    http = _FakeHttp({"lastUpdateId": 1, "bids": [["100.0", "2.0"]], "asks": [["101.0", "1.5"]]})
    book = await BinanceSpotAdapter(http).fetch_orderbook("BTCUSDT", 5)
    assert book.to_dict() == {"bids": [[100.0, 2.0]], "asks": [[101.0, 1.5]]}


@pytest.mark.asyncio
async def test_bybit_ticker_scales_percent_and_uses_turnover():
    http = _FakeHttp(
        {
            "retCode": 0,
            "retMsg": "OK",
            "result": {"list": [{"symbol": "ETHUSDT", "lastPrice": "3000", "price24hPcnt": "0.0123", "turnover24h": "999.5", "volume24h": "1"}]},
        }
    )
    adapter = BybitPerpAdapter(http, "https://api.bybit.test")

    ticker = await adapter.fetch_ticker("ETHUSDT")

    url, params = http.calls[0]
    assert url == "https://api.bybit.test/v5/market/tickers"
    assert params["category"] == "linear"
    assert ticker.change_percent == pytest.approx(1.23)
    assert ticker.quote_volume == pytest.approx(999.5)


@pytest.mark.asyncio
async def test_bybit_empty_ticker_list_is_an_error():
    http = _FakeHttp({"retCode": 0, "result": {"list": []}})
    with pytest.raises(UpstreamError):
        await BybitSpotAdapter(http).fetch_ticker("NOPEUSDT")


@pytest.mark.asyncio
async def test_bybit_nonzero_ret_code_raises():
    http = _FakeHttp({"retCode": 10001, "retMsg": "params error", "result": {}})
    with pytest.raises(UpstreamError) as exc:
        await BybitSpotAdapter(http).fetch_candles("BTCUSDT", "1h", 10)
    assert "params error" in str(exc.value)


@pytest.mark.asyncio
async def test_bybit_kline_params():
    http = _FakeHttp({"retCode": 0, "result": {"list": [["1700000000000", "1", "2", "0.5", "1.5", "5", "7"]]}})
    candles = await BybitSpotAdapter(http).fetch_candles("btcusdt", "4h", 1, end_time=1700000000)
    _, params = http.calls[0]
    assert params == {"category": "spot", "symbol": "BTCUSDT", "interval": "240", "limit": 1, "end": 1700000000000}
    assert candles[0].time == 1700000000


def test_bybit_interval_mapping():
    assert to_bybit_interval("1d") == "D"
    assert to_bybit_interval("1w") == "W"
    assert to_bybit_interval("15m") == "15"
    assert to_bybit_interval("3h") == "60"


def test_extract_error_message():
    assert _extract_error_message({"code": -1121, "msg": "Invalid symbol."}) == "Invalid symbol."
    assert _extract_error_message({"error": {"message": "boom"}}) == "boom"
    assert _extract_error_message(["x"]) == ""


@pytest.mark.asyncio
async def test_market_data_source_dispatches_by_variant():
    spot_http = _FakeHttp({"lastPrice": "1", "priceChangePercent": "0", "quoteVolume": "0"})
    bybit_http = _FakeHttp({"retCode": 0, "result": {"list": [{"lastPrice": "2", "price24hPcnt": "0", "turnover24h": "0"}]}})
    source = ExchangeMarketDataSource([BinanceSpotAdapter(spot_http), BybitPerpAdapter(bybit_http)])

    a = await source.fetch_ticker(MarketId.parse("BI:SPOT:BTCUSDT"))
    b = await source.fetch_ticker(MarketId.parse("BY:PERP:BTCUSDT"))

    assert a.price == 1.0
    assert b.price == 2.0
    with pytest.raises(LookupError):
        await source.fetch_ticker(MarketId.parse("BY:SPOT:BTCUSDT"))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call,result",
    [
        (lambda a: a.fetch_ticker("BTCUSDT"), {"list": "oops"}),
        (lambda a: a.fetch_candles("BTCUSDT", "1h", 10), {"list": "oops"}),
        (lambda a: a.fetch_orderbook("BTCUSDT", 5), {"b": "oops", "a": []}),
    ],
)
async def test_bybit_malformed_result_raises_upstream_error(call, result):
    http = _FakeHttp({"retCode": 0, "retMsg": "OK", "result": result})
    with pytest.raises(UpstreamError) as exc:
        await call(BybitSpotAdapter(http))
    assert "unexpected" in str(exc.value)


@pytest.mark.asyncio
async def test_public_http_client_timeout_becomes_upstream_error():
    async def _slow(request):
        await asyncio.sleep(2)
        return web.json_response({})

    app = web.Application()
    app.router.add_get("/slow", _slow)
    server = test_utils.TestServer(app)
    await server.start_server()
    client = PublicHttpClient(timeout_seconds=0.2)
    try:
        with pytest.raises(UpstreamError) as exc:
            await client.get_json(str(server.make_url("/slow")), source="binance:spot")
    finally:
        await client.close()
        await server.close()

    assert exc.value.status is None
    assert "timed out" in str(exc.value)
    assert exc.value.source == "binance:spot"
