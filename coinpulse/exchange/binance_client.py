"""
Binance 公开行情适配器
现货: /api/v3/*   U本位永续: /fapi/v1/*
"""
import logging
import time
from typing import List, Optional

from pydantic import ValidationError

from .base_exchange import ExchangeAdapter, UpstreamError
from .market_id import Exchange, MarketType
from .models import (
    BinanceDepth,
    BinanceTicker24h,
    Candle,
    OrderBook,
    OrderBookLevel,
    TickerSnapshot,
    to_float,
)

logger = logging.getLogger(__name__)

BINANCE_SPOT_BASE_URL = "https://api.binance.com"
BINANCE_FUTURES_BASE_URL = "https://fapi.binance.com"


class _BinanceAdapter(ExchangeAdapter):
    exchange = Exchange.BINANCE
    api_prefix = "/api/v3"

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}{path}"

    async def fetch_ticker(self, symbol: str) -> TickerSnapshot:
        market = self.market(symbol)
        data = await self.http.get_json(
            self._url("/ticker/24hr"),
            params={"symbol": market.symbol},
            source=self.source_name,
        )
        try:
            ticker = BinanceTicker24h.model_validate(data)
        except ValidationError as e:
            raise UpstreamError(f"unexpected ticker payload: {e.errors()[0]['msg']}", source=self.source_name)
        return TickerSnapshot(
            market=market,
            price=ticker.last_price,
            change_percent=ticker.price_change_percent,
            quote_volume=ticker.quote_volume,
            timestamp=int(time.time()),
        )

    async def fetch_candles(
        self,
        symbol: str,
        interval: str,
        limit: int,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        params = {"symbol": symbol.upper(), "interval": interval, "limit": limit}
        if end_time and end_time > 0:
            params["endTime"] = int(end_time) * 1000
        data = await self.http.get_json(self._url("/klines"), params=params, source=self.source_name)
        if not isinstance(data, list):
            raise UpstreamError("unexpected klines payload", source=self.source_name)

        candles = []
        for raw in data:
            if not isinstance(raw, list) or len(raw) < 6:
                continue
            candles.append(
                Candle(
                    time=int(to_float(raw[0])) // 1000,
                    open=to_float(raw[1]),
                    high=to_float(raw[2]),
                    low=to_float(raw[3]),
                    close=to_float(raw[4]),
                    volume=to_float(raw[5]),
                )
            )
        return candles

    async def fetch_orderbook(self, symbol: str, limit: int) -> OrderBook:
        data = await self.http.get_json(
            self._url("/depth"),
            params={"symbol": symbol.upper(), "limit": limit},
            source=self.source_name,
        )
        try:
            depth = BinanceDepth.model_validate(data)
        except ValidationError:
            raise UpstreamError("unexpected depth payload", source=self.source_name)
        return OrderBook(
            bids=[OrderBookLevel(to_float(p), to_float(q)) for p, q, *_ in depth.bids],
            asks=[OrderBookLevel(to_float(p), to_float(q)) for p, q, *_ in depth.asks],
        )


class BinanceSpotAdapter(_BinanceAdapter):
    market_type = MarketType.SPOT
    api_prefix = "/api/v3"

    def __init__(self, http, base_url: str = BINANCE_SPOT_BASE_URL):
        super().__init__(http, base_url)


class BinancePerpAdapter(_BinanceAdapter):
    market_type = MarketType.PERP
    api_prefix = "/fapi/v1"

    def __init__(self, http, base_url: str = BINANCE_FUTURES_BASE_URL):
        super().__init__(http, base_url)
