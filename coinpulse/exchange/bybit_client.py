"""
Bybit v5 公开行情适配器
category=spot 对应现货，category=linear 对应 USDT 永续
"""
import logging
import time
from typing import List, Optional

from pydantic import ValidationError

from .base_exchange import ExchangeAdapter, UpstreamError
from .market_id import Exchange, MarketType
from .models import (
    BybitEnvelope,
    BybitKlineList,
    BybitOrderbook,
    BybitTickerList,
    Candle,
    OrderBook,
    OrderBookLevel,
    TickerSnapshot,
    to_float,
)

logger = logging.getLogger(__name__)

BYBIT_BASE_URL = "https://api.bybit.com"

_INTERVALS = {
    "1m": "1",
    "5m": "5",
    "15m": "15",
    "30m": "30",
    "1h": "60",
    "4h": "240",
    "1d": "D",
    "1w": "W",
}


def to_bybit_interval(interval: str) -> str:
    """1h -> 60，未知周期按 60 处理"""
    return _INTERVALS.get(interval, "60")


class _BybitAdapter(ExchangeAdapter):
    exchange = Exchange.BYBIT
    category = "spot"

    def __init__(self, http, base_url: str = BYBIT_BASE_URL):
        super().__init__(http, base_url)

    async def _get_result(self, path: str, params: dict) -> dict:
        data = await self.http.get_json(f"{self.base_url}{path}", params=params, source=self.source_name)
        try:
            envelope = BybitEnvelope.model_validate(data)
        except ValidationError:
            raise UpstreamError("unexpected response envelope", source=self.source_name)
        if envelope.ret_code != 0:
            raise UpstreamError(envelope.ret_msg or f"retCode {envelope.ret_code}", source=self.source_name)
        return envelope.result

    def _decode(self, model, result, what: str):
        try:
            return model.model_validate(result)
        except ValidationError as e:
            raise UpstreamError(f"unexpected {what} payload: {e.errors()[0]['msg']}", source=self.source_name)

    async def fetch_ticker(self, symbol: str) -> TickerSnapshot:
        market = self.market(symbol)
        result = await self._get_result(
            "/v5/market/tickers",
            {"category": self.category, "symbol": market.symbol},
        )
        tickers = self._decode(BybitTickerList, result, "ticker")
        if not tickers.list:
            raise UpstreamError(f"no ticker for {market.symbol}", source=self.source_name)
        ticker = tickers.list[0]
        return TickerSnapshot(
            market=market,
            price=ticker.last_price,
            # price24hPcnt 为小数比例
            change_percent=ticker.price_24h_pcnt * 100,
            quote_volume=ticker.turnover_24h,
            timestamp=int(time.time()),
        )

    async def fetch_candles(
        self,
        symbol: str,
        interval: str,
        limit: int,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        params = {
            "category": self.category,
            "symbol": symbol.upper(),
            "interval": to_bybit_interval(interval),
            "limit": limit,
        }
        if end_time and end_time > 0:
            params["end"] = int(end_time) * 1000
        result = await self._get_result("/v5/market/kline", params)
        rows = self._decode(BybitKlineList, result, "kline")

        # Bybit 按时间倒序返回
        candles = []
        for raw in rows.list:
            if len(raw) < 6:
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
        result = await self._get_result(
            "/v5/market/orderbook",
            {"category": self.category, "symbol": symbol.upper(), "limit": limit},
        )
        book = self._decode(BybitOrderbook, result, "orderbook")
        return OrderBook(
            bids=[OrderBookLevel(to_float(p), to_float(q)) for p, q, *_ in book.b],
            asks=[OrderBookLevel(to_float(p), to_float(q)) for p, q, *_ in book.a],
        )


class BybitSpotAdapter(_BybitAdapter):
    market_type = MarketType.SPOT
    category = "spot"


class BybitPerpAdapter(_BybitAdapter):
    market_type = MarketType.PERP
    category = "linear"
