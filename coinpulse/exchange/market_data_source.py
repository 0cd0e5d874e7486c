"""
统一行情数据源
按 (交易所, 市场类型) 分发到对应适配器
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .base_exchange import ExchangeAdapter, MarketDataSource, PublicHttpClient
from .binance_client import (
    BINANCE_FUTURES_BASE_URL,
    BINANCE_SPOT_BASE_URL,
    BinancePerpAdapter,
    BinanceSpotAdapter,
)
from .bybit_client import BYBIT_BASE_URL, BybitPerpAdapter, BybitSpotAdapter
from .market_id import Exchange, MarketId, MarketType
from .models import Candle, OrderBook, TickerSnapshot

logger = logging.getLogger(__name__)


class ExchangeMarketDataSource(MarketDataSource):
    """持有一个共享 HTTP 会话和四个适配器实例"""

    def __init__(
        self,
        adapters: Iterable[ExchangeAdapter],
        http: Optional[PublicHttpClient] = None,
    ):
        self._http = http
        self._adapters: Dict[Tuple[Exchange, MarketType], ExchangeAdapter] = {}
        for adapter in adapters:
            self._adapters[(adapter.exchange, adapter.market_type)] = adapter

    @classmethod
    def create(
        cls,
        timeout_seconds: float = 10.0,
        binance_spot_url: str = BINANCE_SPOT_BASE_URL,
        binance_futures_url: str = BINANCE_FUTURES_BASE_URL,
        bybit_url: str = BYBIT_BASE_URL,
    ) -> "ExchangeMarketDataSource":
        http = PublicHttpClient(timeout_seconds=timeout_seconds)
        adapters = [
            BinanceSpotAdapter(http, binance_spot_url),
            BinancePerpAdapter(http, binance_futures_url),
            BybitSpotAdapter(http, bybit_url),
            BybitPerpAdapter(http, bybit_url),
        ]
        return cls(adapters, http=http)

    def adapter_for(self, market: MarketId) -> ExchangeAdapter:
        adapter = self._adapters.get((market.exchange, market.market_type))
        if adapter is None:
            raise LookupError(f"no adapter registered for {market}")
        return adapter

    async def fetch_ticker(self, market: MarketId) -> TickerSnapshot:
        return await self.adapter_for(market).fetch_ticker(market.symbol)

    async def fetch_candles(
        self,
        market: MarketId,
        interval: str,
        limit: int,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        return await self.adapter_for(market).fetch_candles(market.symbol, interval, limit, end_time)

    async def fetch_orderbook(self, market: MarketId, limit: int) -> OrderBook:
        return await self.adapter_for(market).fetch_orderbook(market.symbol, limit)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.close()
            logger.info("行情 HTTP 会话已关闭")
