"""
行情缓存 (Redis)
Key: market:{exchange}:{type}:{symbol}   Type: String(JSON)   TTL: 5 seconds
"""
import json
import logging
from typing import Optional

from ..exchange.base_exchange import MarketDataSource
from ..exchange.market_id import MarketId
from ..exchange.models import TickerSnapshot

logger = logging.getLogger(__name__)


def cache_key(market: MarketId) -> str:
    return f"market:{market.exchange.wire_name}:{market.market_type.wire_name}:{market.symbol}"


class MarketDataCache:
    def __init__(self, redis_client, ttl_seconds: int = 5):
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds

    async def get_ticker(self, market: MarketId) -> Optional[TickerSnapshot]:
        """缓存读取失败按未命中处理"""
        try:
            raw = await self._redis.get(cache_key(market))
        except Exception as e:
            logger.warning(f"读取行情缓存失败 {market}: {e}")
            return None
        if not raw:
            return None
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        try:
            data = json.loads(raw)
            return TickerSnapshot(
                market=market,
                price=float(data["price"]),
                change_percent=float(data["change24h"]),
                quote_volume=float(data["volume24h"]),
                timestamp=int(data["timestamp"]),
            )
        except (ValueError, KeyError, TypeError):
            return None

    async def set_ticker(self, ticker: TickerSnapshot, ttl: Optional[int] = None) -> None:
        payload = json.dumps({
            "price": ticker.price,
            "change24h": ticker.change_percent,
            "volume24h": ticker.quote_volume,
            "timestamp": ticker.timestamp,
        })
        try:
            await self._redis.set(cache_key(ticker.market), payload, ex=ttl or self.ttl_seconds)
        except Exception as e:
            logger.warning(f"写入行情缓存失败 {ticker.market}: {e}")


class CachedTickerReader:
    """REST 层读取行情：先读缓存，未命中再请求交易所并回写"""

    def __init__(self, cache: MarketDataCache, source: MarketDataSource):
        self.cache = cache
        self.source = source

    async def get_ticker(self, market: MarketId) -> TickerSnapshot:
        cached = await self.cache.get_ticker(market)
        if cached is not None:
            return cached
        ticker = await self.source.fetch_ticker(market)
        await self.cache.set_ticker(ticker)
        return ticker
