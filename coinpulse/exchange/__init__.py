# 交易所行情模块
from .base_exchange import ExchangeAdapter, MarketDataSource, PublicHttpClient, UpstreamError
from .market_data_source import ExchangeMarketDataSource
from .market_id import (
    Exchange,
    InvalidMarketIdError,
    MarketId,
    MarketType,
    build_market_id,
    normalize_subscription,
    parse_market_id,
)
from .models import Candle, OrderBook, OrderBookLevel, TickerSnapshot, sort_candles

__all__ = [
    'Candle',
    'Exchange',
    'ExchangeAdapter',
    'ExchangeMarketDataSource',
    'InvalidMarketIdError',
    'MarketDataSource',
    'MarketId',
    'MarketType',
    'OrderBook',
    'OrderBookLevel',
    'PublicHttpClient',
    'TickerSnapshot',
    'UpstreamError',
    'build_market_id',
    'normalize_subscription',
    'parse_market_id',
    'sort_candles',
]
