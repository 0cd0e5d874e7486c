"""
币种 API（公开）
列表 / 详情 / K 线 / 订单簿
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import get_services
from ..exchange import Exchange, InvalidMarketIdError, MarketId, MarketType, UpstreamError

router = APIRouter(prefix="/api/coins", tags=["Coins"])
logger = logging.getLogger(__name__)


def resolve_exchange(exchange: str) -> Exchange:
    try:
        return Exchange.from_name(exchange or "binance")
    except InvalidMarketIdError as e:
        raise HTTPException(status_code=400, detail=str(e))


def resolve_market(symbol: str, exchange: str, market_type: str = "spot") -> MarketId:
    """由 URL 参数拼出市场标识，非法参数返回 400"""
    try:
        return MarketId(
            Exchange.from_name(exchange or "binance"),
            MarketType.from_name(market_type or "spot"),
            symbol,
        )
    except InvalidMarketIdError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("")
async def list_coins(
    limit: int = Query(50, ge=1),
    page: int = Query(1, ge=1),
    sortBy: str = Query("symbol"),
    sortOrder: str = Query("asc"),
    exchange: str = Query("binance"),
    services=Depends(get_services),
):
    """币种列表，附带缓存中的实时行情"""
    limit = min(limit, 100)
    ex = resolve_exchange(exchange)
    coins, total = await services.coins.list_coins(limit, (page - 1) * limit, sortBy, sortOrder)
    coins = await services.coins.enrich(coins, ex)
    return {
        "data": coins,
        "total": total,
        "page": page,
        "pageSize": limit,
    }


@router.get("/{symbol}")
async def get_coin(
    symbol: str,
    exchange: str = Query("binance"),
    services=Depends(get_services),
):
    ex = resolve_exchange(exchange)
    coin = await services.coins.get_coin_by_symbol(symbol)
    if not coin:
        raise HTTPException(status_code=404, detail="Coin not found")

    enriched = await services.coins.enrich([coin], ex)
    return enriched[0]


@router.get("/{symbol}/candles")
async def get_candles(
    symbol: str,
    interval: str = Query("1h"),
    limit: int = Query(100, ge=1),
    exchange: str = Query("binance"),
    type: str = Query("spot"),
    services=Depends(get_services),
):
    market = resolve_market(symbol, exchange, type)
    limit = min(limit, 500)
    try:
        candles = await services.market_source.fetch_candles(market, interval, limit)
    except UpstreamError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch candles: {e}")

    return {
        "symbol": market.symbol,
        "interval": interval,
        "candles": [c.to_dict() for c in candles],
    }


@router.get("/{symbol}/orderbook")
async def get_orderbook(
    symbol: str,
    limit: int = Query(20, ge=1),
    exchange: str = Query("binance"),
    type: str = Query("spot"),
    services=Depends(get_services),
):
    market = resolve_market(symbol, exchange, type)
    limit = min(limit, 100)
    try:
        book = await services.market_source.fetch_orderbook(market, limit)
    except UpstreamError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch orderbook: {e}")

    return {"symbol": market.symbol, **book.to_dict()}
