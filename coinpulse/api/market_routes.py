"""
市场目录 / 市场指标 / 技术分析 API（公开）
"""
import logging
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import get_services
from ..engines import compute_natr14, compute_technical_analysis
from ..exchange import (
    Exchange,
    InvalidMarketIdError,
    MarketId,
    MarketType,
    UpstreamError,
    sort_candles,
)
from .coin_routes import resolve_market

router = APIRouter(tags=["Markets"])
logger = logging.getLogger(__name__)

FUNDING_INTERVAL_SEC = 8 * 60 * 60
METRICS_CANDLE_INTERVAL = "5m"
METRICS_CANDLE_LIMIT = 80

# 仅输入交易对时优先展示 Binance 永续
_VARIANTS: List[Tuple[Exchange, MarketType, str]] = [
    (Exchange.BINANCE, MarketType.PERP, "BI-F"),
    (Exchange.BINANCE, MarketType.SPOT, "BI-S"),
    (Exchange.BYBIT, MarketType.PERP, "BY-F"),
    (Exchange.BYBIT, MarketType.SPOT, "BY-S"),
]


def split_base_quote(symbol: str) -> Tuple[str, str]:
    if symbol.endswith("USDT"):
        return symbol[: -len("USDT")], "USDT"
    if symbol.endswith("USD"):
        return symbol[: -len("USD")], "USD"
    return symbol, ""


def build_market_item(coin_id: int, market: MarketId, contract_tag: str) -> Dict:
    base, quote = split_base_quote(market.symbol)
    type_label = "Perpetual" if market.market_type is MarketType.PERP else "Spot"
    return {
        "marketId": str(market),
        "coinId": coin_id,
        "symbol": market.symbol,
        "base": base,
        "quote": quote,
        "exchange": market.exchange.wire_name,
        "exchangeTag": market.exchange.tag,
        "marketType": type_label,
        "contractTag": contract_tag,
        "wsStreamId": f"{market.exchange.wire_name}.{type_label.lower()}.ticker.{market.symbol.lower()}",
        "pricePrecision": 2,
        "qtyPrecision": 2,
        "tickSize": "0.01",
        "lotSize": "0.01",
        "fundingIntervalSec": FUNDING_INTERVAL_SEC if market.market_type is MarketType.PERP else None,
        "isActive": True,
    }


def _type_filter(value: str) -> Optional[MarketType]:
    """未知类型过滤条件直接忽略"""
    value = (value or "").strip().lower()
    if value == "spot":
        return MarketType.SPOT
    if value in ("perp", "perpetual", "futures"):
        return MarketType.PERP
    return None


def list_market_variants(coins: List[Dict], query: str = "", exchange: str = "", market_type: str = "") -> List[Dict]:
    query = (query or "").strip().upper()
    exchange = (exchange or "").strip().lower()
    wanted_type = _type_filter(market_type)

    out = []
    for coin in coins:
        symbol = (coin["symbol"] or "").strip().upper()
        if not symbol:
            continue
        base, _ = split_base_quote(symbol)
        if query and query not in symbol and query not in base:
            continue

        for ex, mt, contract_tag in _VARIANTS:
            if exchange and exchange not in (ex.wire_name, ex.tag.lower()):
                continue
            if wanted_type is not None and mt is not wanted_type:
                continue
            out.append(build_market_item(coin["id"], MarketId(ex, mt, symbol), contract_tag))
    return out


@router.get("/api/markets")
async def list_markets(
    query: str = Query(""),
    exchange: str = Query(""),
    type: str = Query(""),
    services=Depends(get_services),
):
    coins = await services.coins.list_active_symbols()
    return {"data": list_market_variants(coins, query, exchange, type)}


@router.get("/api/markets/{market_id}/metrics")
async def get_market_metrics(market_id: str, services=Depends(get_services)):
    try:
        market = MarketId.parse(market_id)
    except InvalidMarketIdError:
        raise HTTPException(status_code=400, detail="Invalid marketId")

    source = services.market_source
    try:
        ticker = await source.fetch_ticker(market)
    except UpstreamError as e:
        raise HTTPException(status_code=400, detail=f"Failed to fetch ticker: {e}")
    try:
        candles = await source.fetch_candles(market, METRICS_CANDLE_INTERVAL, METRICS_CANDLE_LIMIT)
    except UpstreamError as e:
        raise HTTPException(status_code=400, detail=f"Failed to fetch candles: {e}")

    candles = sort_candles(candles)
    natr = compute_natr14(
        [c.high for c in candles],
        [c.low for c in candles],
        [c.close for c in candles],
    )
    return {
        "marketId": str(market),
        "price": ticker.price,
        "changeTodayPct": ticker.change_percent,
        "volume24h": ticker.quote_volume,
        "natr5m14": natr,
    }


@router.get("/api/analysis/{symbol}")
async def get_analysis(
    symbol: str,
    interval: str = Query("1h"),
    exchange: str = Query("binance"),
    type: str = Query("spot"),
    limit: int = Query(250),
    endTime: int = Query(0),
    services=Depends(get_services),
):
    """技术指标分析：RSI / MACD / 布林带 / 均线 / 支撑阻力"""
    if limit <= 0:
        limit = 250
    limit = min(limit, 500)
    market = resolve_market(symbol, exchange, type)

    try:
        candles = await services.market_source.fetch_candles(
            market, interval, limit, end_time=endTime if endTime > 0 else None
        )
    except UpstreamError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch candles: {e}")

    candles = sort_candles(candles)
    try:
        analysis = compute_technical_analysis(
            market.symbol,
            interval,
            [c.close for c in candles],
            [c.high for c in candles],
            [c.low for c in candles],
            limit,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return analysis.to_dict()
