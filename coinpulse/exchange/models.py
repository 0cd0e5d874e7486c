"""
交易所响应的类型化记录
所有原始 JSON 只在适配器边界解码一次，之后只流转下面这些结构
"""
from dataclasses import dataclass, field
from typing import Annotated, Any, List

from pydantic import BaseModel, BeforeValidator, Field

from .market_id import MarketId


# ============================================
# 统一记录
# ============================================

@dataclass(frozen=True)
class TickerSnapshot:
    market: MarketId
    price: float
    change_percent: float
    quote_volume: float
    timestamp: int

    def to_message(self) -> dict:
        """WebSocket 推送消息体"""
        return {
            "type": "ticker",
            "marketId": str(self.market),
            "symbol": self.market.symbol,
            "exchange": self.market.exchange.wire_name,
            "marketType": self.market.market_type.wire_name,
            "price": self.price,
            "change24h": self.change_percent,
            "volume24h": self.quote_volume,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Candle:
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class OrderBookLevel:
    price: float
    quantity: float


@dataclass
class OrderBook:
    bids: List[OrderBookLevel] = field(default_factory=list)
    asks: List[OrderBookLevel] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "bids": [[b.price, b.quantity] for b in self.bids],
            "asks": [[a.price, a.quantity] for a in self.asks],
        }


def to_float(value: Any) -> float:
    """交易所数值多为字符串，解析失败按 0 处理"""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


LenientFloat = Annotated[float, BeforeValidator(to_float)]


def sort_candles(rows: List[Candle]) -> List[Candle]:
    """按时间升序排序（交易所可能返回倒序）"""
    return sorted(rows, key=lambda c: c.time)


# ============================================
# Binance 原始结构
# ============================================

class BinanceTicker24h(BaseModel):
    symbol: str = ""
    last_price: LenientFloat = Field(default=0.0, alias="lastPrice")
    price_change_percent: LenientFloat = Field(default=0.0, alias="priceChangePercent")
    quote_volume: LenientFloat = Field(default=0.0, alias="quoteVolume")


class BinanceDepth(BaseModel):
    bids: List[List[str]] = Field(default_factory=list)
    asks: List[List[str]] = Field(default_factory=list)


# ============================================
# Bybit 原始结构 (v5)
# ============================================

class BybitTicker(BaseModel):
    symbol: str = ""
    last_price: LenientFloat = Field(default=0.0, alias="lastPrice")
    price_24h_pcnt: LenientFloat = Field(default=0.0, alias="price24hPcnt")
    turnover_24h: LenientFloat = Field(default=0.0, alias="turnover24h")


class BybitTickerList(BaseModel):
    list: List[BybitTicker] = Field(default_factory=list)


class BybitKlineList(BaseModel):
    list: List[List[str]] = Field(default_factory=list)


class BybitOrderbook(BaseModel):
    b: List[List[str]] = Field(default_factory=list)
    a: List[List[str]] = Field(default_factory=list)


class BybitEnvelope(BaseModel):
    ret_code: int = Field(default=0, alias="retCode")
    ret_msg: str = Field(default="", alias="retMsg")
    result: dict = Field(default_factory=dict)
