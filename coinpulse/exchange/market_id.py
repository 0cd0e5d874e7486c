"""
市场标识编解码
格式: <交易所标签>:<市场类型标签>:<交易对>，例如 BI:SPOT:BTCUSDT
"""
from dataclasses import dataclass
from enum import Enum


class InvalidMarketIdError(ValueError):
    """市场标识无法解析（标签未知或段数不对）"""


class Exchange(Enum):
    BINANCE = ("BI", "binance")
    BYBIT = ("BY", "bybit")

    def __init__(self, tag: str, wire_name: str):
        self.tag = tag
        self.wire_name = wire_name

    @classmethod
    def from_tag(cls, tag: str) -> "Exchange":
        tag = (tag or "").strip().upper()
        for item in cls:
            if item.tag == tag:
                return item
        raise InvalidMarketIdError(f"unknown exchange tag: {tag!r}")

    @classmethod
    def from_name(cls, name: str) -> "Exchange":
        """按名称或标签查找（binance / BI）"""
        value = (name or "").strip()
        for item in cls:
            if item.wire_name == value.lower() or item.tag == value.upper():
                return item
        raise InvalidMarketIdError(f"unknown exchange: {name!r}")


class MarketType(Enum):
    SPOT = ("SPOT", "spot")
    PERP = ("PERP", "perp")

    def __init__(self, tag: str, wire_name: str):
        self.tag = tag
        self.wire_name = wire_name

    @classmethod
    def from_tag(cls, tag: str) -> "MarketType":
        tag = (tag or "").strip().upper()
        for item in cls:
            if item.tag == tag:
                return item
        raise InvalidMarketIdError(f"unknown market type tag: {tag!r}")

    @classmethod
    def from_name(cls, name: str) -> "MarketType":
        value = (name or "").strip().lower()
        if value in {"spot"}:
            return cls.SPOT
        if value in {"perp", "perpetual", "futures", "future", "linear"}:
            return cls.PERP
        raise InvalidMarketIdError(f"unknown market type: {name!r}")


@dataclass(frozen=True)
class MarketId:
    """(交易所, 市场类型, 交易对) 三元组，交易对始终为大写"""

    exchange: Exchange
    market_type: MarketType
    symbol: str

    def __post_init__(self):
        symbol = (self.symbol or "").strip().upper()
        if not symbol:
            raise InvalidMarketIdError("empty symbol")
        object.__setattr__(self, "symbol", symbol)

    def __str__(self) -> str:
        return build_market_id(self.exchange, self.market_type, self.symbol)

    @classmethod
    def parse(cls, text: str) -> "MarketId":
        return parse_market_id(text)

    @classmethod
    def from_subscription(cls, text: str) -> "MarketId":
        return normalize_subscription(text)


def build_market_id(exchange: Exchange, market_type: MarketType, symbol: str) -> str:
    return f"{exchange.tag}:{market_type.tag}:{symbol.strip().upper()}"


def parse_market_id(text: str) -> MarketId:
    parts = (text or "").strip().split(":")
    if len(parts) != 3:
        raise InvalidMarketIdError(f"invalid market id: {text!r}")
    exchange = Exchange.from_tag(parts[0])
    market_type = MarketType.from_tag(parts[1])
    return MarketId(exchange, market_type, parts[2])


def normalize_subscription(text: str) -> MarketId:
    """订阅项归一化：裸交易对兼容为 BI:SPOT:<SYMBOL>"""
    value = (text or "").strip()
    if not value:
        raise InvalidMarketIdError("empty market id")
    if ":" not in value:
        return MarketId(Exchange.BINANCE, MarketType.SPOT, value)
    return parse_market_id(value)
