"""
行情数据源抽象
ExchangeAdapter: 单个 (交易所, 市场类型) 的公开行情接口
MarketDataSource: 对上层暴露的统一能力，按 MarketId 分发
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp.resolver import ThreadedResolver

from .market_id import Exchange, MarketId, MarketType
from .models import Candle, OrderBook, TickerSnapshot

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """交易所 / 第三方 HTTP 调用失败"""

    def __init__(self, message: str, status: Optional[int] = None, source: str = ""):
        super().__init__(message)
        self.message = message
        self.status = status
        self.source = source

    def __str__(self) -> str:
        prefix = f"{self.source}: " if self.source else ""
        if self.status is not None:
            return f"{prefix}{self.message} (HTTP {self.status})"
        return f"{prefix}{self.message}"


class PublicHttpClient:
    """
    公开 REST 接口的共享 HTTP 客户端
    单个 ClientSession 懒加载创建，超时必须有界
    """

    def __init__(self, timeout_seconds: float = 10.0):
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # 使用线程 DNS 解析，避免 aiodns 在部分环境下失败
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(resolver=ThreadedResolver(), ttl_dns_cache=300),
                timeout=self._timeout,
            )
        return self._session

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None, source: str = "") -> Any:
        session = self._get_session()
        try:
            async with session.get(url, params=params) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    text = await resp.text()
                    raise UpstreamError(f"invalid JSON response: {text[:200]}", resp.status, source)
                if resp.status != 200:
                    message = _extract_error_message(data) or resp.reason or "request failed"
                    raise UpstreamError(message, resp.status, source)
                return data
        except aiohttp.ClientError as e:
            raise UpstreamError(str(e) or e.__class__.__name__, None, source) from e
        except asyncio.TimeoutError as e:
            raise UpstreamError("request timed out", None, source) from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


def _extract_error_message(data: Any) -> str:
    if isinstance(data, dict):
        for key in ("msg", "retMsg", "message"):
            value = data.get(key)
            if value:
                return str(value)
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or "")
        if error:
            return str(error)
    return ""


class ExchangeAdapter(ABC):
    """单个市场变体的公开行情接口，无状态"""

    exchange: Exchange
    market_type: MarketType

    def __init__(self, http: PublicHttpClient, base_url: str):
        self.http = http
        self.base_url = base_url.rstrip("/")

    @property
    def source_name(self) -> str:
        return f"{self.exchange.wire_name}:{self.market_type.wire_name}"

    def market(self, symbol: str) -> MarketId:
        return MarketId(self.exchange, self.market_type, symbol)

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> TickerSnapshot:
        """24h 行情快照"""

    @abstractmethod
    async def fetch_candles(
        self,
        symbol: str,
        interval: str,
        limit: int,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        """K线，end_time 为秒级时间戳；返回顺序不保证"""

    @abstractmethod
    async def fetch_orderbook(self, symbol: str, limit: int) -> OrderBook:
        """订单簿深度"""


class MarketDataSource(ABC):
    """行情能力：上层只依赖这个接口"""

    @abstractmethod
    async def fetch_ticker(self, market: MarketId) -> TickerSnapshot:
        pass

    @abstractmethod
    async def fetch_candles(
        self,
        market: MarketId,
        interval: str,
        limit: int,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        pass

    @abstractmethod
    async def fetch_orderbook(self, market: MarketId, limit: int) -> OrderBook:
        pass

    async def close(self) -> None:
        return None
