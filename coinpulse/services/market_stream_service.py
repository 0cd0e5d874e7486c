"""
实时行情推送服务
每个 tick: 合并所有连接的订阅 -> 每个市场最多拉取一次 -> 只投递给订阅了该市场的连接
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..exchange.base_exchange import MarketDataSource
from ..exchange.market_id import MarketId
from .subscription_hub import Connection, SubscriptionHub

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    markets: int = 0
    fetched: int = 0
    delivered: int = 0
    dropped: int = 0
    duration: float = 0.0


class MarketDataStreamer:
    def __init__(
        self,
        hub: SubscriptionHub,
        source: MarketDataSource,
        tick_interval: float = 0.25,
        fetch_concurrency: int = 10,
        fetch_timeout: Optional[float] = 0.2,
    ):
        self.hub = hub
        self.source = source
        self.tick_interval = max(0.01, float(tick_interval))
        self.fetch_concurrency = max(1, int(fetch_concurrency))
        self.fetch_timeout = fetch_timeout
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._last_summary_ts: float = 0.0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"行情推送已启动 | tick={self.tick_interval}s concurrency={self.fetch_concurrency} "
            f"fetch_timeout={self.fetch_timeout}s"
        )

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                result = await self.tick()
                self._maybe_log_summary(result)
            except Exception as e:
                # hub 或数据源的共享故障只影响本轮
                logger.error(f"行情推送 tick 失败: {e}", exc_info=True)

            remaining = self.tick_interval - (time.monotonic() - started)
            if remaining <= 0:
                # 上游限流时允许降速，但仍然让出事件循环
                await asyncio.sleep(0)
                continue
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    async def tick(self) -> TickResult:
        """执行一轮：快照 -> 合并 -> 拉取 -> 投递"""
        started = time.monotonic()
        snapshot = await self.hub.subscription_snapshot()
        working_set = self._union(subs for _, subs in snapshot)
        result = TickResult(markets=len(working_set))
        if not working_set:
            return result

        payloads = await self._fetch_all(working_set)
        result.fetched = len(payloads)
        result.delivered, result.dropped = self._deliver(snapshot, payloads)
        result.duration = time.monotonic() - started
        return result

    @staticmethod
    def _union(subscription_sets: Iterable[FrozenSet[MarketId]]) -> Set[MarketId]:
        working_set: Set[MarketId] = set()
        for subs in subscription_sets:
            working_set.update(subs)
        return working_set

    async def _fetch_all(self, markets: Iterable[MarketId]) -> Dict[MarketId, str]:
        """并发拉取，每个市场一次；全部完成后才返回"""
        semaphore = asyncio.Semaphore(self.fetch_concurrency)
        payloads: Dict[MarketId, str] = {}

        async def _fetch_one(market: MarketId) -> None:
            async with semaphore:
                try:
                    if self.fetch_timeout:
                        ticker = await asyncio.wait_for(self.source.fetch_ticker(market), timeout=self.fetch_timeout)
                    else:
                        ticker = await self.source.fetch_ticker(market)
                    payload = json.dumps(ticker.to_message())
                except asyncio.TimeoutError:
                    logger.warning(f"行情拉取超时: {market} (>{self.fetch_timeout}s)")
                    return
                except Exception as e:
                    logger.warning(f"行情拉取失败: {market}: {e}")
                    return
            payloads[market] = payload

        await asyncio.gather(*[_fetch_one(m) for m in markets])
        return payloads

    @staticmethod
    def _deliver(
        snapshot: List[Tuple[Connection, FrozenSet[MarketId]]],
        payloads: Dict[MarketId, str],
    ) -> Tuple[int, int]:
        delivered = 0
        dropped = 0
        for conn, subs in snapshot:
            for market in subs:
                payload = payloads.get(market)
                if payload is None:
                    continue
                if conn.try_send(payload):
                    delivered += 1
                else:
                    dropped += 1
                    logger.debug(f"消息丢弃: {conn.id} {market} (queue full or closed)")
        return delivered, dropped

    def _maybe_log_summary(self, result: TickResult) -> None:
        now = time.time()
        if result.markets == 0 or now - self._last_summary_ts < 60:
            return
        self._last_summary_ts = now
        logger.info(
            f"行情推送 | markets={result.markets} fetched={result.fetched} "
            f"delivered={result.delivered} dropped={result.dropped} took={result.duration * 1000:.0f}ms"
        )
