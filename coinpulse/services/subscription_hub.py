"""
WebSocket 订阅中心
管理所有在线连接及每个连接订阅的市场集合
"""
import asyncio
import logging
import uuid
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..exchange.market_id import MarketId

logger = logging.getLogger(__name__)

DEFAULT_SEND_QUEUE_SIZE = 256


class Connection:
    """
    单个传输会话
    出站队列有界；订阅集合由连接自己的锁保护，和 hub 的锁互不影响
    """

    def __init__(self, conn_id: Optional[str] = None, queue_size: int = DEFAULT_SEND_QUEUE_SIZE):
        self.id = conn_id or uuid.uuid4().hex
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))
        self._subscriptions: Set[MarketId] = set()
        self._sub_lock = asyncio.Lock()
        self._closed = False
        self.dropped = 0

    def __repr__(self) -> str:
        return f"Connection({self.id})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ============================================
    # 订阅集合
    # ============================================

    async def subscribe(self, markets: Iterable[MarketId]) -> None:
        async with self._sub_lock:
            self._subscriptions.update(markets)

    async def unsubscribe(self, markets: Iterable[MarketId]) -> None:
        async with self._sub_lock:
            self._subscriptions.difference_update(markets)

    async def subscriptions(self) -> FrozenSet[MarketId]:
        """当前订阅集合的快照"""
        async with self._sub_lock:
            return frozenset(self._subscriptions)

    # ============================================
    # 出站队列
    # ============================================

    def try_send(self, payload: str) -> bool:
        """非阻塞投递；队列已满或已关闭时丢弃并返回 False"""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def next_message(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        写循环取下一条消息
        超时抛 asyncio.TimeoutError；队列关闭后返回 None
        """
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def close(self) -> None:
        """关闭出站队列，每个连接只允许调用一次"""
        if self._closed:
            raise RuntimeError(f"outbound queue of {self.id} already closed")
        self._closed = True
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        # 唤醒写循环
        self._queue.put_nowait(None)


class SubscriptionHub:
    """连接注册表：注册 / 注销 / 广播迭代共用一把锁"""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    async def register(self, conn: Connection) -> None:
        async with self._lock:
            if conn.id in self._connections or conn.closed:
                raise RuntimeError(f"{conn!r} registered twice")
            self._connections[conn.id] = conn
            total = len(self._connections)
        logger.info(f"WebSocket 客户端已连接: {conn.id} | Total: {total}")

    async def unregister(self, conn: Connection) -> bool:
        """移除连接并关闭其出站队列；重复注销为空操作"""
        async with self._lock:
            removed = self._connections.pop(conn.id, None)
            if removed is None:
                return False
            removed.close()
            total = len(self._connections)
        logger.info(f"WebSocket 客户端已断开: {conn.id} | Total: {total}")
        return True

    async def connections(self) -> List[Connection]:
        async with self._lock:
            return list(self._connections.values())

    async def subscription_snapshot(self) -> List[Tuple[Connection, FrozenSet[MarketId]]]:
        """每个连接及其订阅集合的快照，供推送循环使用"""
        result = []
        for conn in await self.connections():
            subs = await conn.subscriptions()
            if subs:
                result.append((conn, subs))
        return result

    async def broadcast(self, payload: str) -> int:
        """向所有连接投递同一条消息，返回成功投递数"""
        delivered = 0
        async with self._lock:
            for conn in self._connections.values():
                if conn.try_send(payload):
                    delivered += 1
        return delivered
