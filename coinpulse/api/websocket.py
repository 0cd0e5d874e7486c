"""
WebSocket 实时行情推送
客户端发送 {"type": "subscribe", "markets": ["BI:SPOT:BTCUSDT", ...]} 订阅
每个连接一个读循环 + 一个写循环，任一退出即注销连接并关闭传输
"""
import asyncio
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..exchange.market_id import InvalidMarketIdError, MarketId
from ..services.subscription_hub import Connection, SubscriptionHub

router = APIRouter()
logger = logging.getLogger(__name__)

HEARTBEAT_MESSAGE = json.dumps({"type": "heartbeat"})


def parse_markets(items) -> List[MarketId]:
    """逐项解析订阅标识，空串和非法项直接跳过"""
    markets = []
    if not isinstance(items, list):
        return markets
    for item in items:
        if not isinstance(item, str) or not item.strip():
            continue
        try:
            markets.append(MarketId.from_subscription(item))
        except InvalidMarketIdError:
            logger.debug(f"忽略非法订阅标识: {item!r}")
    return markets


class ConnectionEndpoint:
    """单个 WebSocket 会话：注册到 hub，驱动读写两个循环"""

    def __init__(
        self,
        websocket: WebSocket,
        hub: SubscriptionHub,
        keepalive_interval: float = 30.0,
        queue_size: int = 256,
    ):
        self.websocket = websocket
        self.hub = hub
        self.keepalive_interval = keepalive_interval
        self.connection = Connection(queue_size=queue_size)

    async def run(self) -> None:
        await self.websocket.accept()
        await self.hub.register(self.connection)

        reader = asyncio.create_task(self._read_loop())
        writer = asyncio.create_task(self._write_loop())
        try:
            done, pending = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                exc = task.exception()
                if exc is not None:
                    logger.debug(f"WebSocket 循环退出 {self.connection.id}: {exc!r}")
        finally:
            reader.cancel()
            writer.cancel()
            await self.hub.unregister(self.connection)
            await self._close_transport()

    async def _close_transport(self) -> None:
        try:
            await self.websocket.close()
        except (RuntimeError, WebSocketDisconnect):
            # 对端已断开或已关闭
            pass

    async def _read_loop(self) -> None:
        while True:
            try:
                text = await self.websocket.receive_text()
            except WebSocketDisconnect:
                return
            await self.handle_message(text)

    async def _write_loop(self) -> None:
        while True:
            try:
                payload = await self.connection.next_message(timeout=self.keepalive_interval)
            except asyncio.TimeoutError:
                payload = HEARTBEAT_MESSAGE
            else:
                if payload is None:
                    # 出站队列已关闭
                    return
            await self.websocket.send_text(payload)

    async def handle_message(self, text: str) -> Optional[str]:
        """应用一条订阅消息，返回实际执行的动作；无法解析的消息静默忽略"""
        try:
            msg = json.loads(text)
        except ValueError:
            return None
        if not isinstance(msg, dict):
            return None

        action = msg.get("type")
        if action not in ("subscribe", "unsubscribe"):
            return None

        items = msg.get("markets")
        if not items:
            items = msg.get("symbols")
        markets = parse_markets(items)
        if not markets:
            return None

        if action == "subscribe":
            await self.connection.subscribe(markets)
        else:
            await self.connection.unsubscribe(markets)
        logger.debug(f"{self.connection.id} {action}: {', '.join(str(m) for m in markets)}")
        return action


@router.websocket("/ws")
async def websocket_markets(websocket: WebSocket):
    """行情订阅端点"""
    services = websocket.app.state.services
    settings = services.settings
    endpoint = ConnectionEndpoint(
        websocket,
        services.hub,
        keepalive_interval=settings.WS_KEEPALIVE_INTERVAL,
        queue_size=settings.STREAM_SEND_QUEUE_SIZE,
    )
    await endpoint.run()
