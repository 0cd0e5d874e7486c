import asyncio
import json

import pytest
from fastapi import WebSocketDisconnect

from coinpulse.api.websocket import ConnectionEndpoint, parse_markets
from coinpulse.exchange import MarketId
from coinpulse.services.subscription_hub import SubscriptionHub


class _FakeWebSocket:
    def __init__(self, fail_send=False):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.sent = []
        self.accepted = False
        self.closed = False
        self.fail_send = fail_send

    async def accept(self):
        self.accepted = True

    async def receive_text(self):
        item = await self.inbound.get()
        if item is None:
            raise WebSocketDisconnect(code=1000)
        return item

    async def send_text(self, data):
        if self.fail_send:
            raise RuntimeError("transport closed")
        self.sent.append(data)

    async def close(self, code=1000):
        self.closed = True


async def _wait_until(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def test_parse_markets_skips_invalid_items():
    markets = parse_markets(["btcusdt", "", "  ", "XX:SPOT:BTC", 5, "BY:PERP:ethusdt"])
    assert [str(m) for m in markets] == ["BI:SPOT:BTCUSDT", "BY:PERP:ETHUSDT"]
    assert parse_markets("BTCUSDT") == []


@pytest.mark.asyncio
async def test_handle_message_subscribe_and_unsubscribe():
    endpoint = ConnectionEndpoint(_FakeWebSocket(), SubscriptionHub())

    assert await endpoint.handle_message(json.dumps({"type": "subscribe", "markets": ["BTCUSDT"]})) == "subscribe"
    assert await endpoint.connection.subscriptions() == frozenset({MarketId.parse("BI:SPOT:BTCUSDT")})

    assert await endpoint.handle_message(json.dumps({"type": "unsubscribe", "markets": ["bi:spot:btcusdt"]})) == "unsubscribe"
    assert await endpoint.connection.subscriptions() == frozenset()


@pytest.mark.asyncio
async def test_handle_message_falls_back_to_symbols():
    endpoint = ConnectionEndpoint(_FakeWebSocket(), SubscriptionHub())
    await endpoint.handle_message(json.dumps({"type": "subscribe", "symbols": ["ethusdt"]}))
    assert await endpoint.connection.subscriptions() == frozenset({MarketId.parse("BI:SPOT:ETHUSDT")})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text",
    ["not json", "[1, 2]", json.dumps({"type": "ping"}), json.dumps({"type": "subscribe", "markets": ["XX:Y:Z"]})],
)
async def test_malformed_messages_are_ignored(text):
    endpoint = ConnectionEndpoint(_FakeWebSocket(), SubscriptionHub())
    assert await endpoint.handle_message(text) is None
    assert await endpoint.connection.subscriptions() == frozenset()


@pytest.mark.asyncio
async def test_run_delivers_queued_payloads_and_unregisters_on_disconnect():
    hub = SubscriptionHub()
    ws = _FakeWebSocket()
    endpoint = ConnectionEndpoint(ws, hub, keepalive_interval=5)
    task = asyncio.create_task(endpoint.run())

    await _wait_until(lambda: len(hub) == 1)
    assert ws.accepted
    ws.inbound.put_nowait(json.dumps({"type": "subscribe", "markets": ["BI:SPOT:BTCUSDT"]}))
    await _wait_until(lambda: bool(endpoint.connection._subscriptions))

    endpoint.connection.try_send('{"type": "ticker"}')
    await _wait_until(lambda: ws.sent)
    assert ws.sent == ['{"type": "ticker"}']

    ws.inbound.put_nowait(None)
    await asyncio.wait_for(task, timeout=1)

    assert len(hub) == 0
    assert endpoint.connection.closed
    assert ws.closed


@pytest.mark.asyncio
async def test_writer_sends_heartbeat_on_idle():
    hub = SubscriptionHub()
    ws = _FakeWebSocket()
    endpoint = ConnectionEndpoint(ws, hub, keepalive_interval=0.02)
    task = asyncio.create_task(endpoint.run())

    await _wait_until(lambda: ws.sent)
    assert json.loads(ws.sent[0]) == {"type": "heartbeat"}

    ws.inbound.put_nowait(None)
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_send_failure_terminates_connection():
    hub = SubscriptionHub()
    ws = _FakeWebSocket(fail_send=True)
    endpoint = ConnectionEndpoint(ws, hub, keepalive_interval=0.01)

    await asyncio.wait_for(endpoint.run(), timeout=1)

    assert len(hub) == 0
    assert endpoint.connection.closed
    assert ws.closed
