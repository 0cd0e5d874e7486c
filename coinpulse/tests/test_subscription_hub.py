import asyncio

import pytest

from coinpulse.exchange import MarketId
from coinpulse.services.subscription_hub import Connection, SubscriptionHub

BTC = MarketId.parse("BI:SPOT:BTCUSDT")
ETH = MarketId.parse("BY:PERP:ETHUSDT")


@pytest.mark.asyncio
async def test_register_and_unregister_exactly_once():
    hub = SubscriptionHub()
    conn = Connection()

    await hub.register(conn)
    assert len(hub) == 1
    with pytest.raises(RuntimeError):
        await hub.register(conn)

    assert await hub.unregister(conn) is True
    assert conn.closed
    assert len(hub) == 0
    # 重复注销不会再次关闭队列
    assert await hub.unregister(conn) is False


def test_double_close_is_a_programming_error():
    conn = Connection()
    conn.close()
    with pytest.raises(RuntimeError):
        conn.close()


@pytest.mark.asyncio
async def test_subscription_set_mutations():
    conn = Connection()
    await conn.subscribe([BTC, ETH, BTC])
    assert await conn.subscriptions() == frozenset({BTC, ETH})

    await conn.unsubscribe([MarketId.from_subscription("bi:spot:btcusdt")])
    assert await conn.subscriptions() == frozenset({ETH})


@pytest.mark.asyncio
async def test_snapshot_skips_connections_without_subscriptions():
    hub = SubscriptionHub()
    a, b = Connection("a"), Connection("b")
    await hub.register(a)
    await hub.register(b)
    await a.subscribe([BTC])

    snapshot = await hub.subscription_snapshot()

    assert snapshot == [(a, frozenset({BTC}))]


@pytest.mark.asyncio
async def test_snapshot_is_isolated_from_later_mutation():
    conn = Connection()
    await conn.subscribe([BTC])
    snap = await conn.subscriptions()
    await conn.subscribe([ETH])
    assert snap == frozenset({BTC})


def test_try_send_drops_when_full():
    conn = Connection(queue_size=2)
    assert conn.try_send("1")
    assert conn.try_send("2")
    assert conn.try_send("3") is False
    assert conn.dropped == 1
    assert conn.pending == 2


@pytest.mark.asyncio
async def test_close_wakes_writer_with_sentinel():
    conn = Connection()
    conn.try_send("pending")
    waiter = asyncio.create_task(conn.next_message())
    await asyncio.sleep(0)
    conn.close()
    # 关闭时丢弃未发送的消息，只留下结束标记
    assert await waiter in ("pending", None)
    assert conn.try_send("late") is False


@pytest.mark.asyncio
async def test_next_message_times_out():
    conn = Connection()
    with pytest.raises(asyncio.TimeoutError):
        await conn.next_message(timeout=0.01)


@pytest.mark.asyncio
async def test_broadcast_counts_delivered():
    hub = SubscriptionHub()
    a, b = Connection(queue_size=1), Connection(queue_size=1)
    await hub.register(a)
    await hub.register(b)
    b.try_send("fill")

    assert await hub.broadcast("hello") == 1
    assert await a.next_message() == "hello"
