import asyncio

import pytest

from kercat.channel import EventChannel
from kercat.errors import ChannelError, ErrorKind, ReceiveError
from kercat.events import ConnectionClosedEvent, ErrorEvent, InputEvent, NetworkDataEvent

DEFAULT_TIMEOUT = 1.0


@pytest.mark.asyncio
async def test_arrival_order_across_producers():
    channel = EventChannel()
    sent = [
        InputEvent(b"a"),
        NetworkDataEvent(b"1"),
        NetworkDataEvent(b"2"),
        InputEvent(b"b"),
        ConnectionClosedEvent(),
    ]
    for event in sent:
        await channel.put(event)

    received = [await channel.get() for _ in sent]

    assert received == sent


@pytest.mark.asyncio
async def test_concurrent_producers_interleave():
    channel = EventChannel(maxsize=4)

    async def produce(make, count):
        for i in range(count):
            await channel.put(make(str(i).encode()))
            await asyncio.sleep(0)

    producers = [
        asyncio.ensure_future(produce(InputEvent, 50)),
        asyncio.ensure_future(produce(NetworkDataEvent, 50)),
    ]
    received = [await asyncio.wait_for(channel.get(), DEFAULT_TIMEOUT) for _ in range(100)]
    await asyncio.gather(*producers)

    kinds = [type(event) for event in received]
    assert kinds.count(InputEvent) == 50
    assert kinds.count(NetworkDataEvent) == 50
    # neither side waits for the other to run dry
    assert {InputEvent, NetworkDataEvent} <= set(kinds[:10])
    assert {InputEvent, NetworkDataEvent} <= set(kinds[40:60])


@pytest.mark.asyncio
async def test_bounded_put_waits_for_consumer():
    channel = EventChannel(maxsize=1)
    await channel.put(InputEvent(b"first"))

    blocked = asyncio.ensure_future(channel.put(InputEvent(b"second")))
    await asyncio.sleep(0.05)
    assert not blocked.done()

    assert await channel.get() == InputEvent(b"first")
    await asyncio.wait_for(blocked, DEFAULT_TIMEOUT)
    assert await channel.get() == InputEvent(b"second")


@pytest.mark.asyncio
async def test_put_after_close():
    channel = EventChannel()
    channel.close()

    assert channel.is_closed()
    with pytest.raises(ChannelError) as info:
        await channel.put(InputEvent(b"x"))
    assert info.value.kind is ErrorKind.DISCONNECTED


@pytest.mark.asyncio
async def test_crashed_producer_wakes_waiting_consumer():
    channel = EventChannel()

    async def crash():
        await asyncio.sleep(0.02)
        raise RuntimeError("producer bug")

    channel.watch(asyncio.ensure_future(crash()), "worker")

    with pytest.raises(ChannelError) as info:
        await asyncio.wait_for(channel.get(), DEFAULT_TIMEOUT)
    assert info.value.kind is ErrorKind.CRASHED
    assert "worker" in info.value.detail

    # stays failed
    with pytest.raises(ChannelError):
        await channel.get()


@pytest.mark.asyncio
async def test_orderly_producer_endings_are_not_crashes():
    channel = EventChannel()

    async def finish():
        await channel.put(InputEvent(b"done"))

    async def hit_closed_channel():
        raise ChannelError(ErrorKind.DISCONNECTED, "event channel is closed")

    async def forever():
        await asyncio.Event().wait()

    cancelled = asyncio.ensure_future(forever())
    for name, task in (
        ("finish", asyncio.ensure_future(finish())),
        ("closed", asyncio.ensure_future(hit_closed_channel())),
        ("cancelled", cancelled),
    ):
        channel.watch(task, name)
    await asyncio.sleep(0.02)
    cancelled.cancel()
    await asyncio.sleep(0.02)

    assert await asyncio.wait_for(channel.get(), DEFAULT_TIMEOUT) == InputEvent(b"done")
    late = asyncio.ensure_future(channel.get())
    await asyncio.sleep(0.02)
    assert not late.done()
    late.cancel()
    await asyncio.sleep(0)


def test_error_event_connection_lost():
    assert ErrorEvent(ErrorKind.PEER_CLOSED).connection_lost
    assert ErrorEvent(ErrorKind.BROKEN_PIPE).connection_lost
    assert ErrorEvent(ErrorKind.CONNECTION_RESET).connection_lost
    assert not ErrorEvent(ErrorKind.INPUT_FAILED).connection_lost


def test_error_event_from_error():
    origin = object()
    event = ErrorEvent.from_error(ReceiveError(ErrorKind.CONNECTION_RESET, "reset by peer"), origin)

    assert event.kind is ErrorKind.CONNECTION_RESET
    assert event.detail == "reset by peer"
    assert event.origin is origin
