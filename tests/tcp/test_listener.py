import asyncio
import socket

import pytest

from kercat.address.resolver import CandidateAddress
from kercat.errors import ErrorKind, ListenError
from kercat.tcp.connection import Listener
from tests.helpers.peers import connect_when_ready


def loopback(port: int) -> CandidateAddress:
    return CandidateAddress("127.0.0.1", port, socket.AF_INET)


@pytest.mark.asyncio
async def test_listener_accepts_peers_in_turn():
    listener = await Listener.bind(loopback(0))
    _host, port = listener.get_address()
    try:
        peers = []
        for expected in (b"first\n", b"second\n"):
            reader, writer = await connect_when_ready("127.0.0.1", port)
            peers.append(writer)
            writer.write(expected)
            await writer.drain()

            connection = await asyncio.wait_for(listener.accept(), 2.0)
            assert await asyncio.wait_for(connection.receive_framed(), 2.0) == expected
            await connection.close()
    finally:
        listener.close()
        for writer in peers:
            writer.close()


@pytest.mark.asyncio
async def test_bind_conflict():
    first = await Listener.bind(loopback(0))
    _host, port = first.get_address()
    try:
        with pytest.raises(ListenError) as info:
            await Listener.bind(loopback(port))
        assert info.value.kind is ErrorKind.BIND_FAILED
    finally:
        first.close()


@pytest.mark.asyncio
async def test_bind_unassigned_address():
    with pytest.raises(ListenError) as info:
        await Listener.bind(CandidateAddress("192.0.2.1", 0, socket.AF_INET))

    assert info.value.kind is ErrorKind.BIND_FAILED


@pytest.mark.asyncio
async def test_accept_after_close():
    listener = await Listener.bind(loopback(0))
    listener.close()
    listener.close()
    assert listener.is_closed()

    with pytest.raises(ListenError) as info:
        await listener.accept()

    assert info.value.kind is ErrorKind.ACCEPT_FAILED
