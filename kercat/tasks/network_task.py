import asyncio
import itertools
import logging
from typing import Optional

from kercat.channel import EventChannel
from kercat.errors import CloseError, ErrorKind, ReceiveError, SendError
from kercat.events import ErrorEvent, NetworkDataEvent
from kercat.tcp.connection import Connection

logger = logging.getLogger(__name__)

# Queued outgoing bytes above which local input is paused.
SEND_HIGH_WATER = 1024 * 1024

_ids = itertools.count(1)


class NetworkTask:
    """
    Serves one Connection: queues received data as NetworkDataEvents and
    writes out data handed to ``send``.

    Receiving and writing run as two separate loops, so a peer that stops
    reading never stops this task from reading what the peer sends. ``send``
    only queues. When more than ``high_water`` bytes are waiting, the
    ``writable`` event is cleared so the producer of outgoing data can pause;
    it is set again once the queue drops below a quarter of that.

    The task owns its Connection. ``stop`` ends both loops, hands data still
    queued to the transport and closes the connection; sends after that fail
    fast with SendError(CLOSED).
    """

    def __init__(
        self,
        connection: Connection,
        channel: EventChannel,
        framed: bool = True,
        writable: Optional[asyncio.Event] = None,
        high_water: int = SEND_HIGH_WATER,
    ):
        self.id = next(_ids)
        self._connection = connection
        self._channel = channel
        self._framed = framed
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._queued = 0
        self._high_water = high_water
        self._low_water = high_water // 4
        self._writable = writable if writable is not None else asyncio.Event()
        self._writable.set()
        self._receiver: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.Task] = None
        self._stopped = False

    def __repr__(self) -> str:
        return f"<NetworkTask #{self.id} peer={self._connection.get_peer_info()}>"

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def writable(self) -> asyncio.Event:
        return self._writable

    @property
    def queued(self) -> int:
        """Bytes accepted by send but not yet taken by the transport."""
        return self._queued

    def start(self) -> None:
        if self._receiver is not None:
            raise RuntimeError("NetworkTask already started")
        self._receiver = asyncio.create_task(self._receive_loop())
        self._writer = asyncio.create_task(self._write_loop())
        self._channel.watch(self._receiver, f"network task #{self.id} receiver")
        self._channel.watch(self._writer, f"network task #{self.id} writer")

    async def _receive_loop(self) -> None:
        receive = self._connection.receive_framed if self._framed else self._connection.receive
        while True:
            try:
                data = await receive()
            except ReceiveError as e:
                logger.info(f"Network task #{self.id} receive ended: {e}")
                await self._channel.put(ErrorEvent.from_error(e, origin=self))
                return
            await self._channel.put(NetworkDataEvent(data, origin=self))

    async def _write_loop(self) -> None:
        while True:
            data = await self._outbox.get()
            try:
                await self._connection.send(data)
            except SendError as e:
                logger.info(f"Network task #{self.id} send failed: {e}")
                await self._channel.put(ErrorEvent.from_error(e, origin=self))
                return
            self._dequeued(len(data))

    def _dequeued(self, size: int) -> None:
        self._queued -= size
        if self._queued <= self._low_water and not self._writable.is_set():
            logger.debug(f"Network task #{self.id} send queue drained to {self._queued} bytes, resuming input")
            self._writable.set()

    async def send(self, data: bytes) -> None:
        """
        Queue ``data`` for the peer. Returns without waiting for the peer to
        read it; a later write failure arrives as an ErrorEvent from this task.

        Raises:
            SendError: CLOSED once the task is stopped or the connection closed
            TypeError: If data is not bytes or bytearray
        """
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError(f"Expected bytes or bytearray, got {type(data).__name__}")
        if self._stopped or self._connection.is_closed():
            raise SendError(ErrorKind.CLOSED, "connection is closed")

        self._outbox.put_nowait(bytes(data))
        self._queued += len(data)
        if self._queued >= self._high_water and self._writable.is_set():
            logger.debug(f"Network task #{self.id} has {self._queued} bytes queued, pausing input")
            self._writable.clear()

    def is_running(self) -> bool:
        return self._receiver is not None and not self._receiver.done()

    async def stop(self) -> None:
        """Stop both loops, flush what is queued and close the connection."""
        self._stopped = True
        for task in (self._receiver, self._writer):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        leftover = []
        while not self._outbox.empty():
            leftover.append(self._outbox.get_nowait())
        if leftover and not self._connection.is_closed():
            try:
                self._connection.write(b"".join(leftover))
            except SendError as e:
                logger.warning(f"Network task #{self.id} dropped {sum(map(len, leftover))} queued bytes: {e}")
        self._queued = 0
        self._writable.set()

        try:
            await self._connection.close()
        except CloseError as e:
            logger.warning(f"Network task #{self.id} close failed: {e}")
