import asyncio
import logging
from typing import Any, Optional

from kercat.channel import EventChannel
from kercat.config import DEFAULT_BUFFER_SIZE
from kercat.errors import ErrorKind
from kercat.events import ConnectionClosedEvent, ErrorEvent, InputEvent

logger = logging.getLogger(__name__)

# Pause after an ignored EOF so an ended stream does not spin the loop.
EOF_RETRY_DELAY = 0.1


class InputTask:
    """
    Reads local input in chunks and queues them as InputEvents.

    The reader is anything with ``async read(n) -> bytes`` returning b"" at end
    of input, such as an asyncio.StreamReader.

    On end of input the task either queues a single ConnectionClosedEvent and
    stops, or, with ``ignore_eof``, keeps reading.

    When ``writable`` is given, each read waits until that event is set. The
    session uses it to hold local input back while the peer is not keeping up.
    """

    def __init__(
        self,
        reader: Any,
        channel: EventChannel,
        chunk_size: int = DEFAULT_BUFFER_SIZE,
        ignore_eof: bool = False,
        eof_retry_delay: float = EOF_RETRY_DELAY,
        writable: Optional[asyncio.Event] = None,
    ):
        self._reader = reader
        self._channel = channel
        self._chunk_size = chunk_size
        self._ignore_eof = ignore_eof
        self._eof_retry_delay = eof_retry_delay
        self._writable = writable
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("InputTask already started")
        self._task = asyncio.create_task(self._read_loop())
        self._channel.watch(self._task, "input task")

    async def _read_loop(self) -> None:
        while True:
            if self._writable is not None:
                await self._writable.wait()
            try:
                data = await self._reader.read(self._chunk_size)
            except OSError as e:
                logger.error(f"Error reading input: {e}")
                await self._channel.put(ErrorEvent(ErrorKind.INPUT_FAILED, str(e)))
                return

            if not data:
                if self._ignore_eof:
                    logger.debug("Ignoring end of input")
                    await asyncio.sleep(self._eof_retry_delay)
                    continue
                logger.info("End of input, closing session")
                await self._channel.put(ConnectionClosedEvent())
                return

            logger.debug(f"Read {len(data)} bytes of input")
            await self._channel.put(InputEvent(bytes(data)))

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait(self) -> None:
        """Wait for the task to finish on its own."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            task, self._task = self._task, None
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
