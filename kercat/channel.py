import asyncio
import logging
from typing import Optional

from kercat.config import DEFAULT_CHANNEL_SIZE
from kercat.errors import ChannelError, ErrorKind
from kercat.events import SessionEvent

logger = logging.getLogger(__name__)


class EventChannel:
    """
    Many producer, single consumer queue of session events.

    Events come out in the order they were put, whichever producer put them.
    The queue is bounded, so a producer that gets ahead of the consumer is
    suspended in ``put`` until space frees up.

    Producer tasks registered with ``watch`` are supervised: if one of them dies
    with an unexpected exception, the consumer's next ``get`` raises
    ChannelError(CRASHED).
    """

    def __init__(self, maxsize: int = DEFAULT_CHANNEL_SIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._closed = False
        self._failure: Optional[ChannelError] = None
        self._failed = asyncio.Event()

    async def put(self, event: SessionEvent) -> None:
        if self._closed:
            raise ChannelError(ErrorKind.DISCONNECTED, "event channel is closed")
        await self._queue.put(event)

    async def get(self) -> SessionEvent:
        if self._failure is not None:
            raise self._failure
        if not self._queue.empty():
            return self._queue.get_nowait()

        getter = asyncio.ensure_future(self._queue.get())
        failed = asyncio.ensure_future(self._failed.wait())
        try:
            done, _ = await asyncio.wait({getter, failed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in (getter, failed):
                if not waiter.done():
                    waiter.cancel()

        if self._failure is not None:
            raise self._failure
        return getter.result()

    def watch(self, task: asyncio.Task, name: str) -> None:
        """Supervise a producer task."""

        def on_done(done: asyncio.Task) -> None:
            if done.cancelled():
                return
            error = done.exception()
            if error is None:
                return
            if isinstance(error, ChannelError):
                logger.debug(f"{name} stopped: {error}")
                return
            logger.error(f"{name} crashed: {error!r}")
            if self._failure is None:
                self._failure = ChannelError(ErrorKind.CRASHED, f"{name} crashed: {error!r}")
            self._failed.set()

        task.add_done_callback(on_done)

    def close(self) -> None:
        self._closed = True

    def is_closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()
