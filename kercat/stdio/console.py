import asyncio
import logging
import os
import stat
import sys
from typing import Any, BinaryIO, Optional

logger = logging.getLogger(__name__)


class FileReader:
    """
    Reads a regular file through the default executor. Pipe transports cannot
    wrap regular files, which is what stdin is under ``kercat host port < file``.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    async def read(self, n: int) -> bytes:
        loop = asyncio.get_running_loop()
        read = getattr(self._stream, "read1", self._stream.read)
        return await loop.run_in_executor(None, read, n)


async def open_input(stream: Optional[BinaryIO] = None) -> Any:
    """
    Open local input for async reading.

    Pipes, terminals and sockets are wrapped in an asyncio.StreamReader via
    ``connect_read_pipe``. Regular files are read in the executor.

    Returns:
        An object with ``async read(n) -> bytes``
    """
    if stream is None:
        stream = sys.stdin.buffer

    mode = os.fstat(stream.fileno()).st_mode
    if stat.S_ISREG(mode):
        logger.debug("Input is a regular file")
        return FileReader(stream)

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, stream)
    return reader


class ConsoleOutput:
    """Blocking, unbuffered writer for data received from the peer."""

    def __init__(self, stream: Optional[BinaryIO] = None):
        self._stream = stream if stream is not None else sys.stdout.buffer

    def write(self, data: bytes) -> None:
        self._stream.write(data)
        self._stream.flush()
