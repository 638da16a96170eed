import asyncio
import logging
import socket
from typing import Optional, Tuple

from kercat.address.resolver import CandidateAddress
from kercat.config import DEFAULT_BUFFER_SIZE, DEFAULT_CONNECT_TIMEOUT, DEFAULT_DELIMITER
from kercat.errors import CloseError, ConnectError, ErrorKind, ListenError, ReceiveError, SendError

logger = logging.getLogger(__name__)

# Seconds close() waits for buffered data to reach the peer before aborting.
CLOSE_TIMEOUT = 2.0


class Connection:
    """
    One live TCP socket, either connected out or accepted by a Listener.

    A Connection is owned by a single task at a time: receiving and sending are
    done through the asyncio reader/writer halves and are never shared between
    tasks.

    ``receive_framed`` returns everything up to
    and including the next delimiter byte. It is a message boundary for
    interactive line oriented use, not a general protocol framing.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        input_buffer_size: int = DEFAULT_BUFFER_SIZE,
        delimiter: Optional[bytes] = DEFAULT_DELIMITER,
    ):
        self._reader = reader
        self._writer = writer
        self._input_buffer_size = input_buffer_size
        self._delimiter = delimiter or DEFAULT_DELIMITER
        self._pending = bytearray()
        self._closed = False
        self._disable_nagle()

    @classmethod
    async def connect(
        cls,
        address: CandidateAddress,
        input_buffer_size: int = DEFAULT_BUFFER_SIZE,
        delimiter: Optional[bytes] = DEFAULT_DELIMITER,
        timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> "Connection":
        """
        Open a TCP connection to ``address``.

        Args:
            address: The candidate address to connect to
            input_buffer_size: Size of each underlying socket read
            delimiter: Frame delimiter used by receive_framed
            timeout: Upper bound on the connect attempt, in seconds

        Returns:
            A connected Connection

        Raises:
            ConnectError: REFUSED, TIMEOUT, or OTHER with the OS error text
        """
        logger.info(f"Connecting to {address}")
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(address.ip, address.port, family=address.family),
                timeout=timeout,
            )
        except ConnectionRefusedError as e:
            raise ConnectError(ErrorKind.REFUSED, f"{address}: {e}") from e
        except asyncio.TimeoutError as e:
            raise ConnectError(ErrorKind.TIMEOUT, f"{address}: no answer within {timeout}s") from e
        except OSError as e:
            raise ConnectError(ErrorKind.OTHER, f"{address}: {e}") from e

        logger.info(f"Connected to {address}")
        return cls(reader, writer, input_buffer_size, delimiter)

    @classmethod
    async def listen_and_accept(
        cls,
        address: CandidateAddress,
        input_buffer_size: int = DEFAULT_BUFFER_SIZE,
        delimiter: Optional[bytes] = DEFAULT_DELIMITER,
    ) -> "Connection":
        """
        Bind ``address``, accept exactly one peer and close the listening socket.

        Raises:
            ListenError: BIND_FAILED or ACCEPT_FAILED
        """
        listener = await Listener.bind(address)
        try:
            return await listener.accept(input_buffer_size, delimiter)
        finally:
            listener.close()

    def _disable_nagle(self) -> None:
        sock = self._writer.get_extra_info("socket")
        if sock is None:
            return
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as e:
            logger.warning(f"Could not disable Nagle on {self.get_peer_info()}: {e}")

    async def _read_chunk(self) -> bytes:
        if self._closed:
            raise ReceiveError(ErrorKind.CLOSED, "connection is closed")
        try:
            chunk = await self._reader.read(self._input_buffer_size)
        except ConnectionResetError as e:
            raise ReceiveError(ErrorKind.CONNECTION_RESET, str(e)) from e
        except OSError as e:
            raise ReceiveError(ErrorKind.OTHER, str(e)) from e

        if not chunk:
            if self._closed:
                raise ReceiveError(ErrorKind.CLOSED, "connection is closed")
            raise ReceiveError(ErrorKind.PEER_CLOSED, "connection closed by the peer")
        return chunk

    async def receive_framed(self) -> bytes:
        """
        Read until the delimiter byte has been seen and return one frame,
        delimiter included. Bytes past the delimiter are kept for the next call.

        Raises:
            ReceiveError: PEER_CLOSED when the peer closes first. Any partial
                frame accumulated so far is discarded.
        """
        while True:
            index = self._pending.find(self._delimiter)
            if index >= 0:
                frame = bytes(self._pending[: index + 1])
                del self._pending[: index + 1]
                logger.info(f"Received {len(frame)} byte frame")
                return frame

            try:
                chunk = await self._read_chunk()
            except ReceiveError as e:
                if self._pending:
                    logger.warning(f"Discarding {len(self._pending)} byte partial frame: {e}")
                    self._pending.clear()
                raise
            self._pending.extend(chunk)

    async def receive(self) -> bytes:
        """
        Raw mode read: return whatever is buffered or whatever one read yields.

        Raises:
            ReceiveError: PEER_CLOSED when the peer has closed.
        """
        if self._pending:
            data = bytes(self._pending)
            self._pending.clear()
        else:
            data = await self._read_chunk()
        logger.info(f"Received {len(data)} bytes")
        return data

    def write(self, data: bytes) -> None:
        """
        Hand ``data`` to the transport without waiting for the peer to take it.
        Whatever is still buffered is flushed by ``close``.

        Raises:
            SendError: CLOSED after close(), OTHER if the transport refused it
            TypeError: If data is not bytes or bytearray
        """
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError(f"Expected bytes or bytearray, got {type(data).__name__}")
        if self._closed:
            raise SendError(ErrorKind.CLOSED, "connection is closed")
        try:
            self._writer.write(data)
        except OSError as e:
            raise SendError(ErrorKind.OTHER, str(e)) from e

    async def send(self, data: bytes) -> None:
        """
        Write all of ``data`` and wait until the transport has taken it.

        Raises:
            SendError: BROKEN_PIPE when the peer is gone, CLOSED after close()
                or when the connection is closed while waiting
            TypeError: If data is not bytes or bytearray
        """
        self.write(data)
        try:
            await self._writer.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise SendError(ErrorKind.BROKEN_PIPE, str(e)) from e
        except OSError as e:
            raise SendError(ErrorKind.OTHER, str(e)) from e
        if self._closed:
            # close() aborted the transport under us, the data may not have left
            raise SendError(ErrorKind.CLOSED, "connection closed while sending")
        logger.info(f"Sent {len(data)} bytes")

    async def close(self, timeout: float = CLOSE_TIMEOUT) -> None:
        """
        Shut down both directions and release the socket. Closing twice is a no-op.

        Data already handed to the transport gets ``timeout`` seconds to reach
        the peer. After that the connection is aborted.

        Raises:
            CloseError: If the transport failed while closing.
        """
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        peer = self.get_peer_info()
        logger.info(f"Closing connection to {peer}")

        # write_eof is deferred by the transport until buffered data is flushed
        try:
            if self._writer.can_write_eof():
                self._writer.write_eof()
        except OSError as e:
            # Already disconnected by the peer.
            logger.debug(f"write_eof: {e}")

        try:
            self._writer.close()
            await asyncio.wait_for(self._writer.wait_closed(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{peer} did not take unsent data within {timeout}s, aborting")
            self._writer.transport.abort()
        except OSError as e:
            raise CloseError(ErrorKind.OTHER, str(e)) from e

    def is_closed(self) -> bool:
        return self._closed

    def get_peer_info(self) -> Optional[Tuple[str, int]]:
        """Get the remote peer's address and port."""
        try:
            peer = self._writer.get_extra_info("peername")
        except Exception:
            return None
        return peer[:2] if peer else None

    def get_local_info(self) -> Optional[Tuple[str, int]]:
        """Get the local socket's address and port."""
        try:
            local = self._writer.get_extra_info("sockname")
        except Exception:
            return None
        return local[:2] if local else None


class Listener:
    """
    A bound listening socket that hands out accepted peers one at a time.
    Only the accepted Connection outlives the listener.
    """

    def __init__(self, sock: socket.socket, address: CandidateAddress):
        self._sock = sock
        self._address = address
        self._closed = False

    @classmethod
    async def bind(cls, address: CandidateAddress, backlog: int = 1) -> "Listener":
        """
        Create a listening socket on ``address``.

        Raises:
            ListenError: BIND_FAILED if the socket cannot be created or bound
        """
        logger.info(f"Listening on {address}")
        try:
            sock = socket.socket(address.family, socket.SOCK_STREAM)
        except OSError as e:
            raise ListenError(ErrorKind.BIND_FAILED, f"{address}: {e}") from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((address.ip, address.port))
            sock.listen(backlog)
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise ListenError(ErrorKind.BIND_FAILED, f"{address}: {e}") from e

        return cls(sock, address)

    async def accept(
        self,
        input_buffer_size: int = DEFAULT_BUFFER_SIZE,
        delimiter: Optional[bytes] = DEFAULT_DELIMITER,
    ) -> Connection:
        """
        Wait for the next inbound peer.

        Raises:
            ListenError: ACCEPT_FAILED if the listener is closed or accept fails
        """
        if self._closed:
            raise ListenError(ErrorKind.ACCEPT_FAILED, "listener is closed")

        loop = asyncio.get_running_loop()
        try:
            conn, peer = await loop.sock_accept(self._sock)
        except OSError as e:
            raise ListenError(ErrorKind.ACCEPT_FAILED, f"{self._address}: {e}") from e

        logger.info(f"Accepted connection from {peer[0]}:{peer[1]}")
        try:
            reader, writer = await asyncio.open_connection(sock=conn)
        except OSError as e:
            conn.close()
            raise ListenError(ErrorKind.ACCEPT_FAILED, f"{peer[0]}:{peer[1]}: {e}") from e
        return Connection(reader, writer, input_buffer_size, delimiter)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sock.close()
        logger.info(f"Stopped listening on {self._address}")

    def is_closed(self) -> bool:
        return self._closed

    def get_address(self) -> Tuple[str, int]:
        """Get the listening address and port."""
        return self._sock.getsockname()[:2]
