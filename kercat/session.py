import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from kercat.address.resolver import AddressResolver, CandidateAddress
from kercat.channel import EventChannel
from kercat.config import Config
from kercat.errors import (
    CandidatesExhaustedError,
    ConnectError,
    ErrorKind,
    KercatError,
    ListenError,
    ReceiveError,
    ResolutionError,
    SendError,
)
from kercat.events import ConnectionClosedEvent, ErrorEvent, InputEvent, NetworkDataEvent
from kercat.stdio.console import ConsoleOutput, open_input
from kercat.tasks.input_task import InputTask
from kercat.tasks.network_task import NetworkTask
from kercat.tcp.connection import Connection, Listener

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    """
    Outcome of one session.

    Attributes:
        ok: True if the session ended normally
        error: The fatal error when ok is False
        attempts: Connect or accept attempts made
        connections: Connections served (one NetworkTask each)
    """

    ok: bool
    error: Optional[KercatError] = None
    attempts: int = 0
    connections: int = 0


class Session:
    """
    Drives one run of the tool: resolves candidates, connects or listens,
    and pumps events between local input, the network and local output.

    Local input is read by one InputTask for the whole session. Each connection
    gets its own NetworkTask. Both feed a single EventChannel that this class
    consumes in arrival order.
    """

    def __init__(
        self,
        config: Config,
        input_reader: Optional[Any] = None,
        output: Optional[Any] = None,
        resolver: Optional[AddressResolver] = None,
    ):
        self._config = config
        self._input_reader = input_reader
        self._output = output if output is not None else ConsoleOutput()
        self._resolver = resolver or AddressResolver()
        self._channel: Optional[EventChannel] = None
        self._input_task: Optional[InputTask] = None
        self._network: Optional[NetworkTask] = None
        self._writable: Optional[asyncio.Event] = None
        self.attempts = 0
        self.connections = 0

    @property
    def network_task(self) -> Optional[NetworkTask]:
        return self._network

    async def run(self) -> SessionResult:
        logger.info(f"Starting session with configuration: {self._config}")

        try:
            candidates = await self._resolver.resolve_config(self._config)
        except ResolutionError as e:
            logger.error(f"Address resolution failed: {e}")
            return self._finish(e)

        try:
            reader = self._input_reader
            if reader is None:
                reader = await open_input()
        except (OSError, ValueError) as e:
            logger.error(f"Cannot open local input: {e}")
            return self._finish(KercatError(ErrorKind.INPUT_FAILED, str(e)))

        self._channel = EventChannel(self._config.channel_size)
        # Cleared by the current NetworkTask while its send queue is full
        self._writable = asyncio.Event()
        self._writable.set()
        self._input_task = InputTask(
            reader,
            self._channel,
            chunk_size=self._config.output_buffer_size,
            ignore_eof=self._config.ignore_eof,
            writable=self._writable,
        )
        self._input_task.start()

        try:
            if self._config.listening:
                error = await self._run_listen(candidates)
            else:
                error = await self._run_connect(candidates)
        except KercatError as e:
            logger.error(f"Session failed: {e}")
            error = e
        finally:
            self._channel.close()
            await self._input_task.stop()

        return self._finish(error)

    def _finish(self, error: Optional[KercatError]) -> SessionResult:
        if error is None:
            logger.info(f"Session ended after {self.connections} connection(s)")
        else:
            logger.error(f"Session ended with error: {error}")
        return SessionResult(error is None, error, self.attempts, self.connections)

    @staticmethod
    def _outcome(error: KercatError) -> Optional[KercatError]:
        # The peer hanging up is a normal end, anything else is reported.
        if error.kind is ErrorKind.PEER_CLOSED:
            return None
        return error

    async def _run_connect(self, candidates: List[CandidateAddress]) -> Optional[KercatError]:
        config = self._config
        last_error: Optional[KercatError] = None
        served = False

        for index, candidate in enumerate(candidates, 1):
            self.attempts += 1
            try:
                connection = await Connection.connect(
                    candidate,
                    config.input_buffer_size,
                    config.delimiter,
                    config.connect_timeout,
                )
            except ConnectError as e:
                logger.warning(f"Candidate {index}/{len(candidates)} failed: {e}")
                last_error = e
                continue

            error = await self._serve(connection)
            if error is None:
                return None
            served = True
            last_error = error
            if index < len(candidates):
                logger.info(f"Connection to {candidate} ended ({error}), trying next candidate")

        if not served:
            return CandidatesExhaustedError(self.attempts, last_error)
        return self._outcome(last_error)

    async def _run_listen(self, candidates: List[CandidateAddress]) -> Optional[KercatError]:
        config = self._config
        address = candidates[0]
        if len(candidates) > 1:
            logger.warning(f"Listen mode binds {address} only, ignoring {len(candidates) - 1} other candidate(s)")

        try:
            listener = await Listener.bind(address)
        except ListenError as e:
            logger.error(f"Cannot listen: {e}")
            return e

        try:
            while True:
                self.attempts += 1
                try:
                    connection = await listener.accept(config.input_buffer_size, config.delimiter)
                except ListenError as e:
                    logger.error(f"Accept failed: {e}")
                    return e
                if not config.keep_listening:
                    listener.close()

                error = await self._serve(connection)
                if error is None:
                    return None
                if not config.keep_listening:
                    return self._outcome(error)
                logger.info(f"Peer gone ({error}), waiting for the next one")
        finally:
            listener.close()

    async def _serve(self, connection: Connection) -> Optional[KercatError]:
        """
        Run the event loop for one connection.

        Returns:
            None when local input closed the session, otherwise the error that
            ended this connection.
        """
        network = NetworkTask(
            connection,
            self._channel,
            framed=self._config.delimiter is not None,
            writable=self._writable,
        )
        self._network = network
        self.connections += 1
        network.start()
        logger.info(f"Serving {network!r}")

        try:
            while True:
                event = await self._channel.get()

                if isinstance(event, InputEvent):
                    try:
                        await network.send(event.data)
                    except SendError as e:
                        logger.error(f"Send to {connection.get_peer_info()} failed: {e}")
                        return e

                elif isinstance(event, NetworkDataEvent):
                    self._deliver(event.data)

                elif isinstance(event, ErrorEvent):
                    if event.origin is not None and event.origin is not network:
                        logger.debug(f"Ignoring {event.kind.value} from superseded {event.origin!r}")
                        continue
                    if event.connection_lost:
                        logger.info(f"Connection lost: {event.kind.value} {event.detail}")
                        if event.error is not None:
                            return event.error
                        return ReceiveError(event.kind, event.detail)
                    logger.warning(f"{event.kind.value}: {event.detail}")

                elif isinstance(event, ConnectionClosedEvent):
                    logger.info("Local input closed, ending session")
                    return None
        finally:
            self._network = None
            await network.stop()

    def _deliver(self, data: bytes) -> None:
        try:
            self._output.write(data)
        except OSError as e:
            raise KercatError(ErrorKind.BROKEN_PIPE, f"writing local output failed: {e}") from e


def run_session(config: Config) -> SessionResult:
    """Run a session on stdin/stdout until it ends. Blocks the caller."""
    return asyncio.run(Session(config).run())
