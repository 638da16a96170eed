from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    # Resolution
    NO_PORTS = "no-ports"
    NO_ADDRESSES = "no-addresses"
    FAMILY_MISMATCH = "family-mismatch"
    LOOKUP_FAILED = "lookup-failed"
    NOT_LITERAL = "not-literal"

    # Connect / listen
    REFUSED = "refused"
    TIMEOUT = "timeout"
    BIND_FAILED = "bind-failed"
    ACCEPT_FAILED = "accept-failed"

    # Established connection
    PEER_CLOSED = "peer-closed"
    CONNECTION_RESET = "connection-reset"
    BROKEN_PIPE = "broken-pipe"
    CLOSED = "closed"

    # Local input
    INPUT_FAILED = "input-failed"

    # Channel / session
    DISCONNECTED = "disconnected"
    CRASHED = "crashed"
    EXHAUSTED = "exhausted"

    OTHER = "other"


class KercatError(Exception):
    """
    Base class for every failure the session engine reports.

    Attributes:
        kind: Which failure this is, see ErrorKind.
        detail: Human readable description.
    """

    default_kind = ErrorKind.OTHER

    def __init__(self, kind: Optional[ErrorKind] = None, detail: str = ""):
        self.kind = kind or self.default_kind
        self.detail = detail
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.detail:
            return f"{self.kind.value}: {self.detail}"
        return self.kind.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.name}, {self.detail!r})"


class ResolutionError(KercatError):
    default_kind = ErrorKind.NO_ADDRESSES


class ConnectError(KercatError):
    pass


class ListenError(KercatError):
    default_kind = ErrorKind.BIND_FAILED


class ReceiveError(KercatError):
    default_kind = ErrorKind.PEER_CLOSED


class SendError(KercatError):
    default_kind = ErrorKind.BROKEN_PIPE


class CloseError(KercatError):
    pass


class ChannelError(KercatError):
    default_kind = ErrorKind.DISCONNECTED


class CandidatesExhaustedError(KercatError):
    """Raised when every candidate address failed to connect."""

    default_kind = ErrorKind.EXHAUSTED

    def __init__(self, attempts: int, last_error: Optional[KercatError] = None):
        self.attempts = attempts
        self.last_error = last_error
        detail = f"all {attempts} candidate address(es) failed"
        if last_error is not None:
            detail += f", last error: {last_error}"
        super().__init__(ErrorKind.EXHAUSTED, detail)


# Kinds after which the socket is no longer usable.
CONNECTION_LOST_KINDS = frozenset(
    {
        ErrorKind.PEER_CLOSED,
        ErrorKind.CONNECTION_RESET,
        ErrorKind.BROKEN_PIPE,
        ErrorKind.CLOSED,
        ErrorKind.OTHER,
    }
)
