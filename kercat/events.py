from dataclasses import dataclass, field
from typing import Any, Optional, Union

from kercat.errors import CONNECTION_LOST_KINDS, ErrorKind, KercatError


@dataclass(frozen=True)
class InputEvent:
    """A chunk read from local input, exactly as read."""

    data: bytes


@dataclass(frozen=True)
class NetworkDataEvent:
    """Bytes received from the peer."""

    data: bytes
    origin: Any = field(default=None, compare=False)


@dataclass(frozen=True)
class ErrorEvent:
    """
    A failure reported by a producer. ``origin`` is the NetworkTask that
    produced it, or None for local input. ``error`` keeps the original
    exception when there is one.
    """

    kind: ErrorKind
    detail: str = ""
    origin: Any = field(default=None, compare=False)
    error: Optional[KercatError] = field(default=None, compare=False)

    @classmethod
    def from_error(cls, error: KercatError, origin: Optional[Any] = None) -> "ErrorEvent":
        return cls(error.kind, error.detail, origin, error)

    @property
    def connection_lost(self) -> bool:
        return self.kind in CONNECTION_LOST_KINDS


@dataclass(frozen=True)
class ConnectionClosedEvent:
    """Local input has ended and the session should finish."""


SessionEvent = Union[InputEvent, NetworkDataEvent, ErrorEvent, ConnectionClosedEvent]
