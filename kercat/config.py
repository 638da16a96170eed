import socket
from dataclasses import dataclass
from enum import Enum
from typing import Optional

DEFAULT_PORT = "8000"
DEFAULT_CONNECT_HOST = "127.0.0.1"
DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_HOST_V6 = "::"
DEFAULT_BUFFER_SIZE = 1024
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_CHANNEL_SIZE = 64
DEFAULT_DELIMITER = b"\n"


class Mode(Enum):
    CONNECT = "connect"
    LISTEN = "listen"


class IpFamily(Enum):
    ANY = "any"
    V4 = "ipv4"
    V6 = "ipv6"

    @property
    def socket_family(self) -> int:
        if self is IpFamily.V4:
            return socket.AF_INET
        if self is IpFamily.V6:
            return socket.AF_INET6
        return socket.AF_UNSPEC


class EofPolicy(Enum):
    CLOSE = "close-on-eof"
    IGNORE = "ignore"


@dataclass(frozen=True)
class Config:
    """
    Immutable settings for one session. Built once by the command line layer
    and shared by every component for the lifetime of the process.
    """

    mode: Mode = Mode.CONNECT
    family: IpFamily = IpFamily.ANY
    host: str = DEFAULT_CONNECT_HOST
    ports: str = DEFAULT_PORT
    input_buffer_size: int = DEFAULT_BUFFER_SIZE
    output_buffer_size: int = DEFAULT_BUFFER_SIZE
    eof_policy: EofPolicy = EofPolicy.CLOSE
    keep_listening: bool = False
    bypass_dns: bool = False
    delimiter: Optional[bytes] = DEFAULT_DELIMITER
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    channel_size: int = DEFAULT_CHANNEL_SIZE
    log_file: Optional[str] = None
    verbose: bool = False

    def __post_init__(self):
        if self.input_buffer_size <= 0:
            raise ValueError(f"input buffer size must be positive, got {self.input_buffer_size}")
        if self.output_buffer_size <= 0:
            raise ValueError(f"output buffer size must be positive, got {self.output_buffer_size}")
        if self.channel_size <= 0:
            raise ValueError(f"channel size must be positive, got {self.channel_size}")
        if self.connect_timeout <= 0:
            raise ValueError(f"connect timeout must be positive, got {self.connect_timeout}")
        if self.delimiter is not None and len(self.delimiter) != 1:
            raise ValueError(f"delimiter must be a single byte, got {self.delimiter!r}")
        if self.keep_listening and self.mode is not Mode.LISTEN:
            raise ValueError("keep-listening is only valid in listen mode")

    @property
    def listening(self) -> bool:
        return self.mode is Mode.LISTEN

    @property
    def ignore_eof(self) -> bool:
        return self.eof_policy is EofPolicy.IGNORE
