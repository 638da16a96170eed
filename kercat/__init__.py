"""
kercat: a netcat-style pipe between stdin/stdout and one TCP peer.
"""

from .address import AddressResolver, CandidateAddress, expand_ports
from .channel import EventChannel
from .config import Config, EofPolicy, IpFamily, Mode
from .errors import (
    CandidatesExhaustedError,
    ChannelError,
    CloseError,
    ConnectError,
    ErrorKind,
    KercatError,
    ListenError,
    ReceiveError,
    ResolutionError,
    SendError,
)
from .events import ConnectionClosedEvent, ErrorEvent, InputEvent, NetworkDataEvent
from .session import Session, SessionResult, run_session
from .tasks import InputTask, NetworkTask
from .tcp import Connection, Listener

__all__ = [
    # Configuration
    'Config',
    'Mode',
    'IpFamily',
    'EofPolicy',

    # Addresses
    'expand_ports',
    'AddressResolver',
    'CandidateAddress',

    # Transport
    'Connection',
    'Listener',

    # Events and channel
    'EventChannel',
    'InputEvent',
    'NetworkDataEvent',
    'ErrorEvent',
    'ConnectionClosedEvent',

    # Tasks
    'InputTask',
    'NetworkTask',

    # Session
    'Session',
    'SessionResult',
    'run_session',

    # Errors
    'ErrorKind',
    'KercatError',
    'ResolutionError',
    'ConnectError',
    'ListenError',
    'ReceiveError',
    'SendError',
    'CloseError',
    'ChannelError',
    'CandidatesExhaustedError',
]

__version__ = "0.1.0"
