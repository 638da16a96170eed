from .connection import Connection, Listener

__all__ = [
    'Connection',
    'Listener',
]
