from .input_task import InputTask
from .network_task import NetworkTask

__all__ = [
    'InputTask',
    'NetworkTask',
]
