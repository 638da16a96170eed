from .console import ConsoleOutput, FileReader, open_input

__all__ = [
    'ConsoleOutput',
    'FileReader',
    'open_input',
]
