import logging
import sys
from typing import Optional

LOG_FORMAT = "[%(name)s][%(levelname)s] %(message)s"


def configure_logging(log_file: Optional[str] = None, verbose: bool = False) -> logging.Logger:
    """
    Configure the ``kercat`` logger.

    With ``log_file`` all activity goes to that file. Without it logging goes to
    stderr when ``verbose`` is set and is otherwise switched off, so stdout stays
    reserved for data received from the peer.

    Raises:
        OSError: If the log file cannot be created
    """
    logger = logging.getLogger("kercat")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file:
        handler: logging.Handler = logging.FileHandler(log_file, mode="w")
    elif verbose:
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.NullHandler()

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
    return logger
