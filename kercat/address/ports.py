import logging
from typing import List, Optional

logger = logging.getLogger(__name__)

MAX_PORT = 65535


def _parse_port(text: str, token: str) -> Optional[int]:
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        logger.warning(f"Invalid port number {text!r} in {token!r}, skipping")
        return None
    value = int(text)
    if value > MAX_PORT:
        logger.warning(f"Port {value} out of range in {token!r}, skipping")
        return None
    return value


def expand_ports(spec: str) -> List[int]:
    """
    Expand a port specification such as ``"80"``, ``"80-90"`` or
    ``"80,443,8000-8010"`` into the ordered list of ports it names.

    Malformed tokens (not a number, reversed range, out of range, wrong arity)
    are logged and skipped. Duplicates are kept.

    Args:
        spec: Comma separated tokens, each a port or an inclusive ``start-end`` range.

    Returns:
        The concatenated expansion of every valid token. Empty if nothing was valid.
    """
    ports: List[int] = []

    for token in spec.split(","):
        if not token.strip():
            if spec.strip():
                logger.warning(f"Empty port token in {spec!r}, skipping")
            continue

        if "-" in token:
            bounds = token.split("-")
            if len(bounds) != 2:
                logger.warning(f"Invalid port range {token!r}, skipping")
                continue
            start = _parse_port(bounds[0], token)
            end = _parse_port(bounds[1], token)
            if start is None or end is None:
                continue
            if start > end:
                logger.warning(f"Reversed port range {token!r}, skipping")
                continue
            ports.extend(range(start, end + 1))
        else:
            port = _parse_port(token, token)
            if port is not None:
                ports.append(port)

    return ports
