import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from kercat.address.ports import expand_ports
from kercat.config import Config, IpFamily
from kercat.errors import ErrorKind, ResolutionError

logger = logging.getLogger(__name__)

# (socket family, ip string) pairs in resolver order
LookupResult = List[Tuple[int, str]]
Lookup = Callable[[str], Awaitable[LookupResult]]


@dataclass(frozen=True)
class CandidateAddress:
    """One (ip, port) pair eligible for a connection attempt."""

    ip: str
    port: int
    family: int

    def __str__(self) -> str:
        if self.family == socket.AF_INET6:
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


def parse_literal(host: str) -> Optional[Tuple[int, str]]:
    """
    Return ``(family, ip)`` if host is a literal IPv4/IPv6 address, else None.
    Brackets around IPv6 literals are accepted.
    """
    text = host.strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        return None
    family = socket.AF_INET6 if address.version == 6 else socket.AF_INET
    return family, str(address)


async def system_lookup(host: str) -> LookupResult:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [(family, sockaddr[0]) for family, _type, _proto, _name, sockaddr in infos]


class AddressResolver:
    """
    Turns a host string and a list of ports into candidate socket addresses.

    Name lookups go through ``lookup`` (``loop.getaddrinfo`` by default) and are
    done once per distinct host for the lifetime of the resolver.
    """

    def __init__(self, lookup: Optional[Lookup] = None):
        self._lookup = lookup or system_lookup
        self._cache: Dict[str, LookupResult] = {}

    async def _lookup_host(self, host: str) -> LookupResult:
        if host in self._cache:
            return self._cache[host]

        logger.info(f"Resolving {host}")
        try:
            results = await self._lookup(host)
        except OSError as e:
            raise ResolutionError(ErrorKind.LOOKUP_FAILED, f"lookup of {host!r} failed: {e}") from e

        unique: LookupResult = []
        for family, ip in results:
            if family not in (socket.AF_INET, socket.AF_INET6):
                continue
            if (family, ip) not in unique:
                unique.append((family, ip))

        logger.info(f"Resolved {host} to {[ip for _, ip in unique]}")
        self._cache[host] = unique
        return unique

    async def resolve(
        self,
        host: str,
        ports: Sequence[int],
        family: IpFamily = IpFamily.ANY,
        bypass_dns: bool = False,
    ) -> List[CandidateAddress]:
        """
        Pair every address of ``host`` with every port.

        Ports vary fastest: all ports are tried against one address before the
        next resolved address is considered.

        Raises:
            ResolutionError: No ports, no addresses, a family mismatch, a failed
                lookup, or a non-literal host while ``bypass_dns`` is set.
        """
        if not ports:
            raise ResolutionError(ErrorKind.NO_PORTS, "port specification yielded no ports")

        literal = parse_literal(host)
        if literal is not None:
            addresses = [literal]
        elif bypass_dns:
            raise ResolutionError(
                ErrorKind.NOT_LITERAL,
                f"{host!r} is not an IP address and name resolution is disabled",
            )
        else:
            addresses = await self._lookup_host(host)
            if not addresses:
                raise ResolutionError(ErrorKind.NO_ADDRESSES, f"{host!r} resolved to no addresses")

        if family is not IpFamily.ANY:
            wanted = family.socket_family
            addresses = [(fam, ip) for fam, ip in addresses if fam == wanted]
            if not addresses:
                raise ResolutionError(
                    ErrorKind.FAMILY_MISMATCH,
                    f"{host!r} has no {family.value} address",
                )

        return [CandidateAddress(ip, port, fam) for fam, ip in addresses for port in ports]

    async def resolve_config(self, config: Config) -> List[CandidateAddress]:
        """Expand ``config.ports`` and resolve ``config.host`` against it."""
        ports = expand_ports(config.ports)
        candidates = await self.resolve(config.host, ports, config.family, config.bypass_dns)
        logger.info(f"{len(candidates)} candidate address(es) for {config.host}:{config.ports}")
        return candidates
