from .ports import expand_ports
from .resolver import AddressResolver, CandidateAddress, parse_literal

__all__ = [
    'expand_ports',
    'AddressResolver',
    'CandidateAddress',
    'parse_literal',
]
