import socket

import pytest

from kercat.address.resolver import AddressResolver, CandidateAddress, parse_literal
from kercat.config import Config, IpFamily
from kercat.errors import ErrorKind, ResolutionError

V4 = socket.AF_INET
V6 = socket.AF_INET6


def table_lookup(table):
    calls = []

    async def lookup(host):
        calls.append(host)
        return table[host]

    lookup.calls = calls
    return lookup


async def no_lookup(host):
    raise AssertionError(f"unexpected lookup of {host}")


def test_parse_literal():
    assert parse_literal("127.0.0.1") == (V4, "127.0.0.1")
    assert parse_literal("::1") == (V6, "::1")
    assert parse_literal("[::1]") == (V6, "::1")
    assert parse_literal("localhost") is None
    assert parse_literal("256.1.1.1") is None


def test_candidate_address_str():
    assert str(CandidateAddress("10.0.0.1", 80, V4)) == "10.0.0.1:80"
    assert str(CandidateAddress("::1", 80, V6)) == "[::1]:80"


@pytest.mark.asyncio
async def test_ports_vary_fastest():
    lookup = table_lookup({"example.test": [(V4, "10.0.0.1"), (V4, "10.0.0.2")]})
    resolver = AddressResolver(lookup)

    candidates = await resolver.resolve("example.test", [80, 81])

    assert [(c.ip, c.port) for c in candidates] == [
        ("10.0.0.1", 80),
        ("10.0.0.1", 81),
        ("10.0.0.2", 80),
        ("10.0.0.2", 81),
    ]


@pytest.mark.asyncio
async def test_literal_skips_lookup():
    resolver = AddressResolver(no_lookup)

    candidates = await resolver.resolve("127.0.0.1", [22, 80])

    assert candidates == [
        CandidateAddress("127.0.0.1", 22, V4),
        CandidateAddress("127.0.0.1", 80, V4),
    ]


@pytest.mark.asyncio
async def test_bracketed_ipv6_literal():
    resolver = AddressResolver(no_lookup)

    candidates = await resolver.resolve("[::1]", [80])

    assert candidates == [CandidateAddress("::1", 80, V6)]


@pytest.mark.asyncio
async def test_family_filter_keeps_order():
    lookup = table_lookup({"dual.test": [(V6, "::2"), (V4, "10.0.0.1"), (V6, "::3"), (V4, "10.0.0.2")]})
    resolver = AddressResolver(lookup)

    v4 = await resolver.resolve("dual.test", [80], IpFamily.V4)
    v6 = await resolver.resolve("dual.test", [80], IpFamily.V6)

    assert [c.ip for c in v4] == ["10.0.0.1", "10.0.0.2"]
    assert [c.ip for c in v6] == ["::2", "::3"]


@pytest.mark.asyncio
async def test_literal_family_mismatch():
    resolver = AddressResolver(no_lookup)

    with pytest.raises(ResolutionError) as info:
        await resolver.resolve("::1", [80], IpFamily.V4)

    assert info.value.kind is ErrorKind.FAMILY_MISMATCH


@pytest.mark.asyncio
async def test_resolved_family_mismatch():
    resolver = AddressResolver(table_lookup({"v4only.test": [(V4, "10.0.0.1")]}))

    with pytest.raises(ResolutionError) as info:
        await resolver.resolve("v4only.test", [80], IpFamily.V6)

    assert info.value.kind is ErrorKind.FAMILY_MISMATCH


@pytest.mark.asyncio
async def test_no_addresses():
    resolver = AddressResolver(table_lookup({"empty.test": []}))

    with pytest.raises(ResolutionError) as info:
        await resolver.resolve("empty.test", [80])

    assert info.value.kind is ErrorKind.NO_ADDRESSES


@pytest.mark.asyncio
async def test_no_ports_is_an_error():
    resolver = AddressResolver(no_lookup)

    with pytest.raises(ResolutionError) as info:
        await resolver.resolve("127.0.0.1", [])

    assert info.value.kind is ErrorKind.NO_PORTS


@pytest.mark.asyncio
async def test_bypass_dns_rejects_names():
    resolver = AddressResolver(no_lookup)

    with pytest.raises(ResolutionError) as info:
        await resolver.resolve("example.test", [80], bypass_dns=True)
    assert info.value.kind is ErrorKind.NOT_LITERAL

    candidates = await resolver.resolve("10.1.2.3", [80], bypass_dns=True)
    assert candidates == [CandidateAddress("10.1.2.3", 80, V4)]


@pytest.mark.asyncio
async def test_lookup_failure_is_translated():
    async def failing(host):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    resolver = AddressResolver(failing)

    with pytest.raises(ResolutionError) as info:
        await resolver.resolve("nowhere.test", [80])

    assert info.value.kind is ErrorKind.LOOKUP_FAILED
    assert isinstance(info.value.__cause__, socket.gaierror)


@pytest.mark.asyncio
async def test_lookup_once_per_host_and_dedupe():
    lookup = table_lookup({"dup.test": [(V4, "10.0.0.1"), (V4, "10.0.0.1"), (V6, "::1")]})
    resolver = AddressResolver(lookup)

    first = await resolver.resolve("dup.test", [80])
    second = await resolver.resolve("dup.test", [81])

    assert lookup.calls == ["dup.test"]
    assert [c.ip for c in first] == ["10.0.0.1", "::1"]
    assert [c.port for c in second] == [81, 81]


@pytest.mark.asyncio
async def test_resolve_config():
    resolver = AddressResolver(no_lookup)

    candidates = await resolver.resolve_config(Config(host="127.0.0.1", ports="80-81"))
    assert [c.port for c in candidates] == [80, 81]

    with pytest.raises(ResolutionError) as info:
        await resolver.resolve_config(Config(host="127.0.0.1", ports="abc"))
    assert info.value.kind is ErrorKind.NO_PORTS


@pytest.mark.asyncio
async def test_system_lookup_of_loopback_name():
    resolver = AddressResolver()

    candidates = await resolver.resolve("localhost", [80], IpFamily.V4)

    assert candidates
    assert all(c.family == V4 for c in candidates)
