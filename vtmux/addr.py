"""Compact socket addresses with a fixed 18-byte wire form.

Every address is stored as sixteen IPv6 octets, with IPv4 addresses kept
in their IPv4-mapped form, followed by the port in network byte order.
"""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

IP_SIZE = 16
ADDR_SIZE = IP_SIZE + 2
MAX_PORT = 0xFFFF

_PORT = struct.Struct(">H")
_V4_MAPPED_PREFIX = b"\x00" * 10 + b"\xff\xff"


def parse_ip(text: str) -> IPAddress:
    """Parse a bare IPv4 or IPv6 address (no brackets, no zone id)."""
    if not isinstance(text, str):
        raise TypeError(f"expected str, got {type(text).__name__}")
    if "%" in text:
        raise ValueError(f"invalid IP address syntax: {text!r}")
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        raise ValueError(f"invalid IP address syntax: {text!r}") from None


def ip_to_bytes(ip: IPAddress | str) -> bytes:
    """Return the sixteen octets of *ip*, mapping IPv4 into IPv6."""
    if isinstance(ip, str):
        ip = parse_ip(ip)
    if isinstance(ip, ipaddress.IPv4Address):
        return _V4_MAPPED_PREFIX + ip.packed
    if isinstance(ip, ipaddress.IPv6Address):
        return ip.packed
    raise TypeError(f"expected an IP address, got {type(ip).__name__}")


def ip_from_bytes(data: bytes) -> IPAddress:
    """Decode sixteen octets into the canonical address they hold."""
    if len(data) != IP_SIZE:
        raise ValueError(f"expected {IP_SIZE} bytes, got {len(data)}")
    v6 = ipaddress.IPv6Address(bytes(data))
    return v6.ipv4_mapped or v6


def _parse_port(text: str) -> int:
    if not (text.isascii() and text.isdigit()):
        raise ValueError(f"invalid port: {text!r}")
    port = int(text)
    if port > MAX_PORT:
        raise ValueError(f"port out of range: {port}")
    return port


def _check_port(port: int) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise TypeError(f"port must be an int, got {type(port).__name__}")
    if not 0 <= port <= MAX_PORT:
        raise ValueError(f"port out of range: {port}")
    return port


@dataclass(frozen=True, order=True)
class SocketAddr:
    """An IP address and port, ordered and hashed by their wire bytes."""

    octets: bytes
    port: int

    def __post_init__(self) -> None:
        octets = bytes(self.octets)
        if len(octets) != IP_SIZE:
            raise ValueError(f"expected {IP_SIZE} address octets, got {len(octets)}")
        object.__setattr__(self, "octets", octets)
        _check_port(self.port)

    @classmethod
    def parse(cls, text: str) -> SocketAddr:
        """Parse ``a.b.c.d:port`` or ``[v6]:port``."""
        if text.startswith("["):
            host, sep, port = text[1:].partition("]:")
            if not sep:
                raise ValueError(f"invalid socket address syntax: {text!r}")
            ip = parse_ip(host)
            if not isinstance(ip, ipaddress.IPv6Address):
                raise ValueError(f"invalid socket address syntax: {text!r}")
        else:
            host, sep, port = text.rpartition(":")
            if not sep:
                raise ValueError(f"invalid socket address syntax: {text!r}")
            ip = parse_ip(host)
            if not isinstance(ip, ipaddress.IPv4Address):
                raise ValueError(f"invalid socket address syntax: {text!r}")
        return cls(ip_to_bytes(ip), _parse_port(port))

    @classmethod
    def from_host_port(cls, host: IPAddress | str, port: int) -> SocketAddr:
        """Build an address from an IP (object or text) and a port."""
        return cls(ip_to_bytes(host), _check_port(port))

    @classmethod
    def from_bytes(cls, data: bytes) -> SocketAddr:
        """Decode the 18-byte wire form."""
        if len(data) != ADDR_SIZE:
            raise ValueError(f"expected {ADDR_SIZE} bytes, got {len(data)}")
        (port,) = _PORT.unpack_from(data, IP_SIZE)
        return cls(bytes(data[:IP_SIZE]), port)

    def to_bytes(self) -> bytes:
        """Encode into the 18-byte wire form."""
        return self.octets + _PORT.pack(self.port)

    def canonical_ip(self) -> IPAddress:
        """The IP address, with IPv4-mapped addresses shown as IPv4."""
        return ip_from_bytes(self.octets)

    def __str__(self) -> str:
        ip = self.canonical_ip()
        if isinstance(ip, ipaddress.IPv6Address):
            return f"[{ip}]:{self.port}"
        return f"{ip}:{self.port}"

    def __repr__(self) -> str:
        return f"SocketAddr({str(self)!r})"