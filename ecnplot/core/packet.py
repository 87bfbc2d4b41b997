"""
Packet views and per-packet records.

The Info classes are thin slotted views over the header fields the
classifier and flow table need, built from dpkt objects or directly in
tests. PacketRecord is what a flow keeps for every admitted segment.
"""

from __future__ import annotations

import socket
from typing import TYPE_CHECKING

from ecnplot.core.events import EventType

if TYPE_CHECKING:
    import dpkt


# TCP flag bits (9-bit flags field, NS in the high bit)
TH_SYN = 0x002
TH_ACK = 0x010
TH_ECE = 0x040
TH_CWR = 0x080
TH_NS = 0x100


class _SlottedInfoBase:
    """Base for __slots__-based header views.

    Subclasses must define _SLOT_NAMES (tuple of field names).
    """
    __slots__ = ()
    _SLOT_NAMES: tuple[str, ...] = ()

    def __repr__(self) -> str:
        fields = ', '.join(f'{k}={getattr(self, k)!r}' for k in self._SLOT_NAMES)
        return f'{type(self).__name__}({fields})'


class IPInfo(_SlottedInfoBase):
    """IPv4 layer information."""
    __slots__ = ('src', 'dst', 'tos', 'len')
    _SLOT_NAMES = ('src', 'dst', 'tos', 'len')

    def __init__(self, src="", dst="", tos=0, len=0):
        self.src = src
        self.dst = dst
        self.tos = tos
        self.len = len

    @classmethod
    def from_dpkt(cls, ip: dpkt.ip.IP) -> IPInfo:
        return cls(
            src=socket.inet_ntop(socket.AF_INET, ip.src),
            dst=socket.inet_ntop(socket.AF_INET, ip.dst),
            tos=ip.tos,
            len=ip.len,
        )


class IP6Info(_SlottedInfoBase):
    """IPv6 layer information."""
    __slots__ = ('src', 'dst', 'traffic_class', 'len')
    _SLOT_NAMES = ('src', 'dst', 'traffic_class', 'len')

    def __init__(self, src="", dst="", traffic_class=0, len=0):
        self.src = src
        self.dst = dst
        self.traffic_class = traffic_class
        self.len = len

    @classmethod
    def from_dpkt(cls, ip6: dpkt.ip6.IP6) -> IP6Info:
        return cls(
            src=socket.inet_ntop(socket.AF_INET6, ip6.src),
            dst=socket.inet_ntop(socket.AF_INET6, ip6.dst),
            traffic_class=ip6.fc,
            len=40 + ip6.plen,
        )


class TCPInfo(_SlottedInfoBase):
    """TCP segment information."""
    __slots__ = ('sport', 'dport', 'flags')
    _SLOT_NAMES = ('sport', 'dport', 'flags')

    def __init__(self, sport=0, dport=0, flags=0):
        self.sport = sport
        self.dport = dport
        self.flags = flags

    @property
    def syn(self) -> bool: return bool(self.flags & TH_SYN)
    @property
    def ece(self) -> bool: return bool(self.flags & TH_ECE)
    @property
    def cwr(self) -> bool: return bool(self.flags & TH_CWR)
    @property
    def ns(self) -> bool: return bool(self.flags & TH_NS)

    @classmethod
    def from_dpkt(cls, tcp: dpkt.tcp.TCP) -> TCPInfo:
        # dpkt exposes all nine flag bits, NS included
        return cls(sport=tcp.sport, dport=tcp.dport, flags=tcp.flags)


class DecodedPacket:
    """A captured frame reduced to the layers ecnplot looks at.

    Any layer may be missing: frames the reader cannot decode down to
    TCP still come through, with tcp left as None.
    """
    __slots__ = ('timestamp', 'length', 'ip', 'ip6', 'tcp')

    def __init__(self, timestamp=0.0, length=0, ip=None, ip6=None, tcp=None):
        self.timestamp = timestamp
        self.length = length
        self.ip: IPInfo | None = ip
        self.ip6: IP6Info | None = ip6
        self.tcp: TCPInfo | None = tcp

    def __repr__(self) -> str:
        return (f'DecodedPacket(timestamp={self.timestamp!r}, length={self.length!r}, '
                f'ip={self.ip!r}, ip6={self.ip6!r}, tcp={self.tcp!r})')


def format_timeval(ts: float) -> str:
    """Format a capture timestamp as seconds.microseconds (6 digits)."""
    usec_total = int(round(ts * 1_000_000))
    sec, usec = divmod(usec_total, 1_000_000)
    return f"{sec}.{usec:06d}"


class PacketRecord:
    """
    One admitted TCP segment of a flow direction.

    Attributes:
        timestamp: Capture time in seconds
        length: Captured frame length
        events: EventType set classified for the segment
        counts: Per event type, how many packets of the smoothing window
            carry it (filled in by the window smoother)
        window_size: Number of packets in the smoothing window (0 until
            smoothed)
    """
    __slots__ = ('timestamp', 'length', 'events', 'counts', 'window_size')

    def __init__(self, timestamp: float, length: int, events: EventType = EventType(0)):
        self.timestamp = timestamp
        self.length = length
        self.events = events
        self.counts: dict[EventType, int] = {}
        self.window_size = 0

    def proportion(self, event: EventType) -> float:
        """Share of packets in this packet's window that carry the event."""
        if self.window_size == 0:
            return 0.0
        return self.counts.get(event, 0) / self.window_size

    @property
    def timeval(self) -> str:
        return format_timeval(self.timestamp)

    def __repr__(self) -> str:
        return (f'PacketRecord(timestamp={self.timestamp!r}, length={self.length!r}, '
                f'events={self.events!r}, window_size={self.window_size!r})')
