"""
Congestion-signaling event types and their classification.

An EventType value is the per-packet event set: each of the six congestion
signals occupies one bit, so membership, union and the empty set all come
from enum.IntFlag.

Examples:
    >>> from ecnplot.core.events import EventType, classify
    >>> from ecnplot.core.packet import TCPInfo, IPInfo
    >>> classify(TCPInfo(flags=0x10), ip=IPInfo(tos=0x03))
    <EventType.CE: 4>
    >>> EventType.CE in (EventType.CE | EventType.ECE)
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterator, Mapping

if TYPE_CHECKING:
    from ecnplot.core.packet import TCPInfo, IPInfo, IP6Info


class EventType(IntFlag):
    """Congestion-signaling events carried by a TCP segment."""
    ECT = 0x01  # ECN-Capable Transport codepoint
    SCE = 0x02  # Some Congestion Experienced codepoint
    CE = 0x04   # Congestion Experienced codepoint
    ECE = 0x08  # TCP ECN-Echo flag
    CWR = 0x10  # TCP Congestion Window Reduced flag
    NS = 0x20   # TCP Nonce Sum flag

    @classmethod
    def members(cls) -> Iterator[EventType]:
        """Iterate the single event types in bit order."""
        bit = 1
        while bit <= cls.NS:
            yield cls(bit)
            bit <<= 1


EVENT_TYPE_COUNT = 6


class ECNCodepoint(IntEnum):
    """ECN field values (low two bits of the TOS / traffic class byte)."""
    NOT_ECT = 0x00
    SCE = 0x01
    ECT = 0x02
    CE = 0x03

    @classmethod
    def from_tos(cls, tos: int) -> ECNCodepoint:
        return cls(tos & 0x03)


_CODEPOINT_EVENTS = {
    ECNCodepoint.NOT_ECT: EventType(0),
    ECNCodepoint.SCE: EventType.SCE,
    ECNCodepoint.ECT: EventType.ECT,
    ECNCodepoint.CE: EventType.CE,
}


def codepoint_event(tos: int) -> EventType:
    """Map a TOS / traffic class byte to its ECN codepoint event."""
    return _CODEPOINT_EVENTS[ECNCodepoint.from_tos(tos)]


def classify(tcp: TCPInfo, ip: IPInfo | None = None, ip6: IP6Info | None = None) -> EventType:
    """
    Classify a TCP segment into its set of congestion events.

    SYN segments are excluded from event accounting and always classify
    to the empty set. Otherwise the CWR, ECE and NS flags each contribute
    their own event, and every IP layer present contributes the event of
    its ECN codepoint (Not-ECT contributes nothing).

    Args:
        tcp: TCP header view
        ip: IPv4 header view, if the packet carries one
        ip6: IPv6 header view, if the packet carries one

    Returns:
        EventType set, possibly empty
    """
    events = EventType(0)
    if tcp.syn:
        return events

    if tcp.cwr:
        events |= EventType.CWR
    if tcp.ece:
        events |= EventType.ECE
    if tcp.ns:
        events |= EventType.NS

    if ip is not None:
        events |= codepoint_event(ip.tos)
    if ip6 is not None:
        events |= codepoint_event(ip6.traffic_class)

    return events


@dataclass(frozen=True)
class EventDisplay:
    """
    How one event type is drawn in an xplot document.

    Attributes:
        plot: Whether markers for this type are emitted at all
        up_symbol: Marker keyword for upstream packets
        down_symbol: Marker keyword for downstream packets
        color: xplot color name
        label: Text printed next to labelled markers
        label_all: Label every marker instead of only the first one
        text_item: Keyword of the text command (ltext, rtext, ...)
        plot_all_up: Draw a marker on every upstream packet, fired or not
        plot_all_down: Draw a marker on every downstream packet, fired or not
    """
    plot: bool
    color: str
    label: str
    up_symbol: str = "rarrow"
    down_symbol: str = "larrow"
    label_all: bool = False
    text_item: str = "ltext"
    plot_all_up: bool = False
    plot_all_down: bool = False

    def symbol(self, up: bool) -> str:
        return self.up_symbol if up else self.down_symbol

    def plot_all(self, up: bool) -> bool:
        return self.plot_all_up if up else self.plot_all_down


EVENT_DISPLAY: Mapping[EventType, EventDisplay] = MappingProxyType({
    EventType.ECT: EventDisplay(plot=False, color="white", label="ECT"),
    EventType.SCE: EventDisplay(plot=True, color="yellow", label="SCE", plot_all_up=True),
    EventType.CE: EventDisplay(plot=True, color="red", label="CE", label_all=True),
    EventType.ECE: EventDisplay(plot=True, color="blue", label="ECE"),
    EventType.CWR: EventDisplay(plot=True, color="green", label="CWR"),
    EventType.NS: EventDisplay(plot=True, color="purple", label="NS"),
})
