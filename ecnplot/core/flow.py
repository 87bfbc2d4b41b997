"""
Flow management - TransportKey, FlowRecord, FlowTable.

Flows are keyed by TCP port pair only. A port pair and its reverse name
the same flow; whichever orientation is seen first becomes the upstream
direction and stays so for the rest of the run.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import TYPE_CHECKING, Iterator

from ecnplot.core.events import EventType, classify
from ecnplot.core.packet import PacketRecord

if TYPE_CHECKING:
    from ecnplot.core.packet import DecodedPacket

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Packet direction relative to the first packet of its flow."""
    UP = 1
    DOWN = -1

    @property
    def is_up(self) -> bool:
        return self is Direction.UP


@dataclass(frozen=True)
class TransportKey:
    """
    Immutable hashable transport-flow identity (TCP port pair).

    Examples:
        >>> key = TransportKey(40000, 5201)
        >>> str(key)
        '40000-5201'
        >>> key.reverse()
        TransportKey(src_port=5201, dst_port=40000)
    """
    src_port: int
    dst_port: int

    def __str__(self) -> str:
        return f"{self.src_port}-{self.dst_port}"

    def reverse(self) -> TransportKey:
        """Create a reversed transport key."""
        return TransportKey(src_port=self.dst_port, dst_port=self.src_port)

    @classmethod
    def from_packet(cls, pkt: DecodedPacket) -> TransportKey:
        if pkt.tcp is None:
            raise ValueError("packet has no TCP layer")
        return cls(src_port=pkt.tcp.sport, dst_port=pkt.tcp.dport)


@dataclass(frozen=True)
class NetworkKey:
    """Network-flow identity (address pair) of the first packet seen."""
    src_ip: str
    dst_ip: str

    @classmethod
    def from_packet(cls, pkt: DecodedPacket) -> NetworkKey | None:
        if pkt.ip is not None:
            return cls(src_ip=pkt.ip.src, dst_ip=pkt.ip.dst)
        if pkt.ip6 is not None:
            return cls(src_ip=pkt.ip6.src, dst_ip=pkt.ip6.dst)
        return None


def _host(ip: str) -> str:
    return f"[{ip}]" if ':' in ip else ip


@dataclass
class FlowRecord:
    """
    A bidirectional TCP flow and its per-direction packet records.

    Attributes:
        transport: Port pair of the first packet seen (upstream orientation)
        network: Address pair of the first packet seen, once known
        up_packets: Records of packets travelling in the upstream direction
        down_packets: Records of packets travelling the other way
        up_counts: Per event type, number of upstream packets carrying it
        down_counts: Per event type, number of downstream packets carrying it
    """
    transport: TransportKey
    network: NetworkKey | None = None
    up_packets: list[PacketRecord] = field(default_factory=list)
    down_packets: list[PacketRecord] = field(default_factory=list)
    up_counts: Counter = field(default_factory=Counter)
    down_counts: Counter = field(default_factory=Counter)

    def label(self, with_addresses: bool = False) -> str:
        """Flow label used for titles and file names."""
        if with_addresses and self.network is not None:
            return (f"{_host(self.network.src_ip)}:{self.transport.src_port}-"
                    f"{_host(self.network.dst_ip)}:{self.transport.dst_port}")
        return str(self.transport)

    def __str__(self) -> str:
        return self.label()

    def packets(self, direction: Direction) -> list[PacketRecord]:
        return self.up_packets if direction.is_up else self.down_packets

    def counts(self, direction: Direction) -> Counter:
        return self.up_counts if direction.is_up else self.down_counts

    @property
    def packet_count(self) -> int:
        return len(self.up_packets) + len(self.down_packets)

    def count_events(self, events: EventType, direction: Direction) -> None:
        """Increment the directional counter once for every event in the set."""
        counts = self.counts(direction)
        for et in EventType.members():
            if et in events:
                counts[et] += 1

    def add_packet(self, pkt: DecodedPacket, direction: Direction) -> PacketRecord:
        """Classify a packet, count its events and append its record."""
        events = classify(pkt.tcp, ip=pkt.ip, ip6=pkt.ip6)
        self.count_events(events, direction)
        record = PacketRecord(pkt.timestamp, pkt.length, events)
        self.packets(direction).append(record)
        return record

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        result = {
            'flow': self.label(),
            'src_port': self.transport.src_port,
            'dst_port': self.transport.dst_port,
            'src_ip': self.network.src_ip if self.network else None,
            'dst_ip': self.network.dst_ip if self.network else None,
            'up_packet_count': len(self.up_packets),
            'down_packet_count': len(self.down_packets),
        }
        for et in EventType.members():
            result[f'up_{et.name.lower()}'] = self.up_counts[et]
            result[f'down_{et.name.lower()}'] = self.down_counts[et]
        return result


class FlowTable:
    """
    Maps canonical transport identities to flow records.

    A transport key is unseen until the first packet carrying it (in either
    orientation) arrives; that packet creates the record under its literal
    key and is upstream. From then on the literal key always resolves to
    UP and its reverse to DOWN.

    Examples:
        >>> table = FlowTable()
        >>> flow, direction = table.admit(pkt)
        >>> direction
        <Direction.UP: 1>
    """

    def __init__(self):
        self._flows: dict[TransportKey, FlowRecord] = {}

    def __len__(self) -> int:
        return len(self._flows)

    def __iter__(self) -> Iterator[FlowRecord]:
        return iter(self._flows.values())

    def __contains__(self, key: TransportKey) -> bool:
        return self.lookup(key) is not None

    def lookup(self, key: TransportKey) -> tuple[FlowRecord, Direction] | None:
        """Resolve a key in either orientation, without creating anything."""
        flow = self._flows.get(key)
        if flow is not None:
            return flow, Direction.UP
        flow = self._flows.get(key.reverse())
        if flow is not None:
            return flow, Direction.DOWN
        return None

    def get(self, key: TransportKey) -> FlowRecord | None:
        found = self.lookup(key)
        return found[0] if found else None

    def admit(self, pkt: DecodedPacket,
              key: TransportKey | None = None) -> tuple[FlowRecord, Direction]:
        """
        Route a TCP packet to its flow and direction, and record it.

        Args:
            pkt: Decoded packet; must carry a TCP layer
            key: Transport identity, derived from the TCP ports when omitted

        Returns:
            (flow record, direction the packet was filed under)
        """
        if key is None:
            key = TransportKey.from_packet(pkt)
        elif pkt.tcp is None:
            raise ValueError("packet has no TCP layer")

        found = self.lookup(key)
        if found is None:
            flow = FlowRecord(transport=key)
            self._flows[key] = flow
            direction = Direction.UP
            logger.debug("new flow %s", key)
        else:
            flow, direction = found

        # Addresses are latched in upstream orientation, once
        if flow.network is None and direction.is_up:
            flow.network = NetworkKey.from_packet(pkt)

        flow.add_packet(pkt, direction)
        return flow, direction

    def flows(self) -> list[FlowRecord]:
        return list(self._flows.values())

    def clear(self) -> None:
        self._flows.clear()
