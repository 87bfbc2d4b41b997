"""
PcapReader - capture file access and header decoding.

Reads pcap and pcapng files through dpkt and decodes each frame down to
the IP and TCP layers for the supported link-layer types (Ethernet,
Linux cooked capture, raw IP, BSD loopback).
"""

from __future__ import annotations

import logging
import struct
import sys
import warnings
from pathlib import Path
from typing import Any, Iterator

import dpkt

from ecnplot.core.packet import DecodedPacket, IPInfo, IP6Info, TCPInfo

logger = logging.getLogger(__name__)


# DLT (Data Link Type) constants
DLT_NULL = 0           # BSD loopback
DLT_EN10MB = 1         # Ethernet
DLT_RAW = 101          # Raw IP
DLT_LOOP = 108         # OpenBSD loopback
DLT_LINUX_SLL = 113    # Linux cooked capture
DLT_IPV4 = 228         # Raw IPv4
DLT_IPV6 = 229         # Raw IPv6

SLL_HDR_LEN = 16
NULL_HDR_LEN = 4

ETH_TYPE_IP = 0x0800
ETH_TYPE_IP6 = 0x86DD

_DECODE_ERRORS = (dpkt.dpkt.Error, struct.error, ValueError, IndexError)


class LinkLayerType:
    """Link layer type support."""
    ETHERNET = "ethernet"
    LINUX_SLL = "linux_sll"
    RAW_IP = "raw_ip"
    NULL = "null"
    LOOP = "loop"
    UNKNOWN = "unknown"


def get_link_layer_type(dlt: int) -> str:
    """Get link layer type name from DLT value."""
    mapping = {
        DLT_EN10MB: LinkLayerType.ETHERNET,
        DLT_LINUX_SLL: LinkLayerType.LINUX_SLL,
        DLT_RAW: LinkLayerType.RAW_IP,
        DLT_IPV4: LinkLayerType.RAW_IP,
        DLT_IPV6: LinkLayerType.RAW_IP,
        DLT_NULL: LinkLayerType.NULL,
        DLT_LOOP: LinkLayerType.LOOP,
    }
    return mapping.get(dlt, LinkLayerType.UNKNOWN)


def decode_raw_ip(buf: bytes) -> Any | None:
    """Decode a buffer starting at the IP header, by version nibble."""
    if not buf:
        return None
    version = (buf[0] >> 4) & 0x0F
    try:
        if version == 4:
            return dpkt.ip.IP(buf)
        if version == 6:
            return dpkt.ip6.IP6(buf)
    except _DECODE_ERRORS:
        return None
    return None


def decode_ethernet(buf: bytes) -> Any | None:
    """Decode an Ethernet frame, returning its IP object (VLAN tags included)."""
    try:
        eth = dpkt.ethernet.Ethernet(buf)
    except _DECODE_ERRORS:
        return None
    net = eth.data
    if isinstance(net, (dpkt.ip.IP, dpkt.ip6.IP6)):
        return net
    return None


def decode_linux_sll(buf: bytes) -> Any | None:
    """
    Decode a Linux cooked capture (SLL) frame.

    SLL header format:
    - Packet type (2 bytes)
    - ARPHRD type (2 bytes)
    - Link-layer address length (2 bytes)
    - Link-layer address (8 bytes)
    - Protocol type (2 bytes)
    """
    if len(buf) < SLL_HDR_LEN:
        return None
    proto = struct.unpack('>H', buf[14:16])[0]
    if proto not in (ETH_TYPE_IP, ETH_TYPE_IP6):
        return None
    return decode_raw_ip(buf[SLL_HDR_LEN:])


def decode_null(buf: bytes) -> Any | None:
    """
    Decode a BSD loopback frame.

    The 4-byte header holds the address family in host byte order; the
    payload version nibble is authoritative, so the family is only used to
    reject obviously foreign frames.
    """
    if len(buf) < NULL_HDR_LEN:
        return None
    af = struct.unpack('=I', buf[0:4])[0]
    if af > 255:
        af = struct.unpack('>I' if sys.byteorder == 'little' else '<I', buf[0:4])[0]
    if af == 0 or af > 255:
        return None
    return decode_raw_ip(buf[NULL_HDR_LEN:])


class PcapReader:
    """
    PCAP file reader with multi-format support.

    Handles standard pcap and pcapng formats. Iterating yields one
    DecodedPacket per frame; frames that do not decode to IP still yield
    a packet with no layers so the caller can count them.

    Examples:
        >>> with PcapReader('capture.pcap') as reader:
        ...     for pkt in reader:
        ...         if pkt.tcp:
        ...             print(pkt.timestamp, pkt.tcp.sport, pkt.tcp.dport)
    """

    def __init__(self, pcap_path: str | Path):
        self.pcap_path = Path(pcap_path)
        self._reader: Any | None = None
        self._file = None
        self._link_layer_type: int | None = None
        self._link_layer_name: str = LinkLayerType.UNKNOWN

    def open(self) -> None:
        """Open the PCAP file and initialize reader."""
        if not self.pcap_path.exists():
            raise FileNotFoundError(f"PCAP file not found: {self.pcap_path}")

        f = open(self.pcap_path, 'rb')
        try:
            self._reader = dpkt.pcap.UniversalReader(f)
            self._link_layer_type = self._reader.datalink()
        except (ValueError, dpkt.dpkt.Error) as e:
            f.close()
            raise ValueError(f"Unknown PCAP format: {e}") from e
        self._file = f

        self._link_layer_name = get_link_layer_type(self._link_layer_type)
        if self._link_layer_name == LinkLayerType.UNKNOWN:
            warnings.warn(
                f"Unsupported link layer type {self._link_layer_type} in {self.pcap_path}; "
                "decoding frames as Ethernet",
                stacklevel=2,
            )
        logger.debug("opened %s (link layer %s)", self.pcap_path, self._link_layer_name)

    def close(self) -> None:
        """Close the PCAP file."""
        self._reader = None
        if self._file:
            self._file.close()
            self._file = None

    def __enter__(self) -> PcapReader:
        self.open()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def link_layer_type(self) -> int:
        """Get the DLT link layer type."""
        if self._link_layer_type is None:
            raise RuntimeError("Reader not opened")
        return self._link_layer_type

    @property
    def link_layer_name(self) -> str:
        """Get the link layer type name."""
        return self._link_layer_name

    def __iter__(self) -> Iterator[DecodedPacket]:
        """Iterate over decoded packets in the PCAP file."""
        if self._reader is None:
            raise RuntimeError("Reader not opened. Call open() first.")

        try:
            for ts, buf in self._reader:
                yield self.decode_packet(ts, buf)
        except (dpkt.dpkt.NeedData, dpkt.dpkt.UnpackError) as e:
            # A truncated trailing record ends the capture
            logger.warning("%s: capture truncated, stopping early (%s)", self.pcap_path, e)

    def decode_network(self, buf: bytes) -> Any | None:
        """Strip the link layer and return the dpkt IP / IP6 object, if any."""
        if self._link_layer_name == LinkLayerType.LINUX_SLL:
            return decode_linux_sll(buf)
        elif self._link_layer_name == LinkLayerType.RAW_IP:
            return decode_raw_ip(buf)
        elif self._link_layer_name in (LinkLayerType.NULL, LinkLayerType.LOOP):
            return decode_null(buf)
        else:
            return decode_ethernet(buf)

    def decode_packet(self, ts: float, buf: bytes) -> DecodedPacket:
        """Decode one captured frame into a DecodedPacket."""
        pkt = DecodedPacket(timestamp=float(ts), length=len(buf))

        net = self.decode_network(buf)
        if net is None:
            return pkt

        if isinstance(net, dpkt.ip.IP):
            pkt.ip = IPInfo.from_dpkt(net)
            # Non-initial fragments carry no transport header
            if net.offset > 0:
                return pkt
        else:
            pkt.ip6 = IP6Info.from_dpkt(net)

        transport = net.data
        if isinstance(transport, dpkt.tcp.TCP):
            pkt.tcp = TCPInfo.from_dpkt(transport)
        return pkt

