"""Configuration, fixtures and capture builders for pytest tests."""

import dpkt
import pytest
import socket
import struct
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ecnplot.core.packet import (
    DecodedPacket, IPInfo, IP6Info, TCPInfo,
    TH_ACK, TH_SYN,
)

DLT_NULL = 0
DLT_EN10MB = 1
DLT_RAW = 101
DLT_LINUX_SLL = 113

CLIENT_IP = "10.9.254.10"
SERVER_IP = "10.9.0.10"
CLIENT_PORT = 40000
SERVER_PORT = 5201


def tcp_header(sport, dport, flags, seq=1, ack=0, win=8192):
    """20-byte TCP header; flags may include NS (0x100)."""
    return struct.pack('>HHIIHHHH', sport, dport, seq, ack,
                       (5 << 12) | (flags & 0x1ff), win, 0, 0)


def ipv4_packet(src, dst, payload, tos=0, proto=6):
    header = struct.pack('>BBHHHBBH4s4s',
                         0x45, tos, 20 + len(payload), 1, 0, 64, proto, 0,
                         socket.inet_aton(src), socket.inet_aton(dst))
    return header + payload


def ipv6_packet(src, dst, payload, traffic_class=0, next_header=6):
    first_word = (6 << 28) | ((traffic_class & 0xff) << 20)
    header = struct.pack('>IHBB16s16s', first_word, len(payload), next_header, 64,
                         socket.inet_pton(socket.AF_INET6, src),
                         socket.inet_pton(socket.AF_INET6, dst))
    return header + payload


def ethernet_frame(payload, ethertype=0x0800):
    return b'\x00\x11\x22\x33\x44\x55' + b'\x00\xaa\xbb\xcc\xdd\xee' + struct.pack('>H', ethertype) + payload


def sll_frame(payload, proto=0x0800):
    return struct.pack('>HHH8sH', 0, 1, 6, b'\x00' * 8, proto) + payload


def null_frame(payload, family=2, byteorder="<"):
    """BSD loopback frame; the address family word is in the writer's byte order."""
    return struct.pack(byteorder + "I", family) + payload


def tcp_frame(src=CLIENT_IP, dst=SERVER_IP, sport=CLIENT_PORT, dport=SERVER_PORT,
              flags=TH_ACK, tos=0, data=b''):
    """Ethernet / IPv4 / TCP frame."""
    return ethernet_frame(ipv4_packet(src, dst, tcp_header(sport, dport, flags) + data, tos=tos))


def write_pcap(path, frames, link_type=DLT_EN10MB, start=1000.0, step=0.001):
    """
    Write a little-endian microsecond pcap file.

    Args:
        path: Output path
        frames: Iterable of raw frames, or (timestamp, frame) pairs
        link_type: DLT value for the file header
        start: Timestamp of the first frame when frames carry none
        step: Spacing between frames when frames carry no timestamp
    """
    with open(path, 'wb') as f:
        f.write(struct.pack('<IHHiIiI', 0xa1b2c3d4, 2, 4, 0, 0, 65535, link_type))
        for i, item in enumerate(frames):
            if isinstance(item, tuple):
                ts, frame = item
            else:
                ts, frame = start + i * step, item
            usec_total = int(round(ts * 1_000_000))
            sec, usec = divmod(usec_total, 1_000_000)
            f.write(struct.pack('<IIII', sec, usec, len(frame), len(frame)))
            f.write(frame)
    return path


def write_pcapng(path, frames, link_type=DLT_EN10MB, start=1000.0, step=0.001):
    """Write a pcapng file through dpkt's writer."""
    with open(path, 'wb') as f:
        writer = dpkt.pcapng.Writer(f, linktype=link_type)
        for i, frame in enumerate(frames):
            writer.writepkt(frame, ts=start + i * step)
    return path


def truncate_tail(path, junk=b'\x01\x02\x03'):
    """Append a partial record header, as left by an interrupted capture."""
    with open(path, 'ab') as f:
        f.write(junk)
    return path


def decoded(sport=CLIENT_PORT, dport=SERVER_PORT, flags=TH_ACK, tos=None, tc=None,
            ts=0.0, length=60, src=CLIENT_IP, dst=SERVER_IP):
    """Build a DecodedPacket directly, without going through a capture."""
    ip = IPInfo(src=src, dst=dst, tos=tos) if tos is not None else None
    ip6 = IP6Info(src=src, dst=dst, traffic_class=tc) if tc is not None else None
    return DecodedPacket(timestamp=ts, length=length, ip=ip, ip6=ip6,
                         tcp=TCPInfo(sport=sport, dport=dport, flags=flags))


@pytest.fixture
def make_pcap(tmp_path):
    """Factory fixture writing a pcap into the test's temp directory."""
    def _make(frames, name='test.pcap', link_type=DLT_EN10MB, **kwargs):
        return write_pcap(tmp_path / name, frames, link_type=link_type, **kwargs)
    return _make


@pytest.fixture
def handshake_ce_pcap(make_pcap):
    """SYN upstream, then a CE-marked segment in the reverse direction."""
    return make_pcap([
        tcp_frame(flags=TH_SYN, tos=0x02),
        tcp_frame(src=SERVER_IP, dst=CLIENT_IP, sport=SERVER_PORT, dport=CLIENT_PORT,
                  flags=TH_ACK, tos=0x03),
    ])
