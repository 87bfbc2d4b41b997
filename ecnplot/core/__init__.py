"""Core ecnplot modules."""

from ecnplot.core.analyzer import EcnAnalyzer, AnalyzerConfig, summarize
from ecnplot.core.events import EventType, ECNCodepoint, EventDisplay, EVENT_DISPLAY, classify
from ecnplot.core.flow import Direction, FlowRecord, FlowTable, NetworkKey, TransportKey
from ecnplot.core.packet import DecodedPacket, IPInfo, IP6Info, PacketRecord, TCPInfo
from ecnplot.core.reader import PcapReader, LinkLayerType
from ecnplot.core.smoother import DEFAULT_WINDOW, smooth, smooth_flow, window_bounds

__all__ = [
    'EcnAnalyzer',
    'AnalyzerConfig',
    'summarize',
    'EventType',
    'ECNCodepoint',
    'EventDisplay',
    'EVENT_DISPLAY',
    'classify',
    'Direction',
    'FlowRecord',
    'FlowTable',
    'NetworkKey',
    'TransportKey',
    'DecodedPacket',
    'IPInfo',
    'IP6Info',
    'PacketRecord',
    'TCPInfo',
    'PcapReader',
    'LinkLayerType',
    'DEFAULT_WINDOW',
    'smooth',
    'smooth_flow',
    'window_bounds',
]
