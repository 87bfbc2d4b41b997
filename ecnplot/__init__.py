"""
ecnplot - ECN and TCP congestion-signal plots from packet captures

Reads a pcap/pcapng file, groups TCP segments into bidirectional flows,
classifies each segment by ECN codepoint (ECT, SCE, CE) and TCP flags
(ECE, CWR, NS), smooths every event type into a sliding-window proportion
and writes one xplot document per flow.

Example usage:
    from ecnplot import EcnAnalyzer, EventType

    analyzer = EcnAnalyzer(window=50, lines=True)
    table = analyzer.analyze_file('capture.pcap')
    analyzer.process(table)

    for flow in table:
        print(f"Flow: {flow.label()}")
        print(f"  Up CE: {flow.up_counts[EventType.CE]}")
        print(f"  Down ECE: {flow.down_counts[EventType.ECE]}")

    analyzer.write(table)
"""

from ecnplot.core.analyzer import EcnAnalyzer, AnalyzerConfig, summarize
from ecnplot.core.events import EventType, ECNCodepoint, EventDisplay, EVENT_DISPLAY, classify
from ecnplot.core.flow import Direction, FlowRecord, FlowTable, NetworkKey, TransportKey
from ecnplot.core.packet import DecodedPacket, PacketRecord
from ecnplot.core.reader import PcapReader
from ecnplot.core.smoother import DEFAULT_WINDOW, smooth, smooth_flow
from ecnplot.xplot import XplotWriter, XplotResult, write_flow, write_flows
from ecnplot.exporters import to_dataframe, to_dict, to_csv, to_json

__version__ = "0.1.0"

__all__ = [
    # Main class
    'EcnAnalyzer',
    'AnalyzerConfig',
    'summarize',

    # Events
    'EventType',
    'ECNCodepoint',
    'EventDisplay',
    'EVENT_DISPLAY',
    'classify',

    # Flows
    'Direction',
    'FlowRecord',
    'FlowTable',
    'NetworkKey',
    'TransportKey',
    'DecodedPacket',
    'PacketRecord',
    'PcapReader',

    # Smoothing
    'DEFAULT_WINDOW',
    'smooth',
    'smooth_flow',

    # xplot output
    'XplotWriter',
    'XplotResult',
    'write_flow',
    'write_flows',

    # Exporters
    'to_dataframe',
    'to_dict',
    'to_csv',
    'to_json',
]
