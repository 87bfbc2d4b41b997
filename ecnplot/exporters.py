"""
Export functionality for flows and smoothed event series.

Provides tabular views of the analysis next to the xplot documents:
one row per flow with its event counts, or one row per packet with its
window size and per event type proportion.

Examples:
    Per-packet series as a pandas DataFrame:
        >>> from ecnplot import EcnAnalyzer, to_dataframe
        >>> analyzer = EcnAnalyzer(window=20)
        >>> table = analyzer.analyze_file('capture.pcap')
        >>> analyzer.process(table)
        >>> df = to_dataframe(table)
        >>> df[df['direction'] == 'down'][['timestamp', 'ce', 'ece']]

    Flow summary to CSV:
        >>> from ecnplot import to_csv
        >>> to_csv(table, 'flows.csv', series=False)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

import pandas as pd

from ecnplot.core.events import EventType
from ecnplot.core.flow import Direction

if TYPE_CHECKING:
    from ecnplot.core.flow import FlowRecord


def series_rows(flows: Iterable[FlowRecord], with_addresses: bool = False) -> list[dict]:
    """
    Flatten flows into one dict per packet.

    Each row carries the flow label, direction, packet index within the
    direction, timestamp, length, window size, and for every event type
    whether it fired (``<name>_fired``) and its window proportion
    (``<name>``).
    """
    rows = []
    for flow in flows:
        label = flow.label(with_addresses)
        for direction in (Direction.UP, Direction.DOWN):
            for index, record in enumerate(flow.packets(direction)):
                row = {
                    'flow': label,
                    'direction': direction.name.lower(),
                    'index': index,
                    'timestamp': record.timestamp,
                    'length': record.length,
                    'window_size': record.window_size,
                }
                for et in EventType.members():
                    name = et.name.lower()
                    row[f'{name}_fired'] = et in record.events
                    row[name] = record.proportion(et)
                rows.append(row)
    return rows


def to_dict(flows: Iterable[FlowRecord]) -> list[dict]:
    """Convert flows to a list of summary dictionaries."""
    return [flow.to_dict() for flow in flows]


def to_dataframe(flows: Iterable[FlowRecord], series: bool = True,
                 with_addresses: bool = False) -> pd.DataFrame:
    """
    Convert flows to a pandas DataFrame.

    Args:
        flows: Flow records (a FlowTable works too)
        series: One row per packet when True, one row per flow when False
        with_addresses: Label flows with address:port pairs when known

    Returns:
        pandas DataFrame
    """
    if series:
        columns = ['flow', 'direction', 'index', 'timestamp', 'length', 'window_size']
        for et in EventType.members():
            columns += [f'{et.name.lower()}_fired', et.name.lower()]
        return pd.DataFrame(series_rows(flows, with_addresses), columns=columns)
    return pd.DataFrame(to_dict(flows))


def to_csv(flows: Iterable[FlowRecord], path: str | Path, series: bool = True,
           with_addresses: bool = False) -> None:
    """Export flows to a CSV file (see to_dataframe for the layout)."""
    df = to_dataframe(flows, series=series, with_addresses=with_addresses)
    df.to_csv(path, index=False)


def to_json(flows: Iterable[FlowRecord], path: str | Path, indent: int = 2) -> None:
    """Export flow summaries to a JSON file."""
    path = Path(path)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(to_dict(flows), f, indent=indent, default=str)
