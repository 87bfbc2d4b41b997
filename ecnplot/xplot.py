"""
xplot document output.

Writes the smoothed event proportions of a flow as an xplot time-series
document: a header naming the flow and the axes, one marker per plotted
event occurrence (optionally labelled and joined to the previous
occurrence by a line), and the ``go`` trailer.

Examples:
    Write one document per flow into a directory:
        >>> from ecnplot import EcnAnalyzer, write_flows
        >>> analyzer = EcnAnalyzer()
        >>> table = analyzer.analyze_file('capture.pcap')
        >>> analyzer.process(table)
        >>> result = write_flows(table, 'plots', lines=True)
        >>> result.written
        [PosixPath('plots/40000-5201.xpl')]

    Write a single flow to any text stream:
        >>> import io
        >>> buf = io.StringIO()
        >>> write_flow(flow, buf)
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence, TextIO

from ecnplot.core.events import EVENT_DISPLAY, EventDisplay, EventType

if TYPE_CHECKING:
    from ecnplot.core.flow import FlowRecord
    from ecnplot.core.packet import PacketRecord

logger = logging.getLogger(__name__)

TIME_AXIS = "timeval"
VALUE_AXIS = "double"
TRAILER = "go"
FILE_SUFFIX = ".xpl"


class XplotWriter:
    """
    Emits xplot commands for one document.

    The writer remembers which event types were already labelled, so a
    fresh writer is needed per document.
    """

    def __init__(self, stream: TextIO, display: Mapping[EventType, EventDisplay] = EVENT_DISPLAY,
                 lines: bool = False):
        self.stream = stream
        self.display = display
        self.lines = lines
        self._labelled = EventType(0)

    def _emit(self, *parts) -> None:
        self.stream.write(' '.join(str(p) for p in parts) + '\n')

    def header(self, title: str) -> None:
        self._emit(TIME_AXIS, VALUE_AXIS)
        self._emit("title")
        self._emit(title)
        self._emit("xlabel")
        self._emit("Time")
        self._emit("ylabel")
        self._emit("Proportion")

    def trailer(self) -> None:
        self._emit(TRAILER)

    def marker(self, symbol: str, record: PacketRecord, et: EventType, color: str) -> None:
        self._emit(symbol, record.timeval, f"{record.proportion(et):f}", color)

    def label(self, cfg: EventDisplay, record: PacketRecord, et: EventType) -> None:
        self._emit(cfg.text_item, record.timeval, f"{record.proportion(et):f}", cfg.color)
        self._emit(cfg.label)

    def connector(self, prev: PacketRecord, record: PacketRecord, et: EventType, color: str) -> None:
        self._emit("line", prev.timeval, f"{prev.proportion(et):f}",
                   record.timeval, f"{record.proportion(et):f}", color)

    def direction(self, records: Sequence[PacketRecord], up: bool) -> None:
        """Emit the markers of one flow direction, in capture order."""
        for i, record in enumerate(records):
            for et in EventType.members():
                cfg = self.display[et]
                if et not in record.events and not cfg.plot_all(up):
                    continue
                if not cfg.plot:
                    continue

                self.marker(cfg.symbol(up), record, et, cfg.color)
                if cfg.label_all or et not in self._labelled:
                    self.label(cfg, record, et)
                    self._labelled |= et

                if self.lines:
                    prev = previous_occurrence(records, i, et)
                    if prev is not None:
                        self.connector(prev, record, et, cfg.color)


def previous_occurrence(records: Sequence[PacketRecord], i: int,
                        et: EventType) -> PacketRecord | None:
    """Nearest record before index i carrying the event, however far back."""
    for j in range(i - 1, -1, -1):
        if et in records[j].events:
            return records[j]
    return None


def write_flow(flow: FlowRecord, stream: TextIO, lines: bool = False,
               display: Mapping[EventType, EventDisplay] = EVENT_DISPLAY,
               with_addresses: bool = False) -> None:
    """
    Write the xplot document of one smoothed flow.

    Args:
        flow: Flow whose records were filled in by the window smoother
        stream: Text stream to write to
        lines: Join each marker to the previous occurrence of its event type
        display: Per event type drawing configuration
        with_addresses: Title the plot with address:port pairs when known
    """
    writer = XplotWriter(stream, display=display, lines=lines)
    writer.header(flow.label(with_addresses))
    writer.direction(flow.up_packets, up=True)
    writer.direction(flow.down_packets, up=False)
    writer.trailer()


def document_path(flow: FlowRecord, output_dir: str | Path = ".",
                  with_addresses: bool = False) -> Path:
    """File name of a flow's document: its label plus the .xpl suffix."""
    return Path(output_dir) / (flow.label(with_addresses) + FILE_SUFFIX)


@dataclass
class XplotResult:
    """Outcome of writing a batch of documents."""
    written: list[Path] = field(default_factory=list)
    errors: list[tuple[str, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def write_flows(flows: Iterable[FlowRecord], output_dir: str | Path = ".",
                lines: bool = False,
                display: Mapping[EventType, EventDisplay] = EVENT_DISPLAY,
                with_addresses: bool = False) -> XplotResult:
    """
    Write one xplot document per flow.

    A flow whose document cannot be written is logged and recorded in
    the result; the remaining flows are still written.

    Returns:
        XplotResult listing written paths and per-flow failures
    """
    result = XplotResult()
    for flow in flows:
        path = document_path(flow, output_dir, with_addresses)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                write_flow(flow, f, lines=lines, display=display,
                           with_addresses=with_addresses)
        except OSError as e:
            logger.error("cannot write %s: %s", path, e)
            result.errors.append((flow.label(with_addresses), e))
            continue
        logger.debug("wrote %s", path)
        result.written.append(path)
    return result
