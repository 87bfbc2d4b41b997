"""Test xplot document output."""

import io

from ecnplot.core.events import EVENT_DISPLAY, EventDisplay, EventType
from ecnplot.core.flow import FlowTable, FlowRecord, NetworkKey, TransportKey
from ecnplot.core.packet import PacketRecord, TH_ACK, TH_ECE, format_timeval
from ecnplot.core.smoother import smooth_flow
from ecnplot.xplot import (
    XplotWriter,
    document_path,
    previous_occurrence,
    write_flow,
    write_flows,
)

from conftest import decoded, CLIENT_IP, SERVER_IP, CLIENT_PORT, SERVER_PORT

HEADER = ["timeval double", "title", "40000-5201", "xlabel", "Time", "ylabel", "Proportion"]

CE_ONLY = {et: EventDisplay(plot=False, color="white", label=et.name) for et in EventType.members()}
CE_ONLY[EventType.CE] = EventDisplay(plot=True, color="red", label="CE")


def render(flow, **kwargs):
    buf = io.StringIO()
    write_flow(flow, buf, **kwargs)
    return buf.getvalue().splitlines()


def reply(**kwargs):
    return decoded(sport=SERVER_PORT, dport=CLIENT_PORT, src=SERVER_IP, dst=CLIENT_IP, **kwargs)


def flow_from_patterns(up, down=(), radius=50):
    """Flow with the given upstream / downstream event sets, timestamps 1.0, 2.0, ..."""
    flow = FlowRecord(transport=TransportKey(CLIENT_PORT, SERVER_PORT))
    flow.up_packets = [PacketRecord(float(i + 1), 60, ev) for i, ev in enumerate(up)]
    flow.down_packets = [PacketRecord(float(i + 1) + 0.5, 60, ev) for i, ev in enumerate(down)]
    return smooth_flow(flow, radius)


def test_format_timeval():
    """Test seconds.microseconds formatting."""
    assert format_timeval(1.0) == "1.000000"
    assert format_timeval(1700000000.123456) == "1700000000.123456"
    assert format_timeval(5.0000004) == "5.000000"
    assert format_timeval(5.9999996) == "6.000000"


def test_full_document():
    """Test the complete document of a small two-direction flow."""
    table = FlowTable()
    table.admit(decoded(ts=1.0, tos=0x03))
    table.admit(reply(ts=1.5, tos=0x03))
    flow, _ = table.admit(decoded(ts=2.0, flags=TH_ACK | TH_ECE))
    smooth_flow(flow, 50)

    assert render(flow) == HEADER + [
        # upstream packet 1: SCE is drawn on every upstream packet, CE fired
        "rarrow 1.000000 0.000000 yellow",
        "ltext 1.000000 0.000000 yellow",
        "SCE",
        "rarrow 1.000000 0.500000 red",
        "ltext 1.000000 0.500000 red",
        "CE",
        # upstream packet 2: ECE fired
        "rarrow 2.000000 0.000000 yellow",
        "rarrow 2.000000 0.500000 blue",
        "ltext 2.000000 0.500000 blue",
        "ECE",
        # downstream packet: CE labelled again (label_all)
        "larrow 1.500000 1.000000 red",
        "ltext 1.500000 1.000000 red",
        "CE",
        "go",
    ]


def test_label_all_labels_every_marker():
    """Test an event with label_all gets a label pair after every marker."""
    flow = flow_from_patterns([EventType.CE] * 4)
    lines = render(flow)
    body = lines[len(HEADER):-1]
    ce_markers = [i for i, line in enumerate(body) if line.startswith("rarrow") and line.endswith(" red")]
    assert len(ce_markers) == 4
    for i in ce_markers:
        assert body[i + 1].startswith("ltext ")
        assert body[i + 1].endswith(" red")
        assert body[i + 2] == "CE"


def test_first_occurrence_label_only():
    """Test an event without label_all is labelled on its first marker only."""
    flow = flow_from_patterns([EventType.ECE, EventType.ECE], [EventType.ECE])
    body = render(flow)[len(HEADER):-1]
    assert body.count("ECE") == 1
    assert sum(1 for line in body if line.startswith("ltext") and line.endswith(" blue")) == 1
    assert sum(1 for line in body if line.endswith(" blue") and "arrow" in line) == 3


def test_unplotted_event_emits_nothing():
    """Test ECT is classified but never drawn with the default table."""
    flow = flow_from_patterns([EventType.ECT, EventType.ECT])
    body = render(flow)[len(HEADER):-1]
    assert not any(line.endswith(" white") for line in body)
    assert "ECT" not in body


def test_plot_all_up_only_upstream():
    """Test SCE is drawn on every upstream packet but only fired downstream ones."""
    flow = flow_from_patterns([EventType(0)] * 3, [EventType(0), EventType.SCE])
    body = render(flow)[len(HEADER):-1]
    up_sce = [line for line in body if line.startswith("rarrow") and line.endswith(" yellow")]
    down_sce = [line for line in body if line.startswith("larrow") and line.endswith(" yellow")]
    assert len(up_sce) == 3
    assert down_sce == ["larrow 2.500000 0.500000 yellow"]


def test_custom_display_table():
    """Test a caller-supplied display table is honoured."""
    flow = flow_from_patterns([EventType.CE, EventType.ECE, EventType.SCE])
    body = render(flow, display=CE_ONLY)[len(HEADER):-1]
    assert body == [
        "rarrow 1.000000 0.333333 red",
        "ltext 1.000000 0.333333 red",
        "CE",
    ]


def test_connecting_lines():
    """Test each marker is joined to the previous occurrence of its event."""
    flow = flow_from_patterns([EventType.CE, EventType(0), EventType(0), EventType.CE, EventType.CE])
    body = render(flow, lines=True, display=CE_ONLY)[len(HEADER):-1]
    assert body == [
        "rarrow 1.000000 0.600000 red",
        "ltext 1.000000 0.600000 red",
        "CE",
        "rarrow 4.000000 0.600000 red",
        "line 1.000000 0.600000 4.000000 0.600000 red",
        "rarrow 5.000000 0.600000 red",
        "line 4.000000 0.600000 5.000000 0.600000 red",
    ]


def test_lines_stay_within_direction():
    """Test connectors never join packets of different directions."""
    flow = flow_from_patterns([EventType.CE], [EventType.CE])
    body = render(flow, lines=True, display=CE_ONLY)
    assert not any(line.startswith("line ") for line in body)


def test_previous_occurrence_unbounded():
    """Test the backward scan finds the nearest earlier occurrence at any distance."""
    records = [PacketRecord(float(i), 60, EventType(0)) for i in range(200)]
    records[0].events = EventType.CE
    records[150].events = EventType.CE
    assert previous_occurrence(records, 199, EventType.CE) is records[150]
    assert previous_occurrence(records, 150, EventType.CE) is records[0]
    assert previous_occurrence(records, 0, EventType.CE) is None
    assert previous_occurrence(records, 199, EventType.ECE) is None


def test_title_with_addresses():
    """Test the title uses address:port pairs when requested."""
    flow = flow_from_patterns([])
    flow.network = NetworkKey("10.0.0.1", "10.0.0.2")
    lines = render(flow, with_addresses=True)
    assert lines[2] == "10.0.0.1:40000-10.0.0.2:5201"
    assert lines[-1] == "go"


def test_empty_flow_document():
    """Test a flow without packets still yields header and trailer."""
    assert render(flow_from_patterns([])) == HEADER + ["go"]


def test_labelled_set_is_per_writer():
    """Test a new writer starts with nothing labelled."""
    flow = flow_from_patterns([EventType.ECE])
    assert render(flow).count("ECE") == 1
    assert render(flow).count("ECE") == 1

    buf = io.StringIO()
    writer = XplotWriter(buf, display=EVENT_DISPLAY)
    writer.direction(flow.up_packets, up=True)
    writer.direction(flow.up_packets, up=True)
    assert buf.getvalue().splitlines().count("ECE") == 1


def test_write_flows_one_file_per_flow(tmp_path):
    """Test documents are named after the flow label."""
    table = FlowTable()
    table.admit(decoded(sport=1, dport=2, tos=3))
    table.admit(decoded(sport=3, dport=4, tos=3))
    for flow in table:
        smooth_flow(flow, 50)

    result = write_flows(table, tmp_path)
    assert result.ok
    assert sorted(p.name for p in result.written) == ["1-2.xpl", "3-4.xpl"]
    content = (tmp_path / "1-2.xpl").read_text().splitlines()
    assert content[:3] == ["timeval double", "title", "1-2"]
    assert content[-1] == "go"


def test_write_flows_continues_after_failure(tmp_path):
    """Test one unwritable document does not stop the others."""
    table = FlowTable()
    table.admit(decoded(sport=1, dport=2))
    table.admit(decoded(sport=3, dport=4))
    for flow in table:
        smooth_flow(flow, 50)
    # A directory where the first document should go makes it unwritable
    (tmp_path / "1-2.xpl").mkdir()

    result = write_flows(table, tmp_path)
    assert not result.ok
    assert [label for label, _ in result.errors] == ["1-2"]
    assert isinstance(result.errors[0][1], OSError)
    assert [p.name for p in result.written] == ["3-4.xpl"]
    assert (tmp_path / "3-4.xpl").is_file()


def test_document_path():
    """Test document naming with and without addresses."""
    flow = FlowRecord(transport=TransportKey(1, 2), network=NetworkKey("10.0.0.1", "10.0.0.2"))
    assert document_path(flow, "out").as_posix() == "out/1-2.xpl"
    assert document_path(flow, "out", with_addresses=True).name == "10.0.0.1:1-10.0.0.2:2.xpl"
