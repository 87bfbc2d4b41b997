"""
Sliding-window event proportions.

For packet i of an n-packet direction the window is the index range
[max(0, i - radius), min(n, i + radius)), i.e. up to ``radius`` packets
before it and ``radius - 1`` after it, clipped at the ends of the
sequence. Every packet records, per event type, how many packets of its
window carry the event, together with the window size, so that
``count / window_size`` is the smoothed proportion.

Counting uses prefix sums over an (n x 6) event matrix, which gives the
same numbers as counting each window directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

import numpy as np

from ecnplot.core.events import EventType

if TYPE_CHECKING:
    from ecnplot.core.flow import FlowRecord
    from ecnplot.core.packet import PacketRecord

DEFAULT_WINDOW = 50

_EVENT_TYPES = tuple(EventType.members())


def window_bounds(i: int, n: int, radius: int) -> tuple[int, int]:
    """
    Index range [lo, hi) of the smoothing window of packet i.

    A radius of 0 keeps the packet itself in its window, so every window
    of a non-empty sequence holds at least one packet.
    """
    if radius == 0:
        return i, i + 1
    return max(0, i - radius), min(n, i + radius)


def event_matrix(records: Sequence[PacketRecord]) -> np.ndarray:
    """Boolean (n x event type) matrix of which packet carries which event."""
    matrix = np.zeros((len(records), len(_EVENT_TYPES)), dtype=bool)
    for row, record in enumerate(records):
        for col, et in enumerate(_EVENT_TYPES):
            matrix[row, col] = et in record.events
    return matrix


def window_counts(matrix: np.ndarray, radius: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Per-packet window sizes and per-event window counts.

    Args:
        matrix: Boolean event matrix from event_matrix()
        radius: Window radius (>= 0)

    Returns:
        (sizes, counts) where sizes has shape (n,) and counts (n, event types)
    """
    n = matrix.shape[0]
    idx = np.arange(n)
    if radius == 0:
        lo, hi = idx, idx + 1
    else:
        lo = np.maximum(idx - radius, 0)
        hi = np.minimum(idx + radius, n)

    prefix = np.zeros((n + 1, matrix.shape[1]), dtype=np.int64)
    prefix[1:] = np.cumsum(matrix, axis=0, dtype=np.int64)
    return hi - lo, prefix[hi] - prefix[lo]


def smooth(records: Sequence[PacketRecord], radius: int = DEFAULT_WINDOW) -> None:
    """
    Fill in window counts and window size of every record, in place.

    Re-running with the same radius over the same records writes the same
    values again. An empty sequence is left untouched.

    Raises:
        ValueError: If radius is negative
    """
    if radius < 0:
        raise ValueError(f"window radius must be >= 0, got {radius}")
    if not records:
        return

    sizes, counts = window_counts(event_matrix(records), radius)
    for i, record in enumerate(records):
        record.window_size = int(sizes[i])
        record.counts = {et: int(counts[i, col]) for col, et in enumerate(_EVENT_TYPES)}


def smooth_flow(flow: FlowRecord, radius: int = DEFAULT_WINDOW) -> FlowRecord:
    """Smooth both directions of a flow independently."""
    smooth(flow.up_packets, radius)
    smooth(flow.down_packets, radius)
    return flow
