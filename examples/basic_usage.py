"""
Basic ecnplot usage example.

Demonstrates:
- Reading a pcap file into bidirectional TCP flows
- Printing per-direction event counts
- Smoothing and inspecting the CE proportion of the downstream direction
- Writing the xplot documents and a per-packet CSV
"""

import sys

from ecnplot import EcnAnalyzer, EventType, to_csv

pcap = sys.argv[1] if len(sys.argv) > 1 else 'capture.pcap'

# Window radius of 20 packets, connecting lines on, documents into plots/
analyzer = EcnAnalyzer(window=20, lines=True, output_dir='plots')

table = analyzer.analyze_file(pcap)
print(f"Total flows: {len(table)}")
print()

for flow in table:
    for line in analyzer.summary(flow):
        print(line)

analyzer.process(table)

for flow in table:
    down = flow.down_packets
    if not down:
        continue
    peak = max(down, key=lambda r: r.proportion(EventType.CE))
    print(f"{flow.label()}: peak downstream CE proportion "
          f"{peak.proportion(EventType.CE):.3f} at {peak.timeval}")

result = analyzer.write(table)
for path in result.written:
    print(f"wrote {path}")
for label, err in result.errors:
    print(f"failed {label}: {err}")

to_csv(table, 'plots/series.csv')
