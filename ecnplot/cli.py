"""Command line interface: ecnplot [-l] [-w N] pcapfile"""

from __future__ import annotations

import argparse
import logging
import sys

from ecnplot.core.analyzer import AnalyzerConfig, EcnAnalyzer
from ecnplot.core.smoother import DEFAULT_WINDOW
from ecnplot.exporters import to_csv

logger = logging.getLogger("ecnplot")


def setup_logger(level: int = logging.INFO) -> logging.Logger:
    """Attach a console handler to the package logger (once)."""
    logger.setLevel(level)

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s')
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
    else:
        for handler in logger.handlers:
            handler.setLevel(level)

    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ecnplot',
        description='Plot ECN codepoint and TCP congestion flag proportions per flow as xplot files',
    )
    parser.add_argument('pcapfile', help='pcap or pcapng capture to analyze')
    parser.add_argument('-w', '--window', type=int, default=DEFAULT_WINDOW,
                        help='proportion window size (default: %(default)s)')
    parser.add_argument('-l', '--lines', action='store_true',
                        help='plot lines between points')
    parser.add_argument('-o', '--output-dir', default='.',
                        help='directory for the .xpl files (default: current directory)')
    parser.add_argument('-a', '--addresses', action='store_true',
                        help='label flows with address:port pairs instead of ports only')
    parser.add_argument('-j', '--workers', type=int, default=1,
                        help='threads used for smoothing (default: %(default)s)')
    parser.add_argument('--csv', metavar='FILE',
                        help='also write the smoothed per-packet series as CSV')
    parser.add_argument('-v', '--verbose', action='store_true', help='debug logging')
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logger(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        config = AnalyzerConfig(
            window=args.window,
            lines=args.lines,
            output_dir=args.output_dir,
            with_addresses=args.addresses,
            workers=args.workers,
        )
    except ValueError as e:
        parser.error(str(e))

    analyzer = EcnAnalyzer(config)
    try:
        table = analyzer.analyze_file(args.pcapfile)
    except (OSError, ValueError) as e:
        print(f"Unable to open pcap file {args.pcapfile} ({e})", file=sys.stderr)
        return 1

    for flow in table:
        for line in analyzer.summary(flow):
            print(line)

    analyzer.process(table)
    result = analyzer.write(table)

    if args.csv:
        try:
            to_csv(table, args.csv, with_addresses=args.addresses)
        except OSError as e:
            print(f"Error writing {args.csv}: {e}", file=sys.stderr)
            return 1

    if not result.ok:
        for label, err in result.errors:
            print(f"Error writing plot for {label}: {err}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
