#!/usr/bin/env python3
"""
Closed-loop arbitrage detection CLI.

Runs one detection pass over a JSON pool snapshot and prints the profitable
loops as a table (or JSON records).

Usage:
    python3 run_detector.py --snapshot configs/sample_snapshot.json
    python3 run_detector.py --snapshot snap.json --config configs/detector.yaml
    python3 run_detector.py --snapshot snap.json --json
"""

import argparse
import json
import logging
import sys
from typing import List, Optional, Sequence

from tabulate import tabulate

import logging_config
from loop_arbitrage.config_loader import load_detector_config
from loop_arbitrage.dex.detector import OpportunityDetector
from loop_arbitrage.dex.opportunity_math import summarize
from loop_arbitrage.dex.snapshot import load_snapshot_file
from loop_arbitrage.dex.types import DetectedOpportunity
from loop_arbitrage.exceptions import ConfigurationError, DataError
from loop_arbitrage.utils import short_address
from loop_arbitrage.version import get_version


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Closed-loop DEX arbitrage detector",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan a snapshot with default thresholds
  python3 run_detector.py --snapshot configs/sample_snapshot.json

  # Use custom thresholds
  python3 run_detector.py --snapshot snap.json --config configs/detector.yaml

  # Restrict the token universe and print JSON records
  python3 run_detector.py --snapshot snap.json --tokens 0xaaa,0xbbb --json
        """,
    )

    parser.add_argument(
        "--snapshot",
        required=True,
        help="Path to JSON snapshot with pools, decimals and prices",
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to detector YAML config (default: built-in thresholds)",
    )

    parser.add_argument(
        "--chain-id",
        type=int,
        default=None,
        help="Only consider pools of this chain",
    )

    parser.add_argument(
        "--tokens",
        default=None,
        help="Comma-separated token universe (default: every token in the snapshot)",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print opportunities as JSON records instead of a table",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {get_version()}",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def format_table(opportunities: List[DetectedOpportunity]) -> str:
    """Render opportunities as a grid table."""
    rows = []
    for opp in opportunities:
        rows.append(
            [
                opp.kind.value,
                " -> ".join(short_address(t) for t in opp.path),
                f"{opp.amount_in}",
                f"{opp.amount_out_predicted}",
                f"${opp.profit_usd:.2f}",
                f"{opp.profit_percentage:.3f}%",
                f"{opp.confidence:.2f}",
            ]
        )
    return tabulate(
        rows,
        headers=["Kind", "Path", "Amount In", "Amount Out", "Net USD", "Gross %", "Conf"],
        tablefmt="grid",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)

    if args.verbose:
        logging_config.setup_debug()
    else:
        logging_config.setup(logging.INFO)

    try:
        config = load_detector_config(args.config)
    except ConfigurationError as e:
        print(f"❌ Config error: {e}", file=sys.stderr)
        return 1

    try:
        bundle = load_snapshot_file(args.snapshot, chain_id=args.chain_id)
    except DataError as e:
        print(f"❌ Snapshot error: {e}", file=sys.stderr)
        return 1

    tokens = bundle.tokens
    if args.tokens:
        tokens = [t.strip() for t in args.tokens.split(",") if t.strip()]

    detector = OpportunityDetector(config, chain_id=args.chain_id)
    opportunities = detector.scan(
        tokens, bundle.snapshot, bundle.decimals, bundle.prices
    )

    if args.json:
        chain_id = args.chain_id if args.chain_id is not None else bundle.snapshot.chain_id
        payload = {
            "opportunities": [opp.to_dict() for opp in opportunities],
            "stats": detector.last_stats.to_dict(),
        }
        if chain_id is not None:
            payload["records"] = [opp.to_record(chain_id) for opp in opportunities]
        print(json.dumps(payload, indent=2))
        return 0

    if not opportunities:
        print("No profitable loops found")
    else:
        print(format_table(opportunities))

    summary = summarize(opportunities)
    stats = detector.last_stats
    print(
        f"\n{summary['count']} opportunities | "
        f"best ${summary['best_profit_usd']:.2f} | "
        f"total ${summary['total_profit_usd']:.2f} | "
        f"{stats.pairs_checked} pairs, {stats.triples_checked} triples checked"
    )
    if stats.decimals_defaulted:
        print(f"⚠️  Decimals assumed for: {', '.join(sorted(stats.decimals_defaulted))}")
    if stats.prices_defaulted:
        print(f"⚠️  USD price assumed for: {', '.join(sorted(stats.prices_defaulted))}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
