#!/usr/bin/env python3
"""Main entry point for the perfolio CLI."""

import argparse
import sys


def main():
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="perfolio",
        description="perfolio - portfolio positions and performance from an activity ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  perfolio report activities.json                     Positions and performance, all time
  perfolio report activities.xlsx -c EUR -r ytd       Year to date in EUR
  perfolio report activities.json --prices prices.json --today 2023-07-10
  perfolio chart activities.json -r 1y --time-weighted
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    from .report import register_subcommand as register_report
    from .chart import register_subcommand as register_chart
    from .version import register_subcommand as register_version

    register_report(subparsers)
    register_chart(subparsers)
    register_version(subparsers)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
