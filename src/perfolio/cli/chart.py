#!/usr/bin/env python3
"""Chart subcommand - Display the decimated value and performance series."""

from rich.console import Console
from rich.table import Table

from ..chart import get_chart
from ..errors import InvalidOrderError
from .common import add_calculator_arguments, build_calculator, format_money, format_percent


def register_subcommand(subparsers):
    """Register the chart subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "chart",
        help="Display the historical value and performance series",
        description="Display portfolio value and cumulative performance sampled over a date range.",
    )
    add_calculator_arguments(parser)
    parser.add_argument(
        "--time-weighted",
        action="store_true",
        help="Also chain a time-weighted return across transactions",
    )
    parser.add_argument(
        "--no-decimation",
        action="store_true",
        help="Emit one item per day instead of capping the number of items",
    )
    parser.set_defaults(func=run)


def run(args):
    console = Console()

    try:
        calculator = build_calculator(args)
        container = get_chart(
            calculator,
            args.range,
            with_data_decimation=not args.no_decimation,
            calculate_time_weighted=args.time_weighted,
        )
    except (InvalidOrderError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    currency = calculator.currency
    table = Table(title=f"Portfolio History ({args.range}, {calculator.calculation_type.value})")
    table.add_column("Date", style="cyan")
    table.add_column(f"Value ({currency.value})", style="green", justify="right")
    table.add_column(f"Investment ({currency.value})", style="yellow", justify="right")
    table.add_column("Net Perf.", justify="right")
    table.add_column("Net Perf. %", justify="right")
    if args.time_weighted:
        table.add_column("TWR %", justify="right")

    for item in container.items:
        row = [
            item.date.isoformat(),
            format_money(item.value, currency),
            format_money(item.total_investment_value_with_currency_effect, currency),
            format_money(item.net_performance_with_currency_effect, currency),
            format_percent(item.net_performance_in_percentage_with_currency_effect),
        ]
        if args.time_weighted:
            row.append(format_percent(item.time_weighted_performance_in_percentage))
        table.add_row(*row)

    console.print(table)

    if container.is_all_time_high:
        console.print("[bold green]Performance is at its all-time high.[/bold green]")
    elif container.is_all_time_low:
        console.print("[bold red]Performance is at its all-time low.[/bold red]")

    return 0
