#!/usr/bin/env python3
"""Report subcommand - Display positions and performance of an activity ledger."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..errors import InvalidOrderError
from ..helpers import get_interval_from_date_range
from .common import add_calculator_arguments, build_calculator, format_money, format_percent


def register_subcommand(subparsers):
    """Register the report subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "report",
        help="Display positions and performance",
        description="Display holdings, cost basis and performance of an activity ledger over a date range.",
    )
    add_calculator_arguments(parser)
    parser.set_defaults(func=run)


def run(args):
    """Display positions, horizon performance and portfolio totals.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()

    try:
        calculator = build_calculator(args)
    except (InvalidOrderError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    inception = calculator.get_start_date()
    if inception is None:
        console.print("No positions in this ledger.")
        return 0

    try:
        start_date, end_date = get_interval_from_date_range(args.range, inception, calculator.today)
        snapshot = calculator.get_current_positions(start_date, end_date)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    currency = calculator.currency

    positions_table = Table(
        title=f"Positions {start_date.isoformat()} to {end_date.isoformat()} ({calculator.calculation_type.value})"
    )
    positions_table.add_column("Symbol", style="cyan", justify="left")
    positions_table.add_column("Quantity", style="magenta", justify="right")
    positions_table.add_column("Avg Price\n(Cost → Market)", justify="right")
    positions_table.add_column(f"Investment ({currency.value})", style="yellow", justify="right")
    positions_table.add_column(f"Value ({currency.value})", style="green", justify="right")
    positions_table.add_column("Net Perf.", justify="right")
    positions_table.add_column("Net Perf. %", justify="right")
    positions_table.add_column("Net Perf. %\n(with FX)", justify="right")

    for position in sorted(snapshot.positions, key=lambda p: p.symbol):
        if position.market_price is not None:
            price_str = f"[yellow]{position.average_price:,.2f}[/yellow] → [green]{position.market_price:,.2f}[/green]"
        else:
            price_str = f"[yellow]{position.average_price:,.2f}[/yellow] → N/A"

        positions_table.add_row(
            position.symbol,
            f"{position.quantity:,.4f}".rstrip("0").rstrip("."),
            price_str,
            format_money(position.investment_with_currency_effect, currency),
            format_money(position.value_in_base_currency, currency),
            format_money(position.net_performance, currency),
            format_percent(position.net_performance_percentage),
            format_percent(position.net_performance_percentage_with_currency_effect),
        )

    console.print(positions_table)

    horizons_table = Table(title="Net Performance by Horizon (with FX)")
    horizons_table.add_column("Symbol", style="cyan", justify="left")
    for date_range in calculator.horizons:
        horizons_table.add_column(date_range, justify="right")

    for position in sorted(snapshot.positions, key=lambda p: p.symbol):
        horizons_table.add_row(
            position.symbol,
            *[
                format_percent(position.net_performance_percentage_with_currency_effect_map.get(date_range))
                for date_range in calculator.horizons
            ],
        )

    console.print(horizons_table)

    if snapshot.errors:
        errors_table = Table(title="Errors")
        errors_table.add_column("Symbol", style="cyan")
        errors_table.add_column("Kind", style="red")
        errors_table.add_column("Message")
        for error in snapshot.errors:
            errors_table.add_row(error.symbol, error.kind.value, error.message)
        console.print(errors_table)

    # the max range snapshot already spans the whole ledger
    summary = calculator.get_summary(snapshot=snapshot if args.range == "max" else None)
    console.print(
        Panel(
            "\n".join([
                f"[bold green]Current Value: {format_money(snapshot.current_value_in_base_currency, currency)}[/bold green]",
                f"Investment: {format_money(snapshot.total_investment_with_currency_effect, currency)}",
                f"Net Performance: {format_money(snapshot.net_performance_with_currency_effect, currency)} "
                f"({format_percent(snapshot.net_performance_percentage_with_currency_effect)})",
                f"Dividends: {format_money(snapshot.total_dividend_with_currency_effect, currency)}",
                f"Fees: {format_money(snapshot.total_fees_with_currency_effect, currency)}",
                f"Interest: {format_money(snapshot.total_interest_with_currency_effect, currency)}",
                f"Liabilities: {format_money(snapshot.total_liabilities_with_currency_effect, currency)}",
                f"Days in Market: {summary.days_in_market}",
                f"Annualized (all time): {format_percent(summary.annualized_performance_percent_with_currency_effect)}",
            ]),
            title="Summary",
        )
    )

    return 0
