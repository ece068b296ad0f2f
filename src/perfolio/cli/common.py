"""Arguments and setup shared by the report and chart subcommands."""

import warnings
from datetime import date

from .. import config, quotes
from ..activities import load_exchange_rates_from_json, load_orders, load_quote_provider_from_json
from ..calculator import PortfolioCalculator
from ..currency import Currency, FederalReserveExchangeRateManager, FixedExchangeRateManager
from ..helpers import DATE_RANGES
from ..performance import PerformanceCalculationType
from ..quotes import YFinanceQuoteProvider


def add_calculator_arguments(parser):
    """Add the ledger, currency and market data arguments to a subcommand parser."""
    parser.add_argument("filename", help="Path to the activity ledger (.json or .xlsx)")
    parser.add_argument(
        "--currency",
        "-c",
        default=config.BASE_CURRENCY,
        help=f"Base currency for performance (default: {config.BASE_CURRENCY})",
    )
    parser.add_argument(
        "--range",
        "-r",
        default="max",
        help=f"Date range: one of {', '.join(DATE_RANGES)} or a year (default: max)",
    )
    parser.add_argument(
        "--calculation",
        choices=[t.value for t in PerformanceCalculationType],
        default=config.PERFORMANCE_CALCULATION,
        help=f"Return convention for percentages (default: {config.PERFORMANCE_CALCULATION})",
    )
    parser.add_argument(
        "--prices",
        help="JSON file with quotes and historical prices; Yahoo Finance is used otherwise",
    )
    parser.add_argument(
        "--rates",
        help="JSON file with dated exchange rates; Federal Reserve H.10 rates are used otherwise",
    )
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        help="Evaluation date as YYYY-MM-DD (default: today)",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Bypass the exchange rate download cache",
    )
    parser.add_argument(
        "--ignore-errors",
        action="store_true",
        help="Hide market data and oversell warnings",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print market data requests as they are made",
    )


def build_calculator(args) -> PortfolioCalculator:
    """Create a calculator from parsed subcommand arguments.

    Raises:
        ValueError: On an unknown currency or unreadable input.
    """
    if args.ignore_errors:
        warnings.filterwarnings("ignore", category=UserWarning)
    quotes.verbose = args.verbose

    try:
        currency = Currency(args.currency.upper())
    except ValueError:
        raise ValueError(f"Unknown currency '{args.currency}'") from None

    orders = load_orders(args.filename)

    quote_provider = load_quote_provider_from_json(args.prices) if args.prices else YFinanceQuoteProvider()

    if args.rates:
        exchange_rate_manager = load_exchange_rates_from_json(args.rates)
    elif all(order.currency == currency for order in orders):
        exchange_rate_manager = FixedExchangeRateManager()
    else:
        first_date = min(order.date for order in orders)
        exchange_rate_manager = FederalReserveExchangeRateManager(
            min_date=first_date,
            max_date=args.today,
            use_cache=not args.no_cache,
        )

    return PortfolioCalculator(
        orders,
        currency,
        exchange_rate_manager,
        quote_provider,
        calculation_type=PerformanceCalculationType(args.calculation.upper()),
        today=args.today,
    )


def format_money(value, currency: Currency) -> str:
    if value is None:
        return "N/A"
    return f"{value:,.2f} {currency.value}"


def format_percent(value) -> str:
    """Format a fraction as a colored percentage."""
    if value is None:
        return "N/A"
    percent = value * 100
    if percent >= 0:
        return f"[green]+{percent:.2f}%[/green]"
    return f"[red]{percent:.2f}%[/red]"
