"""Calculation helpers: annualization, safe division and date ranges."""

from calendar import monthrange
from datetime import date, timedelta
from decimal import Decimal

import numpy as np

DATE_FORMAT = "%Y-%m-%d"

# Relative ranges accepted by get_interval_from_date_range. Any four digit
# year ("2023") is accepted as well.
DATE_RANGES = ("1d", "wtd", "1w", "mtd", "1m", "3m", "ytd", "1y", "3y", "5y", "10y", "max")


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide, returning zero instead of raising for a zero denominator."""
    if denominator == 0:
        return Decimal("0")
    return numerator / denominator


def get_annualized_performance_percent(days_in_market: int, net_performance_percentage: Decimal) -> Decimal:
    """
    Convert a total-period return into an annualized rate.

    Computes ``(1 + net_performance_percentage) ** (365 / days_in_market) - 1``.

    Args:
        days_in_market: Number of calendar days the return was earned over.
        net_performance_percentage: Total return as a fraction (0.10 = 10%).

    Returns:
        The annualized return as a Decimal. Zero when ``days_in_market`` is
        not positive or the growth factor is not finite (a loss of more
        than 100% has no real root).
    """
    if days_in_market <= 0:
        return Decimal("0")

    exponent = 365 / days_in_market
    with np.errstate(invalid="ignore", over="ignore"):
        growth_factor = np.power(float(net_performance_percentage) + 1, exponent)

    if not np.isfinite(growth_factor):
        return Decimal("0")

    return Decimal(str(float(growth_factor))) - 1


def _subtract_months(day: date, months: int) -> date:
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def _subtract_years(day: date, years: int) -> date:
    return _subtract_months(day, years * 12)


def get_interval_from_date_range(
    date_range: str,
    portfolio_start: date | None = None,
    today: date | None = None
) -> tuple[date, date]:
    """
    Resolve a named date range into a (start, end) interval.

    The start is the last day *before* the period, so that the movement of
    the period's first day is part of the window. ``max`` starts the day
    before portfolio inception. Ranges never start before that day.

    Args:
        date_range: One of ``DATE_RANGES`` or a four digit year.
        portfolio_start: Date of the first transaction point.
        today: Evaluation date. Defaults to today.

    Returns:
        Tuple of (start_date, end_date).

    Raises:
        ValueError: If the range is not recognized.
    """
    if today is None:
        today = date.today()

    earliest = (portfolio_start - timedelta(days=1)) if portfolio_start else date.min
    end_date = today

    if date_range == "1d":
        start_date = today - timedelta(days=1)
    elif date_range == "wtd":
        start_date = today - timedelta(days=today.weekday() + 1)
    elif date_range == "1w":
        start_date = today - timedelta(days=7)
    elif date_range == "mtd":
        start_date = today.replace(day=1) - timedelta(days=1)
    elif date_range == "1m":
        start_date = _subtract_months(today, 1)
    elif date_range == "3m":
        start_date = _subtract_months(today, 3)
    elif date_range == "ytd":
        start_date = date(today.year, 1, 1) - timedelta(days=1)
    elif date_range == "1y":
        start_date = _subtract_years(today, 1)
    elif date_range == "3y":
        start_date = _subtract_years(today, 3)
    elif date_range == "5y":
        start_date = _subtract_years(today, 5)
    elif date_range == "10y":
        start_date = _subtract_years(today, 10)
    elif date_range == "max":
        start_date = earliest
    elif len(date_range) == 4 and date_range.isdigit():
        year = int(date_range)
        start_date = date(year, 1, 1) - timedelta(days=1)
        end_date = min(date(year, 12, 31), today)
    else:
        raise ValueError(f"Unknown date range: {date_range}")

    return max(start_date, earliest), end_date


def iterate_days(start_date: date, end_date: date, step: int = 1):
    """Yield dates from start_date up to end_date (inclusive) every ``step`` days."""
    current_date = start_date
    while current_date <= end_date:
        yield current_date
        current_date = current_date + timedelta(days=step)
