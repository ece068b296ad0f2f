"""Decimated historical value and performance series for charting."""

import math
from datetime import date, timedelta
from decimal import Decimal

from . import config
from .helpers import get_interval_from_date_range, iterate_days
from .models import HistoricalDataContainer, HistoricalDataItem
from .performance import TWRStrategy, Valuation, ValuationWindow
from .transaction_points import get_transaction_point_at

_twr = TWRStrategy()


def get_chart_step(start_date: date, end_date: date, max_items: int | None = None) -> int:
    """Return the sampling step that keeps a series at or under ``max_items`` points.

    The count includes the end date, which is emitted even when it falls
    between two steps.
    """
    if max_items is None:
        max_items = config.MAX_CHART_ITEMS
    days = (end_date - start_date).days
    if days <= 0:
        return 1
    return max(1, math.ceil(days / max(max_items - 1, 1)))


def build_chart_series(
    calculator,
    start_date: date,
    end_date: date,
    step: int = 1,
    calculate_time_weighted: bool = False,
    fetch_quotes: bool = True
) -> list[HistoricalDataItem]:
    """
    Sample portfolio value and performance every ``step`` days.

    The series starts at the later of ``start_date`` and portfolio inception
    and always ends exactly at ``end_date``. Performance is cumulative since
    inception, so every item can be plotted without re-basing. Percentages
    use the calculator's return convention over the valuations from
    inception up to the sampled day.

    Args:
        calculator: The PortfolioCalculator holding the ledger.
        start_date: First day of the requested window.
        end_date: Last day of the window.
        step: Days between samples, at least 1.
        calculate_time_weighted: Also chain a time-weighted return across
            every transaction point crossed.
        fetch_quotes: Request historical prices from the quote provider.
            Symbols without market data are valued at their order prices.

    Returns:
        The sampled items, ascending by date.
    """
    if step < 1:
        raise ValueError(f"Step must be at least 1, got {step}")

    inception = calculator.get_start_date()
    if inception is None:
        return []

    start_date = max(start_date, inception)
    if start_date > end_date:
        return []

    samples = list(iterate_days(start_date, end_date, step))
    if samples[-1] != end_date:
        samples.append(end_date)
    sample_set = set(samples)

    baseline = inception - timedelta(days=1)
    point_dates = {p.date for p in calculator.get_transaction_points() if p.date <= end_date}
    grid = sorted(point_dates | sample_set | {baseline, start_date - timedelta(days=1)})

    end_point = get_transaction_point_at(calculator.get_transaction_points(), end_date)
    symbols = list(end_point.items) if end_point else []
    held = calculator.get_held_symbols(baseline, end_date)
    market_data = calculator.load_market_data(held, baseline, end_date, fetch_quotes)

    effect_points = calculator.get_transaction_points_with_currency_effect()
    frozen_points, frozen_rates = calculator.get_transaction_points_at_frozen_rate(end_date)

    def total_valuation(points, rates, on: date) -> Valuation:
        total = Valuation(date=on)
        for symbol in symbols:
            total += calculator.get_valuation(
                symbol, points, on, market_data.histories.get(symbol), rates
            )
        return total

    frozen_valuations: list[Valuation] = []
    effect_valuations: list[Valuation] = []
    time_weighted_growth = Decimal("1")
    previous_investment: Decimal | None = None
    previous_investment_with_currency_effect: Decimal | None = None
    items: list[HistoricalDataItem] = []

    for on in grid:
        frozen = total_valuation(frozen_points, frozen_rates, on)
        effect = total_valuation(effect_points, calculator.dated_rates, on)

        if calculate_time_weighted and effect_valuations:
            time_weighted_growth *= _twr.growth_factor(effect_valuations[-1], effect, net=True)

        frozen_valuations.append(frozen)
        effect_valuations.append(effect)

        if on not in sample_set:
            if on < start_date:
                previous_investment = frozen.investment
                previous_investment_with_currency_effect = effect.investment
            continue

        frozen_window = ValuationWindow(list(frozen_valuations))
        effect_window = ValuationWindow(list(effect_valuations))

        items.append(HistoricalDataItem(
            date=on,
            value=effect.market_value,
            net_performance=frozen_window.net_performance,
            net_performance_in_percentage=calculator.strategy.percentage(frozen_window, net=True),
            net_performance_with_currency_effect=effect_window.net_performance,
            net_performance_in_percentage_with_currency_effect=calculator.strategy.percentage(effect_window, net=True),
            investment_value=frozen.investment - (previous_investment or Decimal("0")),
            investment_value_with_currency_effect=(
                effect.investment - (previous_investment_with_currency_effect or Decimal("0"))
            ),
            total_investment_value=frozen.investment,
            total_investment_value_with_currency_effect=effect.investment,
            time_weighted_performance_in_percentage=(
                time_weighted_growth - 1 if calculate_time_weighted else None
            ),
        ))
        previous_investment = frozen.investment
        previous_investment_with_currency_effect = effect.investment

    return items


def get_chart(
    calculator,
    date_range: str = "max",
    with_data_decimation: bool = True,
    calculate_time_weighted: bool = False,
    fetch_quotes: bool = True,
    max_items: int | None = None
) -> HistoricalDataContainer:
    """
    Build the chart of a named date range ending at the calculator's today.

    The all-time-high flag is set when the latest item's net performance
    percentage (with currency effect) is the maximum of the series, and the
    all-time-low flag when it is the minimum.
    """
    inception = calculator.get_start_date()
    if inception is None:
        return HistoricalDataContainer(items=[])

    start_date, end_date = get_interval_from_date_range(date_range, inception, calculator.today)
    step = get_chart_step(start_date, end_date, max_items) if with_data_decimation else 1

    items = build_chart_series(
        calculator,
        start_date,
        end_date,
        step=step,
        calculate_time_weighted=calculate_time_weighted,
        fetch_quotes=fetch_quotes,
    )
    if not items:
        return HistoricalDataContainer(items=[])

    performances = [item.net_performance_in_percentage_with_currency_effect for item in items]
    latest = performances[-1]
    return HistoricalDataContainer(
        items=items,
        is_all_time_high=latest == max(performances),
        is_all_time_low=latest == min(performances),
    )
