"""Tests for position snapshots, horizons, soft errors and summaries."""

import threading
from datetime import date
from decimal import Decimal

import pytest

from perfolio.calculator import PortfolioCalculator, PriceHistory
from perfolio.currency import Currency, FixedExchangeRateManager, HistoricalExchangeRateManager
from perfolio.errors import DataUnavailableError, InvalidOrderError
from perfolio.models import ActivityType, ErrorKind, PortfolioOrder
from perfolio.performance import PerformanceCalculationType
from perfolio.quotes import DataGatheringItem, FixedQuoteProvider

TODAY = date(2023, 7, 10)
HORIZONS = ("1d", "wtd", "5y", "max")


def _order(day, activity_type, quantity, unit_price, symbol="MSFT", fee="0", currency=Currency.USD):
    return PortfolioOrder(
        date=day,
        symbol=symbol,
        currency=currency,
        activity_type=activity_type,
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        fee=Decimal(fee),
        data_source="YAHOO",
    )


def _msft_orders():
    return [
        _order(date(2021, 9, 16), ActivityType.BUY, "1", "298.58", fee="19"),
        _order(date(2021, 11, 16), ActivityType.DIVIDEND, "1", "0.62"),
    ]


def _msft_quotes():
    return FixedQuoteProvider(
        quotes={"MSFT": Decimal("331.83")},
        historical={"MSFT": {date(2021, 9, 16): Decimal("298.58"), date(2023, 7, 7): Decimal("337.22")}},
    )


def _calculator(orders, quote_provider, **kwargs):
    kwargs.setdefault("today", TODAY)
    kwargs.setdefault("horizons", HORIZONS)
    return PortfolioCalculator(
        orders,
        Currency.USD,
        kwargs.pop("exchange_rate_manager", FixedExchangeRateManager()),
        quote_provider,
        **kwargs,
    )


class FailingQuoteProvider(FixedQuoteProvider):
    """Raises for one symbol and serves fixed data for the others."""

    def __init__(self, failing_symbol, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failing_symbol = failing_symbol

    def get_historical(self, items, start_date, end_date, granularity="day"):
        if any(item.symbol == self.failing_symbol for item in items):
            raise DataUnavailableError(self.failing_symbol, f"{self.failing_symbol} is delisted")
        return super().get_historical(items, start_date, end_date, granularity)


class BlockingQuoteProvider(FixedQuoteProvider):
    """Blocks on one symbol until released."""

    def __init__(self, blocking_symbol, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.blocking_symbol = blocking_symbol
        self.release = threading.Event()

    def get_historical(self, items, start_date, end_date, granularity="day"):
        if any(item.symbol == self.blocking_symbol for item in items):
            self.release.wait(10)
        return super().get_historical(items, start_date, end_date, granularity)


class CountingQuoteProvider(FixedQuoteProvider):
    """Counts historical data requests."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.historical_requests = 0

    def get_historical(self, items, start_date, end_date, granularity="day"):
        self.historical_requests += 1
        return super().get_historical(items, start_date, end_date, granularity)


def test_msft_buy_and_dividend():
    """Verify the snapshot of one buy with fee plus a dividend, valued at the current quote."""
    calculator = _calculator(_msft_orders(), _msft_quotes())

    snapshot = calculator.get_current_positions()

    assert snapshot.has_errors is False
    assert snapshot.start_date == date(2021, 9, 15)
    assert snapshot.end_date == TODAY
    assert len(snapshot.positions) == 1

    position = snapshot.positions[0]
    assert position.symbol == "MSFT"
    assert position.quantity == Decimal("1")
    assert position.average_price == Decimal("298.58")
    assert position.investment == Decimal("298.58")
    assert position.dividend == Decimal("0.62")
    assert position.fee == Decimal("19")
    assert position.transaction_count == 2
    assert position.market_price == Decimal("331.83")
    assert position.market_value == Decimal("331.83")
    assert position.gross_performance == Decimal("33.87")
    assert position.net_performance == Decimal("14.87")
    assert position.gross_performance_with_currency_effect == Decimal("33.87")
    assert position.net_performance_with_currency_effect == Decimal("14.87")
    assert position.gross_performance_percentage.quantize(Decimal("1e-12")) == Decimal("0.113436934825")
    assert position.net_performance_percentage.quantize(Decimal("1e-12")) == Decimal("0.049802398017")
    assert position.net_performance_percentage_with_currency_effect == position.net_performance_percentage


def test_msft_horizon_map():
    """Verify rolling horizons re-resolve their start boundary."""
    calculator = _calculator(_msft_orders(), _msft_quotes())

    position = calculator.get_current_positions().positions[0]

    assert position.net_performance_with_currency_effect_map["1d"] == Decimal("-5.39")
    assert position.net_performance_with_currency_effect_map["wtd"] == Decimal("-5.39")
    assert position.net_performance_with_currency_effect_map["5y"] == Decimal("14.87")
    assert position.net_performance_with_currency_effect_map["max"] == Decimal("14.87")
    assert position.net_performance_percentage_with_currency_effect_map["max"] == position.net_performance_percentage


def test_msft_portfolio_totals():
    snapshot = _calculator(_msft_orders(), _msft_quotes()).get_current_positions()

    assert snapshot.total_investment == Decimal("298.58")
    assert snapshot.current_value_in_base_currency == Decimal("331.83")
    assert snapshot.net_performance == Decimal("14.87")
    assert snapshot.gross_performance == Decimal("33.87")
    assert snapshot.total_fees_with_currency_effect == Decimal("19")
    assert snapshot.total_dividend_with_currency_effect == Decimal("0.62")
    assert snapshot.total_interest_with_currency_effect == Decimal("0")


def test_snapshot_is_idempotent():
    calculator = _calculator(_msft_orders(), _msft_quotes())
    assert calculator.get_current_positions() == calculator.get_current_positions()


def test_window_after_inception_measures_only_its_own_change():
    calculator = _calculator(_msft_orders(), _msft_quotes())

    snapshot = calculator.get_current_positions(start_date=date(2023, 7, 9))

    assert snapshot.positions[0].net_performance == Decimal("-5.39")
    assert snapshot.total_fees_with_currency_effect == Decimal("0")


def test_start_after_end_raises():
    calculator = _calculator(_msft_orders(), _msft_quotes())
    with pytest.raises(ValueError, match="after end date"):
        calculator.get_current_positions(start_date=date(2023, 7, 11))


def test_currency_effect_separates_exchange_rate_movement():
    """Verify the frozen-rate result excludes and the dated-rate result includes FX movement."""
    manager = HistoricalExchangeRateManager({
        (date(2023, 1, 2), Currency.EUR, Currency.USD): Decimal("1.00"),
        (date(2023, 7, 10), Currency.EUR, Currency.USD): Decimal("1.10"),
    })
    quotes = FixedQuoteProvider(
        quotes={"SAP": Decimal("110")},
        historical={"SAP": {date(2023, 1, 2): Decimal("100")}},
    )
    calculator = _calculator(
        [_order(date(2023, 1, 2), ActivityType.BUY, "10", "100", symbol="SAP", currency=Currency.EUR)],
        quotes,
        exchange_rate_manager=manager,
        horizons=("max",),
    )

    position = calculator.get_current_positions().positions[0]

    assert position.investment == Decimal("1000")
    assert position.investment_with_currency_effect == Decimal("1000.00")
    assert position.value_in_base_currency == Decimal("1210.00")
    assert position.gross_performance == Decimal("110.00")
    assert position.gross_performance_percentage == Decimal("0.1")
    assert position.gross_performance_with_currency_effect == Decimal("210.00")
    assert position.gross_performance_percentage_with_currency_effect == Decimal("0.21")


def test_sold_position_reports_realized_profit():
    orders = [
        _order(date(2023, 1, 2), ActivityType.BUY, "10", "100"),
        _order(date(2023, 2, 1), ActivityType.SELL, "10", "120"),
    ]
    calculator = _calculator(orders, FixedQuoteProvider(), horizons=())

    position = calculator.get_current_positions(fetch_quotes=False).positions[0]

    assert position.quantity == Decimal("0")
    assert position.investment == Decimal("0")
    assert position.gross_performance == Decimal("200")
    assert position.gross_performance_percentage == Decimal("0.2")


def test_without_quotes_positions_are_valued_at_order_prices():
    orders = [
        _order(date(2023, 1, 2), ActivityType.BUY, "1", "100"),
        _order(date(2023, 1, 5), ActivityType.BUY, "1", "120"),
    ]
    calculator = _calculator(orders, FixedQuoteProvider(), horizons=())

    snapshot = calculator.get_current_positions(end_date=date(2023, 1, 5), fetch_quotes=False)

    assert snapshot.has_errors is False
    assert snapshot.positions[0].value_in_base_currency == Decimal("240")
    assert snapshot.positions[0].gross_performance == Decimal("20")


def test_missing_market_data_is_a_soft_error():
    """Verify one symbol without data is reported while the others are computed."""
    orders = _msft_orders() + [_order(date(2022, 1, 3), ActivityType.BUY, "2", "50", symbol="XYZ")]
    calculator = _calculator(orders, _msft_quotes())

    with pytest.warns(UserWarning, match="XYZ"):
        snapshot = calculator.get_current_positions()

    assert snapshot.has_errors is True
    assert [(e.symbol, e.kind) for e in snapshot.errors] == [("XYZ", ErrorKind.DATA_UNAVAILABLE)]

    positions = {p.symbol: p for p in snapshot.positions}
    assert positions["XYZ"].net_performance is None
    assert positions["XYZ"].investment == Decimal("100")
    assert positions["MSFT"].net_performance == Decimal("14.87")
    assert snapshot.net_performance == Decimal("14.87")
    assert snapshot.total_investment == Decimal("398.58")


def test_failing_provider_is_a_soft_error():
    orders = _msft_orders() + [_order(date(2022, 1, 3), ActivityType.BUY, "2", "50", symbol="XYZ")]
    quotes = FailingQuoteProvider(
        "XYZ",
        quotes={"MSFT": Decimal("331.83"), "XYZ": Decimal("55")},
        historical={"MSFT": {date(2023, 7, 7): Decimal("337.22")}, "XYZ": {}},
    )

    with pytest.warns(UserWarning, match="delisted"):
        snapshot = _calculator(orders, quotes).get_current_positions()

    assert [(e.symbol, e.kind) for e in snapshot.errors] == [("XYZ", ErrorKind.DATA_UNAVAILABLE)]
    assert {p.symbol: p for p in snapshot.positions}["MSFT"].net_performance == Decimal("14.87")


def test_slow_symbol_times_out_without_blocking_others():
    """Verify a symbol that does not answer in time degrades to a TIMEOUT error."""
    orders = _msft_orders() + [_order(date(2022, 1, 3), ActivityType.BUY, "2", "50", symbol="SLOW")]
    quotes = BlockingQuoteProvider(
        "SLOW",
        quotes={"MSFT": Decimal("331.83"), "SLOW": Decimal("55")},
        historical={"MSFT": {date(2023, 7, 7): Decimal("337.22")}, "SLOW": {}},
    )
    calculator = _calculator(orders, quotes, quote_timeout=0.2, max_workers=2)

    try:
        with pytest.warns(UserWarning, match="did not arrive"):
            snapshot = calculator.get_current_positions()
    finally:
        quotes.release.set()

    assert [(e.symbol, e.kind) for e in snapshot.errors] == [("SLOW", ErrorKind.TIMEOUT)]
    assert {p.symbol: p for p in snapshot.positions}["MSFT"].net_performance == Decimal("14.87")


def test_oversell_is_reported_in_snapshot():
    orders = [
        _order(date(2023, 1, 2), ActivityType.BUY, "5", "100"),
        _order(date(2023, 1, 5), ActivityType.SELL, "8", "120"),
    ]

    with pytest.warns(UserWarning, match="exceeds the held quantity"):
        calculator = _calculator(orders, FixedQuoteProvider(), horizons=())
        snapshot = calculator.get_current_positions(fetch_quotes=False)

    assert snapshot.has_errors is True
    assert snapshot.errors[0].kind == ErrorKind.OVERSOLD
    assert snapshot.positions[0].quantity == Decimal("0")


def test_invalid_order_fails_the_whole_calculation():
    with pytest.raises(InvalidOrderError):
        _calculator([_order(date(2023, 1, 2), ActivityType.BUY, "-1", "100")], FixedQuoteProvider())
    with pytest.raises(InvalidOrderError):
        _calculator([_order(date(2023, 1, 2), ActivityType.BUY, "1", "Infinity")], FixedQuoteProvider())


def test_empty_ledger_gives_zero_result():
    snapshot = _calculator([], FixedQuoteProvider()).get_current_positions()

    assert snapshot.positions == []
    assert snapshot.has_errors is False
    assert snapshot.net_performance == Decimal("0")
    assert snapshot.total_investment == Decimal("0")


@pytest.mark.parametrize("calculation_type", list(PerformanceCalculationType))
def test_every_convention_agrees_on_absolute_performance(calculation_type):
    calculator = _calculator(_msft_orders(), _msft_quotes(), calculation_type=calculation_type)

    position = calculator.get_current_positions().positions[0]

    assert position.net_performance == Decimal("14.87")
    assert position.net_performance_percentage is not None


def test_time_weighted_return_excludes_later_buy():
    """Verify a second buy at the risen price leaves the time-weighted return at the price gain."""
    calculator = _calculator(
        [
            _order(date(2023, 1, 2), ActivityType.BUY, "1", "100"),
            _order(date(2023, 1, 5), ActivityType.BUY, "1", "110"),
        ],
        FixedQuoteProvider(),
        calculation_type=PerformanceCalculationType.TWR,
    )

    snapshot = calculator.get_current_positions(fetch_quotes=False)

    assert snapshot.positions[0].net_performance_percentage == Decimal("0.1")
    assert snapshot.positions[0].net_performance_percentage_with_currency_effect == Decimal("0.1")


def test_portfolio_level_activities_are_totalled():
    orders = _msft_orders() + [
        _order(date(2022, 1, 3), ActivityType.FEE, "1", "5", symbol="Account fee"),
        _order(date(2022, 2, 1), ActivityType.INTEREST, "1", "2.5", symbol="Cash interest"),
        _order(date(2022, 3, 1), ActivityType.LIABILITY, "1", "1000", symbol="Loan"),
    ]
    snapshot = _calculator(orders, _msft_quotes()).get_current_positions()

    assert snapshot.total_fees_with_currency_effect == Decimal("24")
    assert snapshot.total_interest_with_currency_effect == Decimal("2.5")
    assert snapshot.total_liabilities_with_currency_effect == Decimal("1000")
    assert len(snapshot.positions) == 1


def test_summary():
    summary = _calculator(_msft_orders(), _msft_quotes()).get_summary()

    assert summary.total_buy == Decimal("298.58")
    assert summary.total_sell == Decimal("0")
    assert summary.committed_funds == Decimal("298.58")
    assert summary.dividend == Decimal("0.62")
    assert summary.fees == Decimal("19")
    assert summary.first_order_date == date(2021, 9, 16)
    assert summary.days_in_market == 662
    assert summary.activity_count == 2
    assert Decimal("0") < summary.annualized_performance_percent < summary.net_performance_percentage


def test_summary_reuses_given_snapshot():
    """Verify a summary built from an existing snapshot requests no market data."""
    quotes = CountingQuoteProvider(
        quotes={"MSFT": Decimal("331.83")},
        historical={"MSFT": {date(2021, 9, 16): Decimal("298.58"), date(2023, 7, 7): Decimal("337.22")}},
    )
    calculator = _calculator(_msft_orders(), quotes)
    snapshot = calculator.get_current_positions()
    requests = quotes.historical_requests

    summary = calculator.get_summary(snapshot=snapshot)

    assert quotes.historical_requests == requests
    assert summary.net_performance_percentage == snapshot.net_performance_percentage
    assert summary == calculator.get_summary()


def test_average_price():
    calculator = _calculator(
        [
            _order(date(2023, 1, 2), ActivityType.BUY, "1", "100"),
            _order(date(2023, 1, 5), ActivityType.BUY, "1", "120"),
        ],
        FixedQuoteProvider(),
    )
    assert calculator.get_average_price("MSFT", date(2023, 1, 3)) == Decimal("100")
    assert calculator.get_average_price("MSFT") == Decimal("110")
    assert calculator.get_average_price("AAPL") == Decimal("0")


def test_price_history_carries_last_price_forward():
    history = PriceHistory({date(2023, 1, 2): Decimal("100")})
    history.update({date(2023, 1, 5): Decimal("110")})

    assert history.price_at(date(2023, 1, 1)) is None
    assert history.price_at(date(2023, 1, 4)) == Decimal("100")
    assert history.price_at(date(2023, 1, 5)) == Decimal("110")
    assert history.price_at(date(2024, 1, 1)) == Decimal("110")


def test_fixed_quote_provider_omits_unknown_symbols():
    quotes = _msft_quotes()
    items = [DataGatheringItem("MSFT"), DataGatheringItem("XYZ")]

    assert set(quotes.get_quotes(items)) == {"MSFT"}
    assert quotes.get_historical(items, date(2023, 7, 1), date(2023, 7, 10)) == {
        "MSFT": {date(2023, 7, 7): Decimal("337.22")}
    }
