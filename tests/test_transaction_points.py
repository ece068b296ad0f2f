"""Tests for folding orders into transaction points."""

from datetime import date
from decimal import Decimal

import pytest

from perfolio.currency import Currency, HistoricalExchangeRateManager
from perfolio.errors import InvalidOrderError
from perfolio.models import ActivityType, ErrorKind, PortfolioOrder, sort_orders
from perfolio.rates import DatedRateProvider
from perfolio.transaction_points import (
    apply_order,
    compute_transaction_points,
    get_transaction_point_at,
    validate_orders,
)


def _order(day, activity_type, quantity, unit_price, symbol="MSFT", fee="0", currency=Currency.USD, tags=()):
    return PortfolioOrder(
        date=day,
        symbol=symbol,
        currency=currency,
        activity_type=activity_type,
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        fee=Decimal(fee),
        tags=tags,
    )


def test_single_buy_creates_point():
    """Verify a buy opens a position with its cost basis."""
    points, errors = compute_transaction_points([
        _order(date(2021, 9, 16), ActivityType.BUY, "1", "298.58", fee="19"),
    ])

    assert errors == []
    assert len(points) == 1
    state = points[0].get("MSFT")
    assert state.quantity == Decimal("1")
    assert state.investment == Decimal("298.58")
    assert state.average_price == Decimal("298.58")
    assert state.fee_accumulated == Decimal("19")
    assert state.first_buy_date == date(2021, 9, 16)
    assert state.transaction_count == 1


def test_buys_average_the_cost():
    points, _ = compute_transaction_points([
        _order(date(2023, 1, 2), ActivityType.BUY, "10", "100"),
        _order(date(2023, 2, 1), ActivityType.BUY, "10", "200"),
    ])

    state = points[-1].get("MSFT")
    assert state.quantity == Decimal("20")
    assert state.investment == Decimal("3000")
    assert state.average_price == Decimal("150")
    assert state.total_buy == Decimal("3000")


def test_partial_sell_keeps_average_cost_and_realizes_profit():
    """Verify a sell reduces investment proportionally and books the realized profit."""
    points, errors = compute_transaction_points([
        _order(date(2023, 1, 2), ActivityType.BUY, "10", "100"),
        _order(date(2023, 3, 1), ActivityType.SELL, "4", "150"),
    ])

    assert errors == []
    state = points[-1].get("MSFT")
    assert state.quantity == Decimal("6")
    assert state.investment == Decimal("600")
    assert state.average_price == Decimal("100")
    assert state.realized_profit == Decimal("200")
    assert state.total_sell == Decimal("600")
    assert state.transaction_count == 2


def test_oversell_clamps_to_zero_and_reports_error():
    """Verify selling more than held clamps the quantity and reports a soft error."""
    orders = [
        _order(date(2023, 1, 2), ActivityType.BUY, "5", "100"),
        _order(date(2023, 3, 1), ActivityType.SELL, "8", "120"),
    ]

    with pytest.warns(UserWarning, match="exceeds the held quantity"):
        points, errors = compute_transaction_points(orders)

    state = points[-1].get("MSFT")
    assert state.quantity == Decimal("0")
    assert state.investment == Decimal("0")
    assert state.average_price == Decimal("0")
    assert len(errors) == 1
    assert errors[0].kind == ErrorKind.OVERSOLD
    assert errors[0].symbol == "MSFT"


def test_same_date_orders_share_one_point():
    points, _ = compute_transaction_points([
        _order(date(2023, 1, 2), ActivityType.BUY, "1", "100"),
        _order(date(2023, 1, 2), ActivityType.BUY, "1", "50", symbol="AAPL"),
        _order(date(2023, 1, 2), ActivityType.BUY, "1", "110"),
    ])

    assert len(points) == 1
    assert points[0].get("MSFT").quantity == Decimal("2")
    assert points[0].get("MSFT").transaction_count == 2
    assert points[0].get("AAPL").quantity == Decimal("1")


def test_dividend_accumulates_without_changing_quantity():
    points, _ = compute_transaction_points([
        _order(date(2021, 9, 16), ActivityType.BUY, "1", "298.58", fee="19"),
        _order(date(2021, 11, 16), ActivityType.DIVIDEND, "1", "0.62"),
    ])

    state = points[-1].get("MSFT")
    assert state.quantity == Decimal("1")
    assert state.dividend_accumulated == Decimal("0.62")
    assert state.fee_accumulated == Decimal("19")
    assert state.transaction_count == 2


def test_portfolio_level_activities_do_not_create_points():
    points, _ = compute_transaction_points([
        _order(date(2023, 1, 2), ActivityType.FEE, "1", "5", symbol="Account fee"),
        _order(date(2023, 1, 3), ActivityType.INTEREST, "1", "2", symbol="Interest"),
        _order(date(2023, 1, 4), ActivityType.LIABILITY, "1", "500", symbol="Loan"),
    ])
    assert points == []


def test_earlier_points_are_not_changed_by_later_orders():
    """Verify each transaction point is an immutable snapshot."""
    points, _ = compute_transaction_points([
        _order(date(2023, 1, 2), ActivityType.BUY, "1", "100"),
        _order(date(2023, 1, 5), ActivityType.BUY, "1", "110"),
    ])

    assert points[0].get("MSFT").quantity == Decimal("1")
    assert points[1].get("MSFT").quantity == Decimal("2")
    with pytest.raises(TypeError):
        points[0].items["MSFT"] = points[1].get("MSFT")


def test_closed_position_stays_in_later_points():
    points, _ = compute_transaction_points([
        _order(date(2023, 1, 2), ActivityType.BUY, "1", "100"),
        _order(date(2023, 1, 5), ActivityType.SELL, "1", "110"),
        _order(date(2023, 1, 9), ActivityType.BUY, "1", "50", symbol="AAPL"),
    ])

    assert points[-1].get("MSFT").quantity == Decimal("0")
    assert points[-1].get("AAPL").quantity == Decimal("1")


def test_tags_are_merged_in_order():
    points, _ = compute_transaction_points([
        _order(date(2023, 1, 2), ActivityType.BUY, "1", "100", tags=("core",)),
        _order(date(2023, 1, 5), ActivityType.BUY, "1", "110", tags=("tech", "core")),
    ])
    assert points[-1].get("MSFT").tags == ("core", "tech")


def test_orders_are_sorted_stably():
    first = _order(date(2023, 1, 5), ActivityType.BUY, "1", "100")
    second = _order(date(2023, 1, 2), ActivityType.BUY, "2", "100")
    third = _order(date(2023, 1, 5), ActivityType.SELL, "1", "100")

    assert sort_orders([first, second, third]) == [second, first, third]


def test_get_transaction_point_at():
    points, _ = compute_transaction_points([
        _order(date(2023, 1, 2), ActivityType.BUY, "1", "100"),
        _order(date(2023, 1, 5), ActivityType.BUY, "1", "110"),
    ])

    assert get_transaction_point_at(points, date(2023, 1, 1)) is None
    assert get_transaction_point_at(points, date(2023, 1, 2)) is points[0]
    assert get_transaction_point_at(points, date(2023, 1, 4)) is points[0]
    assert get_transaction_point_at(points, date(2023, 1, 5)) is points[1]
    assert get_transaction_point_at(points, date(2024, 1, 1)) is points[1]
    assert get_transaction_point_at([], date(2024, 1, 1)) is None


def test_rate_provider_converts_at_order_date():
    """Verify points built with dated rates hold base currency amounts at each order's rate."""
    manager = HistoricalExchangeRateManager({
        (date(2023, 1, 2), Currency.EUR, Currency.USD): Decimal("1.00"),
        (date(2023, 3, 1), Currency.EUR, Currency.USD): Decimal("1.20"),
    })
    points, _ = compute_transaction_points(
        [
            _order(date(2023, 1, 2), ActivityType.BUY, "10", "100", symbol="SAP", fee="5", currency=Currency.EUR),
            _order(date(2023, 3, 1), ActivityType.BUY, "10", "100", symbol="SAP", fee="5", currency=Currency.EUR),
        ],
        DatedRateProvider(manager, Currency.USD),
    )

    state = points[-1].get("SAP")
    assert state.investment == Decimal("2200.00")
    assert state.fee_accumulated == Decimal("11.00")
    assert state.currency == Currency.EUR


def test_apply_order_rejects_portfolio_level_activity():
    with pytest.raises(ValueError, match="not tracked per symbol"):
        apply_order(None, _order(date(2023, 1, 2), ActivityType.FEE, "1", "5"))


def test_validate_orders_rejects_negative_values():
    with pytest.raises(InvalidOrderError, match="Negative quantity"):
        validate_orders([_order(date(2023, 1, 2), ActivityType.BUY, "-1", "100")])
    with pytest.raises(InvalidOrderError, match="Negative fee"):
        validate_orders([_order(date(2023, 1, 2), ActivityType.BUY, "1", "100", fee="-1")])


def test_validate_orders_rejects_non_finite_values():
    with pytest.raises(InvalidOrderError, match="Non-finite unit_price"):
        validate_orders([_order(date(2023, 1, 2), ActivityType.BUY, "1", "NaN")])
    with pytest.raises(InvalidOrderError, match="Non-finite quantity"):
        validate_orders([_order(date(2023, 1, 2), ActivityType.BUY, "Infinity", "1")])
