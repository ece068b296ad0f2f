"""Fold an ordered activity list into a sequence of transaction points."""

import warnings
from dataclasses import replace
from decimal import Decimal

from .errors import InvalidOrderError
from .helpers import safe_divide
from .models import (
    ACQUISITION_TYPES,
    POSITION_TYPES,
    ActivityType,
    ErrorKind,
    PortfolioOrder,
    PositionState,
    ResponseError,
    TransactionPoint,
    sort_orders,
)
from .rates import IdentityRateProvider, ReferenceRateProvider


def validate_orders(orders: list[PortfolioOrder]) -> None:
    """
    Check every order for values no calculation can be based on.

    Raises:
        InvalidOrderError: If any quantity, unit price or fee is negative or
            non-finite, or the activity type is unknown.
    """
    for order in orders:
        if not isinstance(order.activity_type, ActivityType):
            raise InvalidOrderError(f"Unknown activity type {order.activity_type!r} in order: {order}")

        for field_name in ("quantity", "unit_price", "fee"):
            value = getattr(order, field_name)
            try:
                value = Decimal(value)
            except (TypeError, ValueError, ArithmeticError):
                raise InvalidOrderError(f"Invalid {field_name} {value!r} in order: {order}") from None
            if not value.is_finite():
                raise InvalidOrderError(f"Non-finite {field_name} in order: {order}")
            if value < 0:
                raise InvalidOrderError(f"Negative {field_name} in order: {order}")


def apply_order(
    state: PositionState | None,
    order: PortfolioOrder,
    rate: Decimal = Decimal("1")
) -> tuple[PositionState, ResponseError | None]:
    """
    Return the state of a symbol after one more order.

    Args:
        state: Previous state of the order's symbol, or None if unseen.
        order: The order to apply. Must be one of ``POSITION_TYPES``.
        rate: Rate converting the order's currency into the currency the
            state is kept in.

    Returns:
        Tuple of (new_state, soft_error). ``soft_error`` is set when a SELL
        exceeds the held quantity; the quantity is clamped to zero.
    """
    if state is None:
        state = PositionState(
            symbol=order.symbol,
            currency=order.currency,
            data_source=order.data_source,
        )

    amount = order.amount * rate
    fee = order.fee * rate
    tags = tuple(dict.fromkeys(state.tags + order.tags))
    error = None

    if order.activity_type in ACQUISITION_TYPES:
        quantity = state.quantity + order.quantity
        investment = state.investment + amount
        first_buy_date = order.date if state.first_buy_date is None else min(state.first_buy_date, order.date)
        new_state = replace(
            state,
            quantity=quantity,
            investment=investment,
            average_price=safe_divide(investment, quantity),
            first_buy_date=first_buy_date,
            total_buy=state.total_buy + amount,
        )

    elif order.activity_type == ActivityType.SELL:
        sold = min(order.quantity, state.quantity)
        if order.quantity > state.quantity:
            message = (
                f"Sell of {order.quantity} {order.symbol} on {order.date.isoformat()} "
                f"exceeds the held quantity of {state.quantity}; clamped to zero."
            )
            warnings.warn(message, UserWarning)
            error = ResponseError(
                data_source=order.data_source,
                symbol=order.symbol,
                kind=ErrorKind.OVERSOLD,
                message=message,
            )

        remaining = state.quantity - sold
        # Scaling by remaining/previous keeps the weighted-average cost
        investment = state.investment * safe_divide(remaining, state.quantity)
        proceeds = sold * order.unit_price * rate
        new_state = replace(
            state,
            quantity=remaining,
            investment=investment,
            average_price=safe_divide(investment, remaining),
            realized_profit=state.realized_profit + proceeds - (state.investment - investment),
            total_sell=state.total_sell + proceeds,
        )

    elif order.activity_type == ActivityType.DIVIDEND:
        new_state = replace(state, dividend_accumulated=state.dividend_accumulated + amount)

    else:
        raise ValueError(f"{order.activity_type.value} orders are not tracked per symbol")

    new_state = replace(
        new_state,
        fee_accumulated=state.fee_accumulated + fee,
        transaction_count=state.transaction_count + 1,
        tags=tags,
    )
    return new_state, error


def compute_transaction_points(
    orders: list[PortfolioOrder],
    rate_provider: ReferenceRateProvider | None = None
) -> tuple[list[TransactionPoint], list[ResponseError]]:
    """
    Fold orders into one immutable transaction point per distinct order date.

    Each point holds the cumulative state of every symbol seen so far,
    immediately after all orders on or before its date. Symbols whose
    quantity went back to zero stay in the point so their history remains
    queryable. FEE, INTEREST and LIABILITY activities are portfolio level
    cash flows and do not produce per-symbol state.

    Args:
        orders: Orders in canonical order (ascending date, stable).
        rate_provider: Converts amounts at the date of each order. Defaults to
            keeping amounts in each position's own currency.

    Returns:
        Tuple of (transaction_points, soft_errors).
    """
    if rate_provider is None:
        rate_provider = IdentityRateProvider()

    holdings: dict[str, PositionState] = {}
    points: list[TransactionPoint] = []
    errors: list[ResponseError] = []

    for order in sort_orders(orders):
        if order.activity_type not in POSITION_TYPES:
            continue

        rate = rate_provider.rate(order.currency, order.date)
        holdings[order.symbol], error = apply_order(holdings.get(order.symbol), order, rate)
        if error is not None:
            errors.append(error)

        point = TransactionPoint(date=order.date, items=holdings)
        if points and points[-1].date == order.date:
            points[-1] = point
        else:
            points.append(point)

    return points, errors


def get_transaction_point_at(points: list[TransactionPoint], boundary) -> TransactionPoint | None:
    """Return the last point with a date on or before ``boundary``, if any."""
    low, high = 0, len(points)
    while low < high:
        mid = (low + high) // 2
        if points[mid].date <= boundary:
            low = mid + 1
        else:
            high = mid
    return points[low - 1] if low > 0 else None
