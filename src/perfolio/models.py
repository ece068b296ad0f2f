from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from .currency import Currency


class ActivityType(Enum):
    """Enumeration of supported ledger activity types."""

    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    FEE = "FEE"
    INTEREST = "INTEREST"
    ITEM = "ITEM"
    LIABILITY = "LIABILITY"
    STAKE = "STAKE"


# Activities that add units to a holding
ACQUISITION_TYPES = frozenset({ActivityType.BUY, ActivityType.ITEM, ActivityType.STAKE})

# Activities that are folded into per-symbol transaction points
POSITION_TYPES = ACQUISITION_TYPES | {ActivityType.SELL, ActivityType.DIVIDEND}


class ErrorKind(Enum):
    """Kinds of recoverable, per-symbol problems reported in results."""

    DATA_UNAVAILABLE = "DATA_UNAVAILABLE"
    OVERSOLD = "OVERSOLD"
    TIMEOUT = "TIMEOUT"


@dataclass(frozen=True)
class PortfolioOrder:
    """A single ledger activity (buy, sell, dividend, fee, ...)."""

    date: date
    symbol: str
    currency: Currency
    activity_type: ActivityType
    quantity: Decimal
    unit_price: Decimal
    fee: Decimal = Decimal("0")
    data_source: str = "MANUAL"
    tags: tuple[str, ...] = ()
    name: str | None = None

    @property
    def amount(self) -> Decimal:
        """Return quantity times unit price, in the order's currency."""
        return self.quantity * self.unit_price


def sort_orders(orders: list[PortfolioOrder]) -> list[PortfolioOrder]:
    """Return the orders in canonical order.

    Ascending by date; ``sorted`` is stable, so same-date orders keep their
    original insertion order.
    """
    return sorted(orders, key=lambda o: o.date)


@dataclass(frozen=True)
class PositionState:
    """Cumulative state of one symbol immediately after a transaction point.

    Amounts are in the currency the point was built in: the position's own
    currency for plain points, or the base currency when the points were
    built with a reference rate provider.
    """

    symbol: str
    currency: Currency
    data_source: str
    quantity: Decimal = Decimal("0")
    investment: Decimal = Decimal("0")
    fee_accumulated: Decimal = Decimal("0")
    dividend_accumulated: Decimal = Decimal("0")
    average_price: Decimal = Decimal("0")
    first_buy_date: date | None = None
    transaction_count: int = 0
    tags: tuple[str, ...] = ()
    realized_profit: Decimal = Decimal("0")
    total_buy: Decimal = Decimal("0")
    total_sell: Decimal = Decimal("0")


@dataclass(frozen=True)
class TransactionPoint:
    """Immutable snapshot of all per-symbol holdings as of a date."""

    date: date
    items: Mapping[str, PositionState]

    def __post_init__(self):
        if not isinstance(self.items, MappingProxyType):
            object.__setattr__(self, "items", MappingProxyType(dict(self.items)))

    def get(self, symbol: str) -> PositionState | None:
        return self.items.get(symbol)


@dataclass(frozen=True)
class ResponseError:
    """A recoverable problem with one symbol, reported next to the result."""

    data_source: str
    symbol: str
    kind: ErrorKind
    message: str = ""


@dataclass
class TimelinePosition:
    """Aggregated metrics of one symbol over a snapshot window.

    ``investment``, ``average_price``, ``fee`` and ``dividend`` are in the
    position currency. Performance values are in the base currency;
    the plain variants use a frozen reference rate so that exchange rate
    movement is excluded, the ``with_currency_effect`` variants convert
    every cash flow at the rate of its own date. Performance fields are
    None when market data for the symbol is unavailable.
    """

    symbol: str
    currency: Currency
    data_source: str
    quantity: Decimal
    average_price: Decimal
    investment: Decimal
    investment_with_currency_effect: Decimal
    fee: Decimal
    fee_in_base_currency: Decimal
    dividend: Decimal
    dividend_in_base_currency: Decimal
    first_buy_date: date | None
    transaction_count: int
    tags: tuple[str, ...] = ()
    market_price: Decimal | None = None
    market_price_in_base_currency: Decimal | None = None
    market_value: Decimal | None = None
    value_in_base_currency: Decimal | None = None
    gross_performance: Decimal | None = None
    gross_performance_percentage: Decimal | None = None
    gross_performance_with_currency_effect: Decimal | None = None
    gross_performance_percentage_with_currency_effect: Decimal | None = None
    net_performance: Decimal | None = None
    net_performance_percentage: Decimal | None = None
    net_performance_with_currency_effect: Decimal | None = None
    net_performance_percentage_with_currency_effect: Decimal | None = None
    net_performance_with_currency_effect_map: dict[str, Decimal] = field(default_factory=dict)
    net_performance_percentage_with_currency_effect_map: dict[str, Decimal] = field(default_factory=dict)


@dataclass
class CurrentPositions:
    """Point-in-time snapshot of the whole portfolio over a window."""

    positions: list[TimelinePosition]
    start_date: date | None = None
    end_date: date | None = None
    total_investment: Decimal = Decimal("0")
    total_investment_with_currency_effect: Decimal = Decimal("0")
    current_value_in_base_currency: Decimal = Decimal("0")
    gross_performance: Decimal = Decimal("0")
    gross_performance_percentage: Decimal = Decimal("0")
    gross_performance_with_currency_effect: Decimal = Decimal("0")
    gross_performance_percentage_with_currency_effect: Decimal = Decimal("0")
    net_performance: Decimal = Decimal("0")
    net_performance_percentage: Decimal = Decimal("0")
    net_performance_with_currency_effect: Decimal = Decimal("0")
    net_performance_percentage_with_currency_effect: Decimal = Decimal("0")
    total_fees_with_currency_effect: Decimal = Decimal("0")
    total_interest_with_currency_effect: Decimal = Decimal("0")
    total_liabilities_with_currency_effect: Decimal = Decimal("0")
    total_dividend_with_currency_effect: Decimal = Decimal("0")
    has_errors: bool = False
    errors: list[ResponseError] = field(default_factory=list)


@dataclass
class HistoricalDataItem:
    """One sampled day of the chart series, in the base currency."""

    date: date
    value: Decimal
    net_performance: Decimal
    net_performance_in_percentage: Decimal
    net_performance_with_currency_effect: Decimal
    net_performance_in_percentage_with_currency_effect: Decimal
    investment_value: Decimal
    investment_value_with_currency_effect: Decimal
    total_investment_value: Decimal
    total_investment_value_with_currency_effect: Decimal
    time_weighted_performance_in_percentage: Decimal | None = None


@dataclass
class HistoricalDataContainer:
    """Chart series plus all-time extremes of its latest item."""

    items: list[HistoricalDataItem]
    is_all_time_high: bool = False
    is_all_time_low: bool = False


@dataclass
class PortfolioSummary:
    """Activity totals and annualized performance of a portfolio.

    Amounts are in the base currency, each converted at the rate of the
    activity's date.
    """

    total_buy: Decimal
    total_sell: Decimal
    committed_funds: Decimal
    dividend: Decimal
    fees: Decimal
    interest: Decimal
    liabilities: Decimal
    items: Decimal
    first_order_date: date | None
    days_in_market: int
    activity_count: int
    net_performance_percentage: Decimal
    net_performance_percentage_with_currency_effect: Decimal
    annualized_performance_percent: Decimal
    annualized_performance_percent_with_currency_effect: Decimal
