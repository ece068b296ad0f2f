"""Return conventions for turning an absolute performance into a percentage.

The conventions differ only in how invested capital is measured, so each
one is a strategy over the same :class:`ValuationWindow`. A snapshot picks
exactly one strategy and uses it for every percentage it reports.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from scipy.optimize import brentq

from .helpers import safe_divide

ZERO = Decimal("0")


class PerformanceCalculationType(Enum):
    """Supported return conventions."""

    ROI = "ROI"    # Return on net invested cost basis
    ROAI = "ROAI"  # Return on average invested capital
    TWR = "TWR"    # Time-weighted return
    MWR = "MWR"    # Money-weighted return


@dataclass(frozen=True)
class Valuation:
    """Cumulative, base-currency state of a holding (or portfolio) on a date."""

    date: date
    market_value: Decimal = ZERO
    investment: Decimal = ZERO
    dividend: Decimal = ZERO
    fee: Decimal = ZERO
    realized_profit: Decimal = ZERO
    total_buy: Decimal = ZERO
    total_sell: Decimal = ZERO

    @property
    def gross_value(self) -> Decimal:
        """Cumulative gross performance up to this date."""
        return self.market_value - self.investment + self.dividend + self.realized_profit

    def __add__(self, other: "Valuation") -> "Valuation":
        return Valuation(
            date=self.date,
            market_value=self.market_value + other.market_value,
            investment=self.investment + other.investment,
            dividend=self.dividend + other.dividend,
            fee=self.fee + other.fee,
            realized_profit=self.realized_profit + other.realized_profit,
            total_buy=self.total_buy + other.total_buy,
            total_sell=self.total_sell + other.total_sell,
        )


class ValuationWindow:
    """
    Valuations from the start of a window to its end.

    The first valuation is the state in effect at the window start, the last
    one the state at the window end, and the ones in between sit on every
    transaction point date crossed by the window.
    """

    def __init__(self, valuations: list[Valuation]):
        if not valuations:
            raise ValueError("A valuation window needs at least one valuation.")
        self.valuations = valuations

    @property
    def start(self) -> Valuation:
        return self.valuations[0]

    @property
    def end(self) -> Valuation:
        return self.valuations[-1]

    @property
    def days(self) -> int:
        return (self.end.date - self.start.date).days

    @property
    def gross_performance(self) -> Decimal:
        return self.end.gross_value - self.start.gross_value

    @property
    def fees(self) -> Decimal:
        return self.end.fee - self.start.fee

    @property
    def dividends(self) -> Decimal:
        return self.end.dividend - self.start.dividend

    @property
    def net_performance(self) -> Decimal:
        return self.gross_performance - self.fees

    @property
    def buys(self) -> Decimal:
        return self.end.total_buy - self.start.total_buy

    @property
    def sells(self) -> Decimal:
        return self.end.total_sell - self.start.total_sell

    def performance(self, net: bool) -> Decimal:
        return self.net_performance if net else self.gross_performance

    def capital_at(self, valuation: Valuation) -> Decimal:
        """Capital at work after ``valuation``: start value plus net investment since."""
        return self.start.market_value + valuation.investment - self.start.investment

    def invested_capital(self) -> Decimal:
        """Start value plus buys, the fallback denominator of every convention."""
        return self.start.market_value + self.buys

    def __len__(self):
        return len(self.valuations)


class PercentageStrategy(ABC):
    """Turns the performance of a window into a fraction (0.10 = 10%)."""

    @abstractmethod
    def percentage(self, window: ValuationWindow, net: bool = True) -> Decimal:
        raise NotImplementedError("This method should be overridden by subclasses.")


class ROIStrategy(PercentageStrategy):
    """Performance over net invested cost basis (buys minus sell proceeds)."""

    def denominator(self, window: ValuationWindow) -> Decimal:
        net_invested = window.start.market_value + window.buys - window.sells
        if net_invested > 0:
            return net_invested
        return window.invested_capital()

    def percentage(self, window: ValuationWindow, net: bool = True) -> Decimal:
        return safe_divide(window.performance(net), self.denominator(window))


class ROAIStrategy(PercentageStrategy):
    """Performance over the average capital invested during the window.

    The average is weighted by the number of days each level of capital was
    held; days without capital at work are left out.
    """

    def denominator(self, window: ValuationWindow) -> Decimal:
        weighted_sum = ZERO
        total_days = 0

        for previous, current in zip(window.valuations, window.valuations[1:]):
            days = (current.date - previous.date).days
            capital = window.capital_at(previous)
            if days > 0 and capital > 0:
                weighted_sum += capital * days
                total_days += days

        if total_days > 0:
            return weighted_sum / total_days

        capital = window.capital_at(window.end)
        if capital > 0:
            return capital
        return window.invested_capital()

    def percentage(self, window: ValuationWindow, net: bool = True) -> Decimal:
        return safe_divide(window.performance(net), self.denominator(window))


class TWRStrategy(PercentageStrategy):
    """Chains sub-period growth factors across every valuation boundary.

    Cash flows count at the end of the sub-period they fall in, so a buy
    made after a price move neither adds to nor dilutes the return. A
    sub-period that opens without value is measured against its buys.
    """

    def growth_factor(self, previous: Valuation, current: Valuation, net: bool = True) -> Decimal:
        buys = current.total_buy - previous.total_buy
        end_value = (
            current.market_value
            + (current.total_sell - previous.total_sell)
            + (current.dividend - previous.dividend)
        )
        if net:
            end_value -= current.fee - previous.fee

        if previous.market_value > 0:
            return (end_value - buys) / previous.market_value
        if buys > 0:
            return end_value / buys
        return Decimal("1")

    def percentage(self, window: ValuationWindow, net: bool = True) -> Decimal:
        growth = Decimal("1")
        for previous, current in zip(window.valuations, window.valuations[1:]):
            growth *= self.growth_factor(previous, current, net)
        return growth - 1


class MWRStrategy(PercentageStrategy):
    """Money-weighted return: the period rate at which dated cash flows net to zero.

    Returns the rate for the whole window, not an annual one. Falls back to
    ROI when the window has no duration or no root can be bracketed.
    """

    LOWER_BOUND = -0.9999
    UPPER_BOUND = 1e4

    def cash_flows(self, window: ValuationWindow, net: bool = True) -> list[tuple[float, float]]:
        total_days = window.days
        flows: list[tuple[float, float]] = [(0.0, -float(window.start.market_value))]

        for previous, current in zip(window.valuations, window.valuations[1:]):
            amount = (
                -(current.total_buy - previous.total_buy)
                + (current.total_sell - previous.total_sell)
                + (current.dividend - previous.dividend)
            )
            if net:
                amount -= current.fee - previous.fee
            flows.append(((current.date - window.start.date).days / total_days, float(amount)))

        flows.append((1.0, float(window.end.market_value)))
        return flows

    def percentage(self, window: ValuationWindow, net: bool = True) -> Decimal:
        if window.days <= 0:
            return ROIStrategy().percentage(window, net)

        flows = self.cash_flows(window, net)
        if not any(amount for _, amount in flows):
            return ROIStrategy().percentage(window, net)

        def net_present_value(rate: float) -> float:
            return sum(amount / (1 + rate) ** t for t, amount in flows)

        try:
            rate = brentq(net_present_value, self.LOWER_BOUND, self.UPPER_BOUND, xtol=1e-12)
        except (ValueError, RuntimeError, OverflowError, ZeroDivisionError):
            return ROIStrategy().percentage(window, net)

        return Decimal(str(rate))


_STRATEGIES: dict[PerformanceCalculationType, PercentageStrategy] = {
    PerformanceCalculationType.ROI: ROIStrategy(),
    PerformanceCalculationType.ROAI: ROAIStrategy(),
    PerformanceCalculationType.TWR: TWRStrategy(),
    PerformanceCalculationType.MWR: MWRStrategy(),
}


def get_percentage_strategy(calculation_type: PerformanceCalculationType) -> PercentageStrategy:
    """Return the strategy implementing a return convention."""
    return _STRATEGIES[calculation_type]
