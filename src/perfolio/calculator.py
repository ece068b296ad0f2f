"""Position snapshot calculation over a chronological activity ledger."""

import bisect
import concurrent.futures
import warnings
from datetime import date, timedelta
from decimal import Decimal

from . import config
from .currency import Currency, ExchangeRateManager
from .errors import DataUnavailableError
from .helpers import get_annualized_performance_percent, get_interval_from_date_range, safe_divide
from .models import (
    ActivityType,
    CurrentPositions,
    ErrorKind,
    PortfolioOrder,
    PortfolioSummary,
    PositionState,
    ResponseError,
    TimelinePosition,
    TransactionPoint,
    sort_orders,
)
from .performance import (
    PerformanceCalculationType,
    Valuation,
    ValuationWindow,
    get_percentage_strategy,
)
from .quotes import DataGatheringItem, Quote, QuoteProvider
from .rates import DatedRateProvider, FrozenRateProvider, ReferenceRateProvider
from .transaction_points import compute_transaction_points, get_transaction_point_at, validate_orders

ZERO = Decimal("0")

# Days of history requested before a window so that a start date falling on
# a weekend or holiday still finds a price to carry forward
PRICE_LOOKBACK_DAYS = 14


class PriceHistory:
    """Known prices of one symbol, looked up with last-known-price carry forward."""

    def __init__(self, prices: dict[date, Decimal] | None = None):
        self._prices: dict[date, Decimal] = dict(prices or {})
        self._dates: list[date] = sorted(self._prices)

    def update(self, prices: dict[date, Decimal]):
        self._prices.update(prices)
        self._dates = sorted(self._prices)

    def price_at(self, on: date) -> Decimal | None:
        """Return the price on ``on`` or the latest one before it."""
        index = bisect.bisect_right(self._dates, on)
        if index == 0:
            return None
        return self._prices[self._dates[index - 1]]


class MarketData:
    """Price histories of the symbols of one calculation plus fetch errors."""

    def __init__(self, histories: dict[str, PriceHistory], errors: list[ResponseError]):
        self.histories = histories
        self.errors = errors

    @property
    def failed_symbols(self) -> set[str]:
        return {error.symbol for error in self.errors}


class PortfolioCalculator:
    """
    Computes holdings and performance of one activity ledger.

    One instance owns one order list and the transaction points derived from
    it for the lifetime of a calculation; instances are not shared between
    concurrent calculations.
    """

    def __init__(
        self,
        orders: list[PortfolioOrder],
        currency: Currency,
        exchange_rate_manager: ExchangeRateManager,
        quote_provider: QuoteProvider,
        calculation_type: PerformanceCalculationType = PerformanceCalculationType.ROAI,
        today: date | None = None,
        horizons: tuple[str, ...] | None = None,
        quote_timeout: float | None = None,
        max_workers: int | None = None,
    ):
        """Initialize a PortfolioCalculator.

        Args:
            orders: Ledger activities, ascending by date.
            currency: Base currency all performance is reported in.
            exchange_rate_manager: Converter for cash flows and valuations.
            quote_provider: Source of current and historical prices.
            calculation_type: Return convention used for every percentage.
            today: Evaluation date. Defaults to today.
            horizons: Date ranges of the rolling performance maps.
            quote_timeout: Seconds to wait for the quote fan-out.
            max_workers: Size of the quote fan-out thread pool.

        Raises:
            InvalidOrderError: If any order has a negative or non-finite value.
        """
        validate_orders(orders)

        self.orders = sort_orders(orders)
        self.currency = currency
        self.exchange_rate_manager = exchange_rate_manager
        self.quote_provider = quote_provider
        self.calculation_type = calculation_type
        self.strategy = get_percentage_strategy(calculation_type)
        self.today = today or date.today()
        self.horizons = config.HORIZONS if horizons is None else horizons
        self.quote_timeout = config.QUOTE_TIMEOUT if quote_timeout is None else quote_timeout
        self.max_workers = max_workers or config.QUOTE_WORKERS

        self.dated_rates = DatedRateProvider(exchange_rate_manager, currency)

        self.transaction_points, self.errors = compute_transaction_points(self.orders)
        self._points_with_currency_effect: list[TransactionPoint] | None = None

    def get_transaction_points(self) -> list[TransactionPoint]:
        """Return the transaction points in each position's own currency."""
        return self.transaction_points

    def get_transaction_points_with_currency_effect(self) -> list[TransactionPoint]:
        """Return transaction points in the base currency, each cash flow converted at its date."""
        if self._points_with_currency_effect is None:
            self._points_with_currency_effect, _ = compute_transaction_points(self.orders, self.dated_rates)
        return self._points_with_currency_effect

    def get_transaction_points_at_frozen_rate(self, reference_date: date) -> tuple[list[TransactionPoint], FrozenRateProvider]:
        """Return transaction points in the base currency at one reference date's rate."""
        frozen_rates = FrozenRateProvider(self.exchange_rate_manager, self.currency, reference_date)
        points, _ = compute_transaction_points(self.orders, frozen_rates)
        return points, frozen_rates

    def get_start_date(self) -> date | None:
        """Return the date of the first transaction point (portfolio inception)."""
        if not self.transaction_points:
            return None
        return self.transaction_points[0].date

    def get_held_symbols(self, start_date: date, end_date: date) -> list[PositionState]:
        """Return the symbols with a positive quantity at any time within the window."""
        held: dict[str, PositionState] = {}

        start_point = get_transaction_point_at(self.transaction_points, start_date)
        candidates = [start_point] if start_point else []
        candidates += [p for p in self.transaction_points if start_date < p.date <= end_date]

        for point in candidates:
            for symbol, state in point.items.items():
                if state.quantity > 0 and symbol not in held:
                    held[symbol] = state
        return list(held.values())

    def _order_prices(self, symbol: str) -> dict[date, Decimal]:
        return {
            order.date: order.unit_price
            for order in self.orders
            if order.symbol == symbol and order.activity_type != ActivityType.DIVIDEND
        }

    def _fetch_symbol(
        self,
        item: DataGatheringItem,
        start_date: date,
        end_date: date,
        need_quote: bool
    ) -> tuple[dict[date, Decimal] | None, Quote | None]:
        historical = self.quote_provider.get_historical([item], start_date, end_date).get(item.symbol)
        quote = self.quote_provider.get_quotes([item]).get(item.symbol) if need_quote else None
        return historical, quote

    def load_market_data(
        self,
        symbols: list[PositionState],
        start_date: date,
        end_date: date,
        fetch_quotes: bool = True
    ) -> MarketData:
        """
        Gather price histories of the given symbols for a window.

        Order unit prices seed every history. When ``fetch_quotes`` is set,
        historical prices and (for windows reaching today) current quotes
        are requested for all symbols concurrently; a symbol whose data is
        missing, fails or does not arrive within ``quote_timeout`` is
        recorded as a soft error without affecting the others.
        """
        histories = {state.symbol: PriceHistory(self._order_prices(state.symbol)) for state in symbols}
        errors: list[ResponseError] = []

        if not fetch_quotes or not symbols:
            return MarketData(histories, errors)

        need_quote = end_date >= self.today
        fetch_start = start_date - timedelta(days=PRICE_LOOKBACK_DAYS)

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=min(self.max_workers, len(symbols)))
        futures = [
            (state, executor.submit(
                self._fetch_symbol,
                DataGatheringItem(symbol=state.symbol, data_source=state.data_source),
                fetch_start,
                end_date,
                need_quote,
            ))
            for state in symbols
        ]
        concurrent.futures.wait([future for _, future in futures], timeout=self.quote_timeout)
        executor.shutdown(wait=False, cancel_futures=True)

        for state, future in futures:
            error_kind = ErrorKind.DATA_UNAVAILABLE
            if not future.done():
                error_kind = ErrorKind.TIMEOUT
                message = f"Market data for {state.symbol} did not arrive within {self.quote_timeout}s"
            else:
                try:
                    historical, quote = future.result()
                except Exception as e:
                    message = str(e) if isinstance(e, DataUnavailableError) else f"Market data request for {state.symbol} failed: {e}"
                else:
                    if historical is None:
                        message = f"No historical market data available for {state.symbol}"
                    elif need_quote and quote is None:
                        message = f"No current quote available for {state.symbol}"
                    else:
                        history = histories[state.symbol]
                        history.update(historical)
                        if quote is not None:
                            history.update({self.today: quote.market_price})
                        continue

            warnings.warn(message, UserWarning)
            errors.append(ResponseError(
                data_source=state.data_source,
                symbol=state.symbol,
                kind=error_kind,
                message=message,
            ))

        return MarketData(histories, errors)

    def get_grid_dates(self, start_date: date, end_date: date) -> list[date]:
        """Return the window start, every transaction point date inside the window and its end."""
        grid = [start_date]
        grid += [p.date for p in self.transaction_points if start_date < p.date < end_date]
        if end_date > start_date:
            grid.append(end_date)
        return grid

    def get_valuation(
        self,
        symbol: str,
        points: list[TransactionPoint],
        on: date,
        history: PriceHistory | None,
        rates: ReferenceRateProvider
    ) -> Valuation:
        """
        Value one symbol on a date from the transaction point in effect.

        Raises:
            DataUnavailableError: If the symbol is held but has no known price.
        """
        point = get_transaction_point_at(points, on)
        state = point.get(symbol) if point else None
        if state is None:
            return Valuation(date=on)

        market_value = ZERO
        if state.quantity > 0:
            price = history.price_at(on) if history else None
            if price is None:
                raise DataUnavailableError(symbol, f"No price known for {symbol} on or before {on.isoformat()}")
            market_value = state.quantity * price * rates.rate(state.currency, on)

        return Valuation(
            date=on,
            market_value=market_value,
            investment=state.investment,
            dividend=state.dividend_accumulated,
            fee=state.fee_accumulated,
            realized_profit=state.realized_profit,
            total_buy=state.total_buy,
            total_sell=state.total_sell,
        )

    def get_window(
        self,
        symbol: str,
        points: list[TransactionPoint],
        grid: list[date],
        history: PriceHistory | None,
        rates: ReferenceRateProvider
    ) -> ValuationWindow:
        return ValuationWindow([self.get_valuation(symbol, points, on, history, rates) for on in grid])

    @staticmethod
    def sum_windows(windows: list[ValuationWindow], grid: list[date]) -> ValuationWindow:
        """Add per-symbol windows sharing one grid into a portfolio window."""
        totals = [Valuation(date=on) for on in grid]
        for window in windows:
            totals = [total + valuation for total, valuation in zip(totals, window.valuations)]
        return ValuationWindow(totals)

    def _get_cash_flow_totals(self, start_date: date, end_date: date) -> dict[str, Decimal]:
        totals = {"fees": ZERO, "interest": ZERO, "liabilities": ZERO, "dividend": ZERO}
        for order in self.orders:
            if not start_date < order.date <= end_date:
                continue
            amount = self.dated_rates.convert(order.amount, order.currency, order.date)
            totals["fees"] += self.dated_rates.convert(order.fee, order.currency, order.date)
            if order.activity_type == ActivityType.FEE:
                totals["fees"] += amount
            elif order.activity_type == ActivityType.INTEREST:
                totals["interest"] += amount
            elif order.activity_type == ActivityType.LIABILITY:
                totals["liabilities"] += amount
            elif order.activity_type == ActivityType.DIVIDEND:
                totals["dividend"] += amount
        return totals

    def get_current_positions(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        fetch_quotes: bool = True
    ) -> CurrentPositions:
        """
        Compute aggregated position and performance metrics over a window.

        Args:
            start_date: Window start; the state in effect on this date is the
                baseline. Defaults to the day before portfolio inception.
            end_date: Evaluation date. Defaults to ``today``.
            fetch_quotes: Request current and historical prices from the
                quote provider. Without it, only order prices are known.

        Returns:
            A CurrentPositions snapshot. Symbols without market data are
            reported in ``errors`` with undefined performance fields.
        """
        if end_date is None:
            end_date = self.today

        inception = self.get_start_date()
        if inception is None:
            return CurrentPositions(positions=[], start_date=start_date, end_date=end_date)

        if start_date is None:
            start_date = inception - timedelta(days=1)
        if start_date > end_date:
            raise ValueError(f"Start date {start_date} is after end date {end_date}")

        horizons: dict[str, date] = {}
        for date_range in self.horizons:
            horizon_start, _ = get_interval_from_date_range(date_range, inception, end_date)
            if horizon_start < end_date:
                horizons[date_range] = horizon_start

        earliest = min([start_date, *horizons.values()])
        held = self.get_held_symbols(earliest, end_date)
        market_data = self.load_market_data(held, earliest, end_date, fetch_quotes)
        errors = list(self.errors) + market_data.errors
        failed = market_data.failed_symbols

        end_point = get_transaction_point_at(self.transaction_points, end_date)
        end_states = dict(end_point.items) if end_point else {}
        effect_points = self.get_transaction_points_with_currency_effect()
        effect_end_point = get_transaction_point_at(effect_points, end_date)
        frozen_points, frozen_rates = self.get_transaction_points_at_frozen_rate(end_date)
        frozen_end_point = get_transaction_point_at(frozen_points, end_date)

        grid = self.get_grid_dates(start_date, end_date)
        positions: list[TimelinePosition] = []
        frozen_windows: list[ValuationWindow] = []
        effect_windows: list[ValuationWindow] = []
        total_investment = ZERO
        total_investment_with_currency_effect = ZERO
        current_value = ZERO

        for symbol, state in end_states.items():
            effect_state = effect_end_point.items[symbol]
            frozen_state = frozen_end_point.items[symbol]
            total_investment += frozen_state.investment
            total_investment_with_currency_effect += effect_state.investment

            position = TimelinePosition(
                symbol=symbol,
                currency=state.currency,
                data_source=state.data_source,
                quantity=state.quantity,
                average_price=state.average_price,
                investment=state.investment,
                investment_with_currency_effect=effect_state.investment,
                fee=state.fee_accumulated,
                fee_in_base_currency=effect_state.fee_accumulated,
                dividend=state.dividend_accumulated,
                dividend_in_base_currency=effect_state.dividend_accumulated,
                first_buy_date=state.first_buy_date,
                transaction_count=state.transaction_count,
                tags=state.tags,
            )
            positions.append(position)

            if symbol in failed:
                continue

            history = market_data.histories.get(symbol)
            try:
                frozen_window = self.get_window(symbol, frozen_points, grid, history, frozen_rates)
                effect_window = self.get_window(symbol, effect_points, grid, history, self.dated_rates)
                horizon_windows = {
                    date_range: self.get_window(
                        symbol, effect_points, self.get_grid_dates(horizon_start, end_date), history, self.dated_rates
                    )
                    for date_range, horizon_start in horizons.items()
                }
            except DataUnavailableError as e:
                warnings.warn(str(e), UserWarning)
                errors.append(ResponseError(state.data_source, symbol, ErrorKind.DATA_UNAVAILABLE, str(e)))
                continue

            market_price = history.price_at(end_date) if history else None
            if market_price is not None:
                position.market_price = market_price
                position.market_value = state.quantity * market_price
                position.market_price_in_base_currency = market_price * self.dated_rates.rate(state.currency, end_date)
            position.value_in_base_currency = effect_window.end.market_value
            current_value += effect_window.end.market_value

            position.gross_performance = frozen_window.gross_performance
            position.gross_performance_percentage = self.strategy.percentage(frozen_window, net=False)
            position.net_performance = frozen_window.net_performance
            position.net_performance_percentage = self.strategy.percentage(frozen_window, net=True)
            position.gross_performance_with_currency_effect = effect_window.gross_performance
            position.gross_performance_percentage_with_currency_effect = self.strategy.percentage(effect_window, net=False)
            position.net_performance_with_currency_effect = effect_window.net_performance
            position.net_performance_percentage_with_currency_effect = self.strategy.percentage(effect_window, net=True)

            for date_range, window in horizon_windows.items():
                position.net_performance_with_currency_effect_map[date_range] = window.net_performance
                position.net_performance_percentage_with_currency_effect_map[date_range] = self.strategy.percentage(window, net=True)

            frozen_windows.append(frozen_window)
            effect_windows.append(effect_window)

        frozen_total = self.sum_windows(frozen_windows, grid)
        effect_total = self.sum_windows(effect_windows, grid)
        cash_flows = self._get_cash_flow_totals(start_date, end_date)

        return CurrentPositions(
            positions=positions,
            start_date=start_date,
            end_date=end_date,
            total_investment=total_investment,
            total_investment_with_currency_effect=total_investment_with_currency_effect,
            current_value_in_base_currency=current_value,
            gross_performance=frozen_total.gross_performance,
            gross_performance_percentage=self.strategy.percentage(frozen_total, net=False),
            gross_performance_with_currency_effect=effect_total.gross_performance,
            gross_performance_percentage_with_currency_effect=self.strategy.percentage(effect_total, net=False),
            net_performance=frozen_total.net_performance,
            net_performance_percentage=self.strategy.percentage(frozen_total, net=True),
            net_performance_with_currency_effect=effect_total.net_performance,
            net_performance_percentage_with_currency_effect=self.strategy.percentage(effect_total, net=True),
            total_fees_with_currency_effect=cash_flows["fees"],
            total_interest_with_currency_effect=cash_flows["interest"],
            total_liabilities_with_currency_effect=cash_flows["liabilities"],
            total_dividend_with_currency_effect=cash_flows["dividend"],
            has_errors=len(errors) > 0,
            errors=errors,
        )

    def get_summary(self, fetch_quotes: bool = True, snapshot: CurrentPositions | None = None) -> PortfolioSummary:
        """
        Summarize all activities and annualize the all-time net performance.

        Args:
            fetch_quotes: Request current quotes when the snapshot is computed here.
            snapshot: An all-time snapshot from ``get_current_positions`` to
                reuse instead of computing a new one.

        Returns:
            A PortfolioSummary with base currency totals converted at each
            activity's date.
        """
        totals = {activity_type: ZERO for activity_type in ActivityType}
        fees = ZERO
        for order in self.orders:
            totals[order.activity_type] += self.dated_rates.convert(order.amount, order.currency, order.date)
            fees += self.dated_rates.convert(order.fee, order.currency, order.date)

        first_order_date = self.orders[0].date if self.orders else None
        days_in_market = (self.today - first_order_date).days if first_order_date else 0

        if snapshot is None:
            snapshot = self.get_current_positions(fetch_quotes=fetch_quotes)

        return PortfolioSummary(
            total_buy=totals[ActivityType.BUY],
            total_sell=totals[ActivityType.SELL],
            committed_funds=totals[ActivityType.BUY] - totals[ActivityType.SELL],
            dividend=totals[ActivityType.DIVIDEND],
            fees=fees + totals[ActivityType.FEE],
            interest=totals[ActivityType.INTEREST],
            liabilities=totals[ActivityType.LIABILITY],
            items=totals[ActivityType.ITEM],
            first_order_date=first_order_date,
            days_in_market=days_in_market,
            activity_count=len(self.orders),
            net_performance_percentage=snapshot.net_performance_percentage,
            net_performance_percentage_with_currency_effect=snapshot.net_performance_percentage_with_currency_effect,
            annualized_performance_percent=get_annualized_performance_percent(
                days_in_market, snapshot.net_performance_percentage
            ),
            annualized_performance_percent_with_currency_effect=get_annualized_performance_percent(
                days_in_market, snapshot.net_performance_percentage_with_currency_effect
            ),
        )

    def get_average_price(self, symbol: str, on: date | None = None) -> Decimal:
        """Return the weighted-average cost of a symbol on a date (zero if not held)."""
        point = get_transaction_point_at(self.transaction_points, on or self.today)
        state = point.get(symbol) if point else None
        if state is None:
            return ZERO
        return safe_divide(state.investment, state.quantity)
