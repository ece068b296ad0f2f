"""Portfolio positions and performance from a chronological activity ledger.

Folds buy, sell, dividend and fee activities into transaction points,
values them against market quotes, and reports performance with and
without currency effects under the ROI, ROAI, TWR and MWR conventions.
"""

from .cache import CalculationCache, make_cache_key
from .calculator import PortfolioCalculator, PriceHistory
from .chart import build_chart_series, get_chart, get_chart_step
from .currency import (
    Currency,
    ExchangeRateManager,
    FederalReserveExchangeRateManager,
    FixedExchangeRateManager,
    HistoricalExchangeRateManager,
)
from .errors import DataUnavailableError, InvalidOrderError
from .helpers import get_annualized_performance_percent, get_interval_from_date_range
from .models import (
    ActivityType,
    CurrentPositions,
    ErrorKind,
    HistoricalDataContainer,
    HistoricalDataItem,
    PortfolioOrder,
    PortfolioSummary,
    PositionState,
    ResponseError,
    TimelinePosition,
    TransactionPoint,
)
from .performance import PerformanceCalculationType, get_percentage_strategy
from .quotes import FixedQuoteProvider, QuoteProvider, YFinanceQuoteProvider
from .transaction_points import compute_transaction_points, get_transaction_point_at

__all__ = [
    "ActivityType",
    "CalculationCache",
    "Currency",
    "CurrentPositions",
    "DataUnavailableError",
    "ErrorKind",
    "ExchangeRateManager",
    "FederalReserveExchangeRateManager",
    "FixedExchangeRateManager",
    "FixedQuoteProvider",
    "HistoricalDataContainer",
    "HistoricalDataItem",
    "HistoricalExchangeRateManager",
    "InvalidOrderError",
    "PerformanceCalculationType",
    "PortfolioCalculator",
    "PortfolioOrder",
    "PortfolioSummary",
    "PositionState",
    "PriceHistory",
    "QuoteProvider",
    "ResponseError",
    "TimelinePosition",
    "TransactionPoint",
    "YFinanceQuoteProvider",
    "build_chart_series",
    "compute_transaction_points",
    "get_annualized_performance_percent",
    "get_chart",
    "get_chart_step",
    "get_interval_from_date_range",
    "get_percentage_strategy",
    "get_transaction_point_at",
    "make_cache_key",
]
