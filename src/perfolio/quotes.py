from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
import sys

import pandas as pd
import yfinance as yf  # type: ignore[import-untyped]

from .currency import Currency
from .errors import DataUnavailableError
from .helpers import DATE_FORMAT

# When True, print status messages during data fetching (e.g. "Fetching AAPL …").
# Defaults to False so CLI output isn't polluted.
verbose: bool = False


class MarketState(Enum):
    """State of the market a quote was taken from."""

    OPEN = "open"
    CLOSED = "closed"
    DELAYED = "delayed"


@dataclass(frozen=True)
class DataGatheringItem:
    """Identifies one instrument to request market data for."""

    symbol: str
    data_source: str = "YAHOO"


@dataclass(frozen=True)
class Quote:
    """Current market price of an instrument."""

    symbol: str
    market_price: Decimal
    market_state: MarketState = MarketState.CLOSED
    currency: Currency | None = None


class QuoteProvider(ABC):
    """Abstract base class for current and historical market price sources.

    Symbols without data are left out of the returned mappings; providers may
    also raise :class:`DataUnavailableError`.
    """

    @abstractmethod
    def get_quotes(self, items: list[DataGatheringItem]) -> dict[str, Quote]:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def get_historical(
        self,
        items: list[DataGatheringItem],
        start_date: date,
        end_date: date,
        granularity: str = "day"
    ) -> dict[str, dict[date, Decimal]]:
        raise NotImplementedError("This method should be overridden by subclasses.")


class FixedQuoteProvider(QuoteProvider):
    """Quote provider serving prices from in-memory tables."""

    def __init__(
        self,
        quotes: dict[str, Decimal] | None = None,
        historical: dict[str, dict[date, Decimal]] | None = None
    ):
        """Initialize with fixed data.

        Args:
            quotes: Current market price per symbol.
            historical: Closing price per symbol and date.
        """
        self.quotes = dict(quotes or {})
        self.historical = {symbol: dict(prices) for symbol, prices in (historical or {}).items()}

    def get_quotes(self, items: list[DataGatheringItem]) -> dict[str, Quote]:
        return {
            item.symbol: Quote(symbol=item.symbol, market_price=self.quotes[item.symbol])
            for item in items
            if item.symbol in self.quotes
        }

    def get_historical(
        self,
        items: list[DataGatheringItem],
        start_date: date,
        end_date: date,
        granularity: str = "day"
    ) -> dict[str, dict[date, Decimal]]:
        result: dict[str, dict[date, Decimal]] = {}
        for item in items:
            prices = self.historical.get(item.symbol)
            if prices is None:
                continue
            result[item.symbol] = {
                price_date: price
                for price_date, price in sorted(prices.items())
                if start_date <= price_date <= end_date
            }
        return result


class YFinanceQuoteProvider(QuoteProvider):
    """Quote provider backed by Yahoo Finance."""

    def get_quotes(self, items: list[DataGatheringItem]) -> dict[str, Quote]:
        """Get the latest price of each symbol.

        Uses ``fast_info['lastPrice']``, which includes pre-market and
        after-hours trading, unlike regularMarketPrice.
        """
        result: dict[str, Quote] = {}
        for item in items:
            if verbose:
                print(f"  Fetching quote for {item.symbol} …", file=sys.stderr, flush=True)
            try:
                last_price = yf.Ticker(item.symbol).fast_info.get("lastPrice")
            except Exception as e:
                raise DataUnavailableError(item.symbol, f"yfinance quote request failed for {item.symbol}: {e}") from e
            if last_price is None:
                continue
            result[item.symbol] = Quote(
                symbol=item.symbol,
                market_price=Decimal(str(last_price)),
                market_state=MarketState.DELAYED,
            )
        return result

    def get_historical(
        self,
        items: list[DataGatheringItem],
        start_date: date,
        end_date: date,
        granularity: str = "day"
    ) -> dict[str, dict[date, Decimal]]:
        """Get daily closing prices of each symbol between two dates (inclusive)."""
        if granularity != "day":
            raise ValueError(f"Unsupported granularity: {granularity}")

        result: dict[str, dict[date, Decimal]] = {}
        for item in items:
            if verbose:
                print(f"  Fetching {item.symbol} ({start_date} to {end_date}) …", file=sys.stderr, flush=True)
            try:
                df: pd.DataFrame = yf.Ticker(item.symbol).history(  # type: ignore[call-arg]
                    start=start_date.isoformat(),
                    # yfinance end date is exclusive
                    end=(end_date + timedelta(days=1)).isoformat(),
                    auto_adjust=False,
                )
            except Exception as e:
                raise DataUnavailableError(item.symbol, f"yfinance request failed for {item.symbol}: {e}") from e

            if df.empty:
                continue

            df = df.reset_index()
            df["Date"] = pd.to_datetime(df["Date"]).dt.date
            result[item.symbol] = {
                row_date: Decimal(str(close))
                for row_date, close in zip(df["Date"], df["Close"])
                if pd.notna(close)
            }
        return result


def parse_price_table(data: dict[str, dict[str, float | str]]) -> dict[str, dict[date, Decimal]]:
    """Parse ``{symbol: {"YYYY-MM-DD": price}}`` into a historical price table."""
    return {
        symbol: {
            datetime.strptime(day, DATE_FORMAT).date(): Decimal(str(price))
            for day, price in prices.items()
        }
        for symbol, prices in data.items()
    }
