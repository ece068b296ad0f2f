from enum import Enum
from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import date, datetime, timedelta
from pathlib import Path
import csv
import hashlib
import io
import urllib.request


class Currency(Enum):
    """Supported currencies for exchange rate conversions."""

    USD = "USD"
    CAD = "CAD"
    EUR = "EUR"
    TWD = "TWD"
    SGD = "SGD"
    AUD = "AUD"
    JPY = "JPY"
    KRW = "KRW"
    GBP = "GBP"
    BRL = "BRL"
    CNY = "CNY"
    HKD = "HKD"
    MXN = "MXN"
    ZAR = "ZAR"
    CHF = "CHF"
    THB = "THB"


class ExchangeRateManager(ABC):
    """Abstract base class for currency exchange rate providers."""

    @abstractmethod
    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, rate_date: date | None = None) -> Decimal:
        """Get the exchange rate between two currencies.

        Args:
            from_currency: The source currency.
            to_currency: The target currency.
            rate_date: The date for the rate lookup. If None, uses the latest rate.

        Returns:
            The exchange rate as a Decimal.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

    def to_currency(self, amount: Decimal, from_currency: Currency, to_currency: Currency, rate_date: date | None = None) -> Decimal:
        """Convert an amount between currencies at the rate of a given date.

        Args:
            amount: The amount in ``from_currency``.
            from_currency: The source currency.
            to_currency: The target currency.
            rate_date: The date of the cash flow. If None, uses the latest rate.

        Returns:
            The converted amount as a Decimal.
        """
        if from_currency == to_currency:
            return amount
        return amount * self.get_exchange_rate(from_currency, to_currency, rate_date)


class FixedExchangeRateManager(ExchangeRateManager):
    """Exchange rate manager using fixed rates that do not vary by date.

    Missing pairs are resolved through the inverse rate or by triangulating
    through USD.
    """

    def __init__(self, exchange_rates: dict[tuple[Currency, Currency], Decimal] | None = None):
        """Initialize with a table of pair rates.

        Args:
            exchange_rates: Mapping of (from, to) pairs to rates.
        """
        self.exchange_rates: dict[tuple[Currency, Currency], Decimal] = dict(exchange_rates or {})

    def set_exchange_rate(self, from_currency: Currency, to_currency: Currency, rate: Decimal):
        """Set or override the exchange rate for a currency pair."""
        self.exchange_rates[(from_currency, to_currency)] = rate

    def _lookup(self, from_currency: Currency, to_currency: Currency) -> Decimal | None:
        if (from_currency, to_currency) in self.exchange_rates:
            return self.exchange_rates[(from_currency, to_currency)]
        if (to_currency, from_currency) in self.exchange_rates:
            return Decimal("1") / self.exchange_rates[(to_currency, from_currency)]
        return None

    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, rate_date: date | None = None) -> Decimal:
        """Get the fixed exchange rate between two currencies.

        Args:
            from_currency: The source currency.
            to_currency: The target currency.
            rate_date: Ignored; included for interface compatibility.

        Returns:
            The exchange rate as a Decimal.

        Raises:
            ValueError: If no rate is available for the currency pair.
        """
        if from_currency == to_currency:
            return Decimal("1")

        rate = self._lookup(from_currency, to_currency)
        if rate is not None:
            return rate

        if from_currency != Currency.USD and to_currency != Currency.USD:
            rate_to_usd = self._lookup(from_currency, Currency.USD)
            rate_from_usd = self._lookup(Currency.USD, to_currency)
            if rate_to_usd is not None and rate_from_usd is not None:
                return rate_to_usd * rate_from_usd

        raise ValueError(f"Exchange rate from {from_currency.value} to {to_currency.value} not available.")


class HistoricalExchangeRateManager(ExchangeRateManager):
    """Exchange rate manager backed by a table of dated rates.

    Looks back up to 14 days for a missing date to handle weekends, bank
    holidays and publication delays, the same way published reference
    rates are consumed.
    """

    LOOKBACK_DAYS = 14

    def __init__(self, exchange_rates: dict[tuple[date, Currency, Currency], Decimal] | None = None):
        """Initialize with a table of dated pair rates.

        Args:
            exchange_rates: Mapping of (date, from, to) to rates.
        """
        self.exchange_rates: dict[tuple[date, Currency, Currency], Decimal] = dict(exchange_rates or {})
        self._latest_date: date | None = max((key[0] for key in self.exchange_rates), default=None)

    def set_exchange_rate(self, rate_date: date, from_currency: Currency, to_currency: Currency, rate: Decimal):
        """Set or override the rate of a currency pair on a date."""
        self.exchange_rates[(rate_date, from_currency, to_currency)] = rate
        if self._latest_date is None or rate_date > self._latest_date:
            self._latest_date = rate_date

    def _get_rate_for_pair(self, from_currency: Currency, to_currency: Currency, rate_date: date) -> Decimal | None:
        for days_back in range(self.LOOKBACK_DAYS + 1):
            lookup_date = rate_date - timedelta(days=days_back)
            if (lookup_date, from_currency, to_currency) in self.exchange_rates:
                return self.exchange_rates[(lookup_date, from_currency, to_currency)]
            if (lookup_date, to_currency, from_currency) in self.exchange_rates:
                return Decimal("1") / self.exchange_rates[(lookup_date, to_currency, from_currency)]
        return None

    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, rate_date: date | None = None) -> Decimal:
        """Get the exchange rate for a currency pair on a specific date.

        If neither currency is USD, converts via USD (e.g., HKD -> USD -> CAD).

        Raises:
            ValueError: If no rate is available for the pair within the
                lookback window.
        """
        if from_currency == to_currency:
            return Decimal("1")

        if rate_date is None:
            rate_date = self._latest_date or date.today()

        rate = self._get_rate_for_pair(from_currency, to_currency, rate_date)
        if rate is not None:
            return rate

        if from_currency != Currency.USD and to_currency != Currency.USD:
            rate_to_usd = self._get_rate_for_pair(from_currency, Currency.USD, rate_date)
            rate_from_usd = self._get_rate_for_pair(Currency.USD, to_currency, rate_date)
            if rate_to_usd is not None and rate_from_usd is not None:
                return rate_to_usd * rate_from_usd

        raise ValueError(
            f"Exchange rate from {from_currency.value} to {to_currency.value} "
            f"not available for date {rate_date.isoformat()} or the previous {self.LOOKBACK_DAYS} days."
        )


def parse_h10_csv(data: str) -> dict[tuple[date, Currency, Currency], Decimal]:
    """Parse a Federal Reserve H.10 series-column CSV into dated pair rates.

    Row 4 holds the series identifiers that give each column's direction:
    ``RXI$US_N.B.XX`` is USD per 1 XX (XX -> USD) and ``RXI_N.B.XX`` is XX
    per 1 USD (USD -> XX). Data rows start at row 6; "ND" means no data.
    """
    rows = list(csv.reader(io.StringIO(data)))
    if len(rows) < 6:
        return {}

    column_pairs: list[tuple[Currency, Currency] | None] = []
    for identifier in rows[4][1:]:
        series_code = identifier.strip().strip('"').split("/")[-1]
        foreign_currency = FederalReserveExchangeRateManager.FED_CURRENCY_MAP.get(series_code.split(".")[-1])
        if foreign_currency is None:
            column_pairs.append(None)
        elif "$US" in series_code:
            column_pairs.append((foreign_currency, Currency.USD))
        else:
            column_pairs.append((Currency.USD, foreign_currency))

    rates: dict[tuple[date, Currency, Currency], Decimal] = {}
    for row in rows[6:]:
        if len(row) < 2:
            continue
        try:
            row_date = datetime.strptime(row[0].strip(), "%Y-%m-%d").date()
        except ValueError:
            continue

        for pair, value in zip(column_pairs, row[1:]):
            value = value.strip()
            if pair is None or value in ("", "ND"):
                continue
            try:
                rates[(row_date, pair[0], pair[1])] = Decimal(value)
            except ArithmeticError:
                continue
    return rates


class FederalReserveExchangeRateManager(HistoricalExchangeRateManager):
    """Historical rates downloaded from the Federal Reserve H.10 release.

    The CSV can be cached on disk under ``.cache/fed_exchange_rates/`` for
    the rest of the day.
    """

    # Mapping from Fed's currency codes to our Currency enum
    FED_CURRENCY_MAP = {
        "EU": Currency.EUR,
        "CA": Currency.CAD,
        "SI": Currency.SGD,
        "AL": Currency.AUD,
        "JA": Currency.JPY,
        "KO": Currency.KRW,
        "TA": Currency.TWD,
        "UK": Currency.GBP,
        "BZ": Currency.BRL,
        "CH": Currency.CNY,
        "HK": Currency.HKD,
        "MX": Currency.MXN,
        "SF": Currency.ZAR,
        "SZ": Currency.CHF,
        "TH": Currency.THB,
    }

    def __init__(self, min_date: date | None = None, max_date: date | None = None, use_cache: bool = False):
        """Initialize by fetching exchange rate data from the Federal Reserve.

        Args:
            min_date: Start of the date range. Defaults to 2000-01-01.
            max_date: End of the date range. Defaults to today.
            use_cache: If True, use disk-cached CSV data when it was written today.
        """
        if min_date is None:
            min_date = date(2000, 1, 1)
        if max_date is None:
            max_date = date.today()

        # The Fed expects mm/dd/yyyy
        from_date = min_date.strftime("%m/%d/%Y")
        to_date = max_date.strftime("%m/%d/%Y")

        self.url = (
            f"https://www.federalreserve.gov/datadownload/Output.aspx?"
            f"rel=H10&series=1f5e3a7e4b72dcddfd7ca4c7c6a8cd55&lastobs=&"
            f"from={from_date}&to={to_date}&filetype=csv&label=include&layout=seriescolumn"
        )

        cache_key = hashlib.md5(f"{from_date}_{to_date}".encode()).hexdigest()[:12]
        self._cache_path = Path.cwd() / ".cache" / "fed_exchange_rates" / f"fed_rates_{cache_key}.csv"

        super().__init__(parse_h10_csv(self._fetch(use_cache)))

    def _is_cache_valid(self) -> bool:
        if not self._cache_path.exists():
            return False
        return datetime.fromtimestamp(self._cache_path.stat().st_mtime).date() == date.today()

    def _fetch(self, use_cache: bool) -> str:
        if use_cache and self._is_cache_valid():
            return self._cache_path.read_text(encoding="utf-8")

        headers = {
            "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Referer": "https://www.federalreserve.gov/releases/h10/hist/default.htm",
        }
        request = urllib.request.Request(self.url, headers=headers)
        with urllib.request.urlopen(request) as response:
            data = response.read().decode("utf-8")

        if use_cache:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            self._cache_path.write_text(data, encoding="utf-8")
        return data
