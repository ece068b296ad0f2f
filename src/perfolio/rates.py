"""Reference rate providers.

One valuation pipeline serves both performance variants: it is run once
with a :class:`DatedRateProvider` (each cash flow converted at the rate of
its own date, so exchange rate movement shows up in the result) and once
with a :class:`FrozenRateProvider` (every amount converted at one reference
rate, so exchange rate movement is excluded by construction).
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal

from .currency import Currency, ExchangeRateManager


class ReferenceRateProvider(ABC):
    """Supplies the rate used to express a position currency in another one."""

    @abstractmethod
    def rate(self, currency: Currency, on: date) -> Decimal:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def convert(self, amount: Decimal, currency: Currency, on: date) -> Decimal:
        return amount * self.rate(currency, on)


class IdentityRateProvider(ReferenceRateProvider):
    """Keeps amounts in their own position currency."""

    def rate(self, currency: Currency, on: date) -> Decimal:
        return Decimal("1")


class DatedRateProvider(ReferenceRateProvider):
    """Converts into the base currency at the rate of the given date."""

    def __init__(self, exchange_rate_manager: ExchangeRateManager, base_currency: Currency):
        self.exchange_rate_manager = exchange_rate_manager
        self.base_currency = base_currency
        self._rates: dict[tuple[Currency, date], Decimal] = {}

    def rate(self, currency: Currency, on: date) -> Decimal:
        if currency == self.base_currency:
            return Decimal("1")
        key = (currency, on)
        if key not in self._rates:
            self._rates[key] = self.exchange_rate_manager.get_exchange_rate(currency, self.base_currency, on)
        return self._rates[key]


class FrozenRateProvider(DatedRateProvider):
    """Converts into the base currency at the rate of one fixed reference date."""

    def __init__(self, exchange_rate_manager: ExchangeRateManager, base_currency: Currency, reference_date: date):
        super().__init__(exchange_rate_manager, base_currency)
        self.reference_date = reference_date

    def rate(self, currency: Currency, on: date) -> Decimal:
        return super().rate(currency, self.reference_date)
