"""Exceptions raised by the calculation engine."""


class InvalidOrderError(ValueError):
    """An order carries a negative or non-finite quantity, price or fee.

    No partial result computed from such an order is trustworthy, so the
    whole calculation is aborted.
    """


class DataUnavailableError(ValueError):
    """No quote or historical price exists for a symbol."""

    def __init__(self, symbol: str, message: str | None = None):
        self.symbol = symbol
        super().__init__(message or f"No market data available for {symbol}")
