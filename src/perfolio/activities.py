"""Load activity ledgers, price tables and exchange rates from files."""

import json
import os
import warnings
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pandas as pd

from .currency import Currency, HistoricalExchangeRateManager
from .models import ActivityType, PortfolioOrder
from .quotes import FixedQuoteProvider, parse_price_table

EXCEL_COLUMNS = ("SYMBOL", "DATE", "TYPE", "QUANTITY", "UNIT PRICE", "CURRENCY")
OPTIONAL_EXCEL_COLUMNS = ("FEE", "DATA SOURCE", "TAGS", "NAME")


def _parse_tags(value: Any) -> tuple[str, ...]:
    if value is None or (not isinstance(value, (list, tuple)) and pd.isna(value)):
        return ()
    if isinstance(value, str):
        value = value.split(",")
    return tuple(tag.strip() for tag in value if str(tag).strip())


def _to_date(value: Any) -> tuple[date, bool]:
    """Return the date of a value and whether a time of day was dropped."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        has_time = (value.hour, value.minute, value.second, value.microsecond) != (0, 0, 0, 0)
        return value.date(), has_time
    if isinstance(value, date):
        return value, False
    raise ValueError(f"Cannot read a date from {value!r}")


def _warn_dropped_time(file_path: str, any_time_dropped: bool):
    if any_time_dropped:
        warnings.warn(
            f"Some activities in '{file_path}' carry a time of day. "
            f"Only the calendar date is used for these activities.",
            UserWarning
        )


def load_orders_from_json(file_path: str) -> list[PortfolioOrder]:
    """
    Load an activity ledger from a JSON file.

    Args:
        file_path: Path to the JSON file containing activities.

    Returns:
        Orders in file order.

    Expected JSON structure:
        [
            {
                "symbol": "MSFT",
                "date": "2021-09-16",
                "type": "BUY",
                "quantity": 1,
                "unit_price": 298.58,
                "fee": 19,
                "currency": "USD",
                "data_source": "YAHOO",
                "tags": ["core"]
            },
            ...
        ]
    """
    with open(file_path, "r") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError("JSON file must contain a list of activities")

    orders: list[PortfolioOrder] = []
    any_time_dropped = False

    item: Any
    for item in data:
        order_date, time_dropped = _to_date(item["date"])
        any_time_dropped = any_time_dropped or time_dropped

        orders.append(PortfolioOrder(
            date=order_date,
            symbol=str(item["symbol"]),
            currency=Currency(item["currency"]),
            activity_type=ActivityType(item["type"]),
            quantity=Decimal(str(item["quantity"])),
            unit_price=Decimal(str(item["unit_price"])),
            fee=Decimal(str(item.get("fee", 0))),
            data_source=str(item.get("data_source", "MANUAL")),
            tags=_parse_tags(item.get("tags")),
            name=item.get("name"),
        ))

    _warn_dropped_time(file_path, any_time_dropped)
    return orders


def load_orders_from_excel(file_path: str) -> list[PortfolioOrder]:
    """
    Load an activity ledger from an Excel file.

    Expected Excel columns (order independent):
        - SYMBOL, DATE, TYPE, QUANTITY, UNIT PRICE
        - CURRENCY: If empty for a row, the currency of the first row is used.
        - FEE, DATA SOURCE, TAGS (comma separated), NAME: optional.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Activity file not found: {file_path}")

    df = pd.read_excel(file_path)

    if df.empty:
        return []

    missing_columns = set(EXCEL_COLUMNS) - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing required columns: {missing_columns}")

    default_currency = Currency(df["CURRENCY"].iloc[0])

    orders: list[PortfolioOrder] = []
    any_time_dropped = False

    for _, row in df.iterrows():
        order_date, time_dropped = _to_date(pd.to_datetime(row["DATE"]))
        any_time_dropped = any_time_dropped or time_dropped

        currency_value = row["CURRENCY"]
        if pd.notna(currency_value) and currency_value:
            currency = Currency(currency_value)
        else:
            currency = default_currency

        fee = row.get("FEE")
        data_source = row.get("DATA SOURCE")
        name = row.get("NAME")

        orders.append(PortfolioOrder(
            date=order_date,
            symbol=str(row["SYMBOL"]),
            currency=currency,
            activity_type=ActivityType(row["TYPE"]),
            quantity=Decimal(str(row["QUANTITY"])),
            unit_price=Decimal(str(row["UNIT PRICE"])),
            fee=Decimal(str(fee)) if fee is not None and pd.notna(fee) else Decimal("0"),
            data_source=str(data_source) if data_source is not None and pd.notna(data_source) else "MANUAL",
            tags=_parse_tags(row.get("TAGS")),
            name=str(name) if name is not None and pd.notna(name) else None,
        ))

    _warn_dropped_time(file_path, any_time_dropped)
    return orders


def load_orders(file_path: str) -> list[PortfolioOrder]:
    """Load an activity ledger, picking the reader by file extension."""
    if file_path.lower().endswith((".xlsx", ".xls")):
        return load_orders_from_excel(file_path)
    return load_orders_from_json(file_path)


def load_quote_provider_from_json(file_path: str) -> FixedQuoteProvider:
    """
    Load current quotes and historical prices for offline calculations.

    Expected JSON structure:
        {
            "quotes": {"MSFT": 331.83},
            "historical": {"MSFT": {"2023-07-07": 337.22}}
        }
    """
    with open(file_path, "r") as f:
        data = json.load(f)

    return FixedQuoteProvider(
        quotes={symbol: Decimal(str(price)) for symbol, price in data.get("quotes", {}).items()},
        historical=parse_price_table(data.get("historical", {})),
    )


def load_exchange_rates_from_json(file_path: str) -> HistoricalExchangeRateManager:
    """
    Load dated exchange rates.

    Expected JSON structure:
        [{"date": "2023-07-10", "from": "EUR", "to": "USD", "rate": 1.0968}, ...]
    """
    with open(file_path, "r") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError("JSON file must contain a list of exchange rates")

    manager = HistoricalExchangeRateManager()
    for item in data:
        rate_date, _ = _to_date(item["date"])
        manager.set_exchange_rate(
            rate_date,
            Currency(item["from"]),
            Currency(item["to"]),
            Decimal(str(item["rate"])),
        )
    return manager
