"""Settings read from the environment (and a local ``.env`` file)."""

import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if parsed < 1:
        raise ValueError(f"{name} must be at least 1, got {parsed}")
    return parsed


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        parsed = float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {parsed}")
    return parsed


BASE_CURRENCY = os.getenv("PERFOLIO_BASE_CURRENCY", "USD").upper()

# Upper bound on the number of points a decimated chart series emits
MAX_CHART_ITEMS = _get_int("PERFOLIO_MAX_CHART_ITEMS", 365)

# Seconds to wait for the quote fan-out before degrading to soft errors
QUOTE_TIMEOUT = _get_float("PERFOLIO_QUOTE_TIMEOUT", 30.0)

QUOTE_WORKERS = _get_int("PERFOLIO_QUOTE_WORKERS", 8)

PERFORMANCE_CALCULATION = os.getenv("PERFOLIO_PERFORMANCE_CALCULATION", "ROAI").upper()

HORIZONS = tuple(
    horizon.strip()
    for horizon in os.getenv("PERFOLIO_HORIZONS", "1d,wtd,mtd,ytd,1y,5y,max").split(",")
    if horizon.strip()
)
