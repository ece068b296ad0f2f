"""In-memory cache of calculation results keyed by their inputs."""

import hashlib
import threading
from datetime import date
from typing import Any, Callable

from .currency import Currency
from .models import PortfolioOrder


def make_cache_key(
    orders: list[PortfolioOrder],
    currency: Currency,
    start_date: date | None = None,
    end_date: date | None = None,
    *extra: Any
) -> str:
    """
    Build a content key from an order set, a currency and a date range.

    Identical inputs produce identical keys regardless of object identity.
    Same-date orders keep their order in the key since it affects results.
    """
    parts = [currency.value, str(start_date), str(end_date), *(str(value) for value in extra)]
    for order in sorted(orders, key=lambda o: o.date):
        parts.append("|".join([
            order.date.isoformat(),
            order.symbol,
            order.currency.value,
            order.activity_type.value,
            str(order.quantity),
            str(order.unit_price),
            str(order.fee),
            order.data_source,
            ",".join(order.tags),
        ]))
    return hashlib.sha256("\n".join(parts).encode()).hexdigest()


class CalculationCache:
    """Thread-safe result cache with at most one in-flight computation per key.

    Concurrent callers asking for the same key wait for the first caller's
    computation instead of repeating it. A computation that raises is not
    cached; the next caller recomputes.
    """

    def __init__(self):
        self._results: dict[str, Any] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        with self._lock:
            if key in self._results:
                return self._results[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._results:
                    return self._results[key]

            result = compute()

            with self._lock:
                self._results[key] = result
                self._key_locks.pop(key, None)
            return result

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._results.get(key)

    def invalidate(self, key: str):
        """Remove specific key from cache."""
        with self._lock:
            self._results.pop(key, None)

    def clear(self):
        """Clear all cached results."""
        with self._lock:
            self._results.clear()

    def __len__(self):
        with self._lock:
            return len(self._results)
