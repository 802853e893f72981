"""Monthly allowance tracked in process memory."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime

from app.adapters.quota.base import AllowanceProvider


def _current_period() -> str:
    return datetime.now(UTC).strftime("%Y-%m")


class MonthlyAllowanceProvider(AllowanceProvider):
    """Grants ``monthly_limit`` generations per caller per calendar month (UTC)."""

    def __init__(self, monthly_limit: int, *, period: Callable[[], str] = _current_period) -> None:
        self._monthly_limit = monthly_limit
        self._period = period
        self._used: dict[tuple[str, str], int] = defaultdict(int)

    def get_caller_allowance(self, caller_id: str) -> int:
        used = self._used.get((caller_id, self._period()), 0)
        return max(0, self._monthly_limit - used)

    def consume(self, caller_id: str) -> None:
        self._used[(caller_id, self._period())] += 1


__all__ = ["MonthlyAllowanceProvider"]
