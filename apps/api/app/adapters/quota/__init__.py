"""Generation allowance adapters."""

from .base import AllowanceProvider
from .memory_allowance import MonthlyAllowanceProvider

__all__ = [
    "AllowanceProvider",
    "MonthlyAllowanceProvider",
]
