"""Generation allowance interfaces."""

from abc import ABC, abstractmethod


class AllowanceProvider(ABC):
    """Answers how many generations a caller may still start."""

    @abstractmethod
    def get_caller_allowance(self, caller_id: str) -> int:
        """Return the remaining generation count for the caller."""

    @abstractmethod
    def consume(self, caller_id: str) -> None:
        """Record one accepted generation against the caller."""


__all__ = ["AllowanceProvider"]
