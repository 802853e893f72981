"""Content filter interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class FilterResult:
    sanitized: str
    violations: list[str] = field(default_factory=list)
    blocked: bool = False


class ContentFilter(ABC):
    """Provider-neutral prompt review interface."""

    @abstractmethod
    def review(self, prompt: str) -> FilterResult:
        """Return a sanitized prompt plus any policy violations found."""


__all__ = ["ContentFilter", "FilterResult"]
