"""Artifact storage interfaces."""

from abc import ABC, abstractmethod


class ArtifactStorage(ABC):
    """Turns opaque artifact references into time-limited retrievable URLs."""

    @abstractmethod
    def signed_url(self, ref: str) -> str:
        """Return a retrievable URL for an artifact reference."""


__all__ = ["ArtifactStorage"]
