"""Artifact storage adapters."""

from .base import ArtifactStorage
from .signed_urls import HmacSignedUrlStorage

__all__ = [
    "ArtifactStorage",
    "HmacSignedUrlStorage",
]
