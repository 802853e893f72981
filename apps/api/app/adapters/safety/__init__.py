"""Prompt content filter adapters."""

from .base import ContentFilter, FilterResult
from .keyword_filter import KeywordContentFilter

__all__ = [
    "ContentFilter",
    "FilterResult",
    "KeywordContentFilter",
]
