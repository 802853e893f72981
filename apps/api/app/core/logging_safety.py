"""Logging setup and helpers for safe structured logging fields."""

from __future__ import annotations

import hashlib
import logging
from typing import Any


def configure_logging(level: str) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    resolved = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    root.setLevel(resolved)


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for log correlation fields."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"
