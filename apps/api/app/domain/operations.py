"""Provider-agnostic operation types shared by clients, the state machine and the scheduler."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Capability(str, Enum):
    SYNTH = "synth"
    LIPSYNC = "lipsync"
    STITCH = "stitch"


class OperationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.SUCCEEDED, OperationStatus.FAILED)


class ProviderErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    TIMEOUT = "timeout"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset(
    {
        ProviderErrorKind.PROVIDER_UNAVAILABLE,
        ProviderErrorKind.RATE_LIMITED,
        ProviderErrorKind.TIMEOUT,
    }
)


class ProviderError(Exception):
    """Submission or poll failure reported by an operation client."""

    def __init__(self, kind: ProviderErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True, slots=True)
class OperationHandle:
    capability: Capability
    operation_id: str
    submitted_at: datetime


@dataclass(frozen=True, slots=True)
class PollResult:
    status: OperationStatus
    artifact_ref: str | None = None
    error: str | None = None
    error_kind: ProviderErrorKind | None = None
