"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from app.schemas.job import JobStatus
from app.schemas.segment import SegmentStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class JobTransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_status: JobStatus
    allowed_next_statuses: list[JobStatus] | None = None


class SegmentTransitionErrorDetails(BaseModel):
    current_status: SegmentStatus
    attempted_status: SegmentStatus
    allowed_next_statuses: list[SegmentStatus] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID", "FSM_TERMINAL_IMMUTABLE"]
    message: str
    details: JobTransitionErrorDetails | SegmentTransitionErrorDetails


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class InvalidInputError(BaseModel):
    code: Literal["INVALID_INPUT"]
    message: str
    details: dict[str, Any] | None = None


class QuotaExceededError(BaseModel):
    code: Literal["QUOTA_EXCEEDED"]
    message: str
    details: dict[str, Any] | None = None


class SegmentStateConflictErrorDetails(BaseModel):
    segment_id: str
    current_status: SegmentStatus
    retry_count: int | None = None
    max_retries: int | None = None


class SegmentStateConflictError(BaseModel):
    code: Literal["RETRY_NOT_ALLOWED_STATE", "RETRY_LIMIT_EXCEEDED", "SKIP_NOT_ALLOWED_STATE"]
    message: str
    details: SegmentStateConflictErrorDetails


class FinalizeConflictError(BaseModel):
    code: Literal["NOT_READY", "INCOMPLETE_SEGMENTS", "AGGREGATION_FAILED"]
    message: str
    details: dict[str, Any] | None = None
