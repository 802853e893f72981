"""Segment API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class SegmentStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    VIDEO_READY = "video_ready"
    SYNCING = "syncing"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class StageStatus(str, Enum):
    NOT_STARTED = "not_started"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Segment(BaseModel):
    id: str
    job_id: str
    segment_index: int
    start_seconds: float
    end_seconds: float
    prompt: str
    lyric_text: str | None = None
    status: SegmentStatus
    generation_status: StageStatus
    sync_status: StageStatus
    video_artifact_ref: str | None = None
    synced_artifact_ref: str | None = None
    final_artifact_ref: str | None = None
    last_error: str | None = None
    attempts: int
    retry_count: int
    created_at: datetime
    updated_at: datetime | None = None
