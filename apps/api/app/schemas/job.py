"""Job API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, FiniteFloat

from app.schemas.segment import Segment

DEFAULT_STYLE_PROMPT = "Cinematic music video scene"


class JobStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobStage(str, Enum):
    GENERATING = "generating"
    STITCHING = "stitching"


class CharacterProfile(BaseModel):
    """Visual analysis of the reference character used to enrich segment prompts."""

    description: str | None = None
    visual_style: str | None = None
    mood: list[str] = Field(default_factory=list)
    color_palette: list[str] = Field(default_factory=list)
    camera_work: str | None = None
    setting_suggestions: list[str] = Field(default_factory=list)


class CreateJobRequest(BaseModel):
    audio_ref: str = Field(min_length=1)
    audio_duration_seconds: FiniteFloat | None = None
    scene_boundaries: list[FiniteFloat] | None = None
    reference_image_ref: str | None = None
    lyrics: str | None = None
    segment_count_hint: int | None = None
    require_lipsync: bool = False
    style_prompt: str = DEFAULT_STYLE_PROMPT
    character_profile: CharacterProfile | None = None
    tempo_bpm: FiniteFloat | None = None
    aspect_ratio: str = "9:16"


class CreateJobResponse(BaseModel):
    job_id: str
    total_segments: int


class Job(BaseModel):
    id: str
    status: JobStatus
    stage: JobStage
    total_segments: int
    completed_segments: int
    audio_ref: str
    audio_duration_seconds: float
    reference_image_ref: str | None = None
    require_lipsync: bool
    aspect_ratio: str
    final_artifact_ref: str | None = None
    final_artifact_refs: list[str] = Field(default_factory=list)
    last_error: str | None = None
    failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class JobStatusResponse(BaseModel):
    job: Job
    segments: list[Segment]


class OkResponse(BaseModel):
    ok: bool = True


class FinalizeResponse(BaseModel):
    job_id: str
    final_artifact_ref: str
    final_artifact_refs: list[str]
    audio_ref: str
    urls: list[str]
