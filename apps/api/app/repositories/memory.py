"""In-memory repositories used by the API and tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from app.domain import job_fsm, segment_fsm
from app.domain.operations import OperationHandle
from app.domain.planner import PlannedSegment
from app.schemas.job import JobStage, JobStatus
from app.schemas.segment import SegmentStatus, StageStatus


@dataclass(slots=True)
class JobRecord:
    id: str
    owner_id: str
    status: JobStatus
    stage: JobStage
    total_segments: int
    audio_ref: str
    audio_duration_seconds: float
    require_lipsync: bool
    aspect_ratio: str
    created_at: datetime
    reference_image_ref: str | None = None
    completed_segments: int = 0
    final_artifact_ref: str | None = None
    final_artifact_refs: list[str] = field(default_factory=list)
    last_error: str | None = None
    failure_reason: str | None = None
    aggregation_attempts: int = 0
    operation: OperationHandle | None = None
    stitch_submitting: bool = False
    updated_at: datetime | None = None


@dataclass(slots=True)
class SegmentRecord:
    id: str
    job_id: str
    owner_id: str
    segment_index: int
    start_seconds: float
    end_seconds: float
    prompt: str
    created_at: datetime
    lyric_text: str | None = None
    status: SegmentStatus = SegmentStatus.PENDING
    generation_status: StageStatus = StageStatus.NOT_STARTED
    sync_status: StageStatus = StageStatus.NOT_STARTED
    video_artifact_ref: str | None = None
    synced_artifact_ref: str | None = None
    final_artifact_ref: str | None = None
    last_error: str | None = None
    attempts: int = 0
    retry_count: int = 0
    operation: OperationHandle | None = None
    updated_at: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        return self.end_seconds - self.start_seconds


@dataclass(slots=True)
class JobTransitionRecord:
    job_id: str
    prev_status: JobStatus
    new_status: JobStatus
    occurred_at: datetime
    reason: str | None


@dataclass(slots=True)
class SegmentTransitionRecord:
    job_id: str
    segment_id: str
    segment_index: int
    prev_status: SegmentStatus
    new_status: SegmentStatus
    occurred_at: datetime
    reason: str | None


@dataclass(slots=True)
class InMemoryStore:
    """Simple, deterministic persistence layer for jobs and their segments."""

    jobs: dict[str, JobRecord] = field(default_factory=dict)
    segments: dict[str, SegmentRecord] = field(default_factory=dict)
    segment_ids_by_job: dict[str, list[str]] = field(default_factory=dict)
    job_transitions: list[JobTransitionRecord] = field(default_factory=list)
    segment_transitions: list[SegmentTransitionRecord] = field(default_factory=list)
    job_write_count: int = 0
    segment_write_count: int = 0

    def create_job_with_segments(
        self,
        *,
        owner_id: str,
        audio_ref: str,
        audio_duration_seconds: float,
        reference_image_ref: str | None,
        require_lipsync: bool,
        aspect_ratio: str,
        planned: list[PlannedSegment],
    ) -> JobRecord:
        now = datetime.now(UTC)
        job = JobRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            status=JobStatus.ACTIVE,
            stage=JobStage.GENERATING,
            total_segments=len(planned),
            audio_ref=audio_ref,
            audio_duration_seconds=audio_duration_seconds,
            require_lipsync=require_lipsync,
            aspect_ratio=aspect_ratio,
            reference_image_ref=reference_image_ref,
            created_at=now,
            updated_at=now,
        )
        segment_ids: list[str] = []
        for item in sorted(planned, key=lambda p: p.segment_index):
            segment = SegmentRecord(
                id=str(uuid4()),
                job_id=job.id,
                owner_id=owner_id,
                segment_index=item.segment_index,
                start_seconds=item.start_seconds,
                end_seconds=item.end_seconds,
                prompt=item.prompt,
                lyric_text=item.lyric_text,
                created_at=now,
                updated_at=now,
            )
            self.segments[segment.id] = segment
            segment_ids.append(segment.id)
            self.segment_write_count += 1

        self.jobs[job.id] = job
        self.segment_ids_by_job[job.id] = segment_ids
        self.job_write_count += 1
        return job

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def get_job_for_owner(self, owner_id: str, job_id: str) -> JobRecord | None:
        job = self.jobs.get(job_id)
        if job is None or job.owner_id != owner_id:
            return None
        return job

    def get_segment(self, segment_id: str) -> SegmentRecord | None:
        return self.segments.get(segment_id)

    def get_segment_for_owner(self, owner_id: str, segment_id: str) -> SegmentRecord | None:
        segment = self.segments.get(segment_id)
        if segment is None or segment.owner_id != owner_id:
            return None
        return segment

    def list_segments_for_job(self, job_id: str) -> list[SegmentRecord]:
        segments = [self.segments[segment_id] for segment_id in self.segment_ids_by_job.get(job_id, [])]
        segments.sort(key=lambda record: record.segment_index)
        return segments

    def list_active_jobs(self) -> list[JobRecord]:
        jobs = [record for record in self.jobs.values() if record.status is JobStatus.ACTIVE]
        jobs.sort(key=lambda record: record.created_at)
        return jobs

    def transition_job_status(
        self,
        *,
        job: JobRecord,
        new_status: JobStatus,
        reopen: bool = False,
        reason: str | None = None,
    ) -> None:
        """Apply an FSM-validated job status mutation with audit and write bookkeeping."""
        job_fsm.ensure_transition(job.status, new_status, reopen=reopen)
        now = datetime.now(UTC)
        self.job_transitions.append(
            JobTransitionRecord(
                job_id=job.id,
                prev_status=job.status,
                new_status=new_status,
                occurred_at=now,
                reason=reason,
            )
        )
        job.status = new_status
        job.updated_at = now
        self.job_write_count += 1

    def transition_segment_status(
        self,
        *,
        segment: SegmentRecord,
        new_status: SegmentStatus,
        reason: str | None = None,
    ) -> None:
        """Apply an FSM-validated segment status mutation with audit and write bookkeeping."""
        segment_fsm.ensure_transition(segment.status, new_status)
        now = datetime.now(UTC)
        self.segment_transitions.append(
            SegmentTransitionRecord(
                job_id=segment.job_id,
                segment_id=segment.id,
                segment_index=segment.segment_index,
                prev_status=segment.status,
                new_status=new_status,
                occurred_at=now,
                reason=reason,
            )
        )
        segment.status = new_status
        segment.updated_at = now
        self.segment_write_count += 1

    def touch_job(self, job: JobRecord) -> None:
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1

    def touch_segment(self, segment: SegmentRecord) -> None:
        segment.updated_at = datetime.now(UTC)
        self.segment_write_count += 1

    def segment_path(self, segment_id: str) -> list[SegmentStatus]:
        """Return the ordered statuses a segment has passed through, starting at pending."""
        path = [SegmentStatus.PENDING]
        for record in self.segment_transitions:
            if record.segment_id == segment_id:
                path.append(record.new_status)
        return path
