"""Job coordination: creation, fan-out, progress, cancel, retry, skip and finalize."""

from __future__ import annotations

import logging

from app.adapters.providers import ProviderSet, StitchRequest
from app.adapters.quota.base import AllowanceProvider
from app.adapters.safety.base import ContentFilter
from app.adapters.storage.base import ArtifactStorage
from app.core.config import Settings
from app.core.logging_safety import safe_log_identifier
from app.domain.job_fsm import is_terminal
from app.domain.operations import OperationHandle, OperationStatus, PollResult, ProviderError
from app.domain.planner import plan_segments
from app.domain.segment_fsm import DONE_STATES, IN_FLIGHT_STATES, PROGRESSING_STATES
from app.errors import ApiError, conflict, not_found, quota_exceeded
from app.repositories.memory import InMemoryStore, JobRecord, SegmentRecord
from app.schemas.job import (
    CreateJobRequest,
    CreateJobResponse,
    FinalizeResponse,
    Job,
    JobStage,
    JobStatus,
    JobStatusResponse,
)
from app.schemas.segment import Segment, SegmentStatus
from app.services.aggregator import Aggregator, missing_artifact_indexes
from app.services.segment_machine import SegmentStateMachine

logger = logging.getLogger(__name__)

FAILURE_SEGMENTS = "segments"
FAILURE_AGGREGATION = "aggregation"


class JobCoordinator:
    def __init__(
        self,
        store: InMemoryStore,
        *,
        providers: ProviderSet,
        allowance: AllowanceProvider,
        content_filter: ContentFilter,
        storage: ArtifactStorage,
        settings: Settings,
        aggregator: Aggregator | None = None,
    ) -> None:
        self._store = store
        self._providers = providers
        self._allowance = allowance
        self._content_filter = content_filter
        self._storage = storage
        self._settings = settings
        self._aggregator = aggregator or Aggregator()
        self.machine = SegmentStateMachine(
            store,
            providers,
            max_transient_attempts=settings.max_transient_attempts,
            on_transition=self.on_segment_transition,
        )

    def create_job(self, *, owner_id: str, request: CreateJobRequest) -> CreateJobResponse:
        safe_owner_id = safe_log_identifier(owner_id, prefix="pid")
        remaining = self._allowance.get_caller_allowance(owner_id)
        if remaining <= 0:
            logger.warning("job.create_rejected owner_id=%s reason=quota_exhausted", safe_owner_id)
            raise quota_exceeded()

        plan = plan_segments(
            content_filter=self._content_filter,
            style_prompt=request.style_prompt,
            audio_duration_seconds=request.audio_duration_seconds,
            scene_boundaries=request.scene_boundaries,
            segment_count_hint=request.segment_count_hint,
            lyrics=request.lyrics,
            character_profile=request.character_profile,
            tempo_bpm=request.tempo_bpm,
            default_segment_seconds=self._settings.default_segment_seconds,
        )
        record = self._store.create_job_with_segments(
            owner_id=owner_id,
            audio_ref=request.audio_ref,
            audio_duration_seconds=request.audio_duration_seconds or plan.span_seconds,
            reference_image_ref=request.reference_image_ref,
            require_lipsync=request.require_lipsync,
            aspect_ratio=request.aspect_ratio,
            planned=plan.segments,
        )
        self._allowance.consume(owner_id)

        logger.info(
            "job.created job_id=%s owner_id=%s total_segments=%s require_lipsync=%s",
            safe_log_identifier(record.id, prefix="jid"),
            safe_owner_id,
            record.total_segments,
            record.require_lipsync,
        )
        return CreateJobResponse(job_id=record.id, total_segments=record.total_segments)

    def get_status(self, *, owner_id: str, job_id: str) -> JobStatusResponse:
        record = self._store.get_job_for_owner(owner_id=owner_id, job_id=job_id)
        if record is None:
            raise not_found()
        segments = self._store.list_segments_for_job(record.id)
        return JobStatusResponse(job=self._to_job(record), segments=[self._to_segment(s) for s in segments])

    async def submit_ready_segments(self, job_id: str) -> int:
        """Advance one active job: pending segments up to the fan-out cap, stalled sync and stitch steps."""
        job = self._store.get_job(job_id)
        if job is None or job.status is not JobStatus.ACTIVE:
            return 0

        if job.stage is JobStage.STITCHING:
            if job.operation is None:
                await self._aggregate(job)
            return 0

        segments = self._store.list_segments_for_job(job.id)
        for segment in segments:
            if job.status is not JobStatus.ACTIVE:
                return 0
            if segment.status is SegmentStatus.VIDEO_READY and segment.operation is None:
                await self.machine.submit_sync(job=job, segment=segment)

        submitted = 0
        in_flight = sum(1 for segment in segments if segment.status in IN_FLIGHT_STATES)
        for segment in segments:
            if segment.status is not SegmentStatus.PENDING:
                continue
            if in_flight >= self._settings.max_inflight_segments or job.status is not JobStatus.ACTIVE:
                break
            in_flight += 1
            submitted += 1
            await self.machine.submit_generation(job=job, segment=segment)
        return submitted

    async def on_segment_transition(self, segment: SegmentRecord) -> None:
        job = self._store.get_job(segment.job_id)
        if job is None or job.status is not JobStatus.ACTIVE:
            return

        segments = self._store.list_segments_for_job(job.id)
        self._refresh_progress(job, segments)

        if all(s.status in DONE_STATES for s in segments):
            if job.stage is JobStage.GENERATING:
                await self._aggregate(job)
            return

        if not any(s.status in PROGRESSING_STATES for s in segments):
            failed = [s.segment_index for s in segments if s.status is SegmentStatus.FAILED]
            if failed:
                self._fail_job(
                    job,
                    reason=FAILURE_SEGMENTS,
                    message=f"{len(failed)} segment(s) failed: {', '.join(str(i) for i in failed)}",
                )

    def cancel_job(self, *, owner_id: str, job_id: str) -> None:
        record = self._store.get_job_for_owner(owner_id=owner_id, job_id=job_id)
        if record is None:
            raise not_found()

        safe_job_id = safe_log_identifier(record.id, prefix="jid")
        if is_terminal(record.status):
            logger.info("job.cancel_replayed job_id=%s status=%s", safe_job_id, record.status.value)
            return

        self._store.transition_job_status(job=record, new_status=JobStatus.CANCELLED, reason="cancel")
        record.operation = None
        cancelled = 0
        for segment in self._store.list_segments_for_job(record.id):
            if segment.status in PROGRESSING_STATES:
                self.machine.cancel(segment=segment)
                cancelled += 1
        logger.info("job.cancelled job_id=%s cancelled_segments=%s", safe_job_id, cancelled)

    def retry_segment(self, *, owner_id: str, segment_id: str) -> None:
        segment = self._store.get_segment_for_owner(owner_id=owner_id, segment_id=segment_id)
        if segment is None:
            raise not_found()
        job = self._store.get_job(segment.job_id)
        if job is None:
            raise not_found()

        max_retries = self._settings.max_segment_retries
        if segment.status is not SegmentStatus.FAILED or job.status is JobStatus.CANCELLED:
            raise self._segment_conflict("RETRY_NOT_ALLOWED_STATE", "Only failed segments of a live job can be retried", segment)
        if segment.retry_count >= max_retries:
            job.last_error = f"Segment {segment.segment_index} exceeded its retry limit of {max_retries}"
            self._store.touch_job(job)
            raise self._segment_conflict("RETRY_LIMIT_EXCEEDED", "Segment retry limit exceeded", segment)

        self.machine.reset_for_retry(segment=segment)
        if job.status is JobStatus.FAILED and job.failure_reason == FAILURE_SEGMENTS:
            self._reopen(job, reason="segment_retry")
        self._refresh_progress(job, self._store.list_segments_for_job(job.id))

        logger.info(
            "segment.retried job_id=%s segment_id=%s segment_index=%s retry_count=%s",
            safe_log_identifier(job.id, prefix="jid"),
            safe_log_identifier(segment.id, prefix="sid"),
            segment.segment_index,
            segment.retry_count,
        )

    async def skip_segment(self, *, owner_id: str, segment_id: str) -> None:
        segment = self._store.get_segment_for_owner(owner_id=owner_id, segment_id=segment_id)
        if segment is None:
            raise not_found()
        job = self._store.get_job(segment.job_id)
        if job is None:
            raise not_found()
        if segment.status is not SegmentStatus.FAILED or job.status is JobStatus.CANCELLED:
            raise self._segment_conflict("SKIP_NOT_ALLOWED_STATE", "Only failed segments of a live job can be skipped", segment)

        self.machine.skip(segment=segment)
        logger.info(
            "segment.skipped job_id=%s segment_id=%s segment_index=%s has_artifact=%s",
            safe_log_identifier(job.id, prefix="jid"),
            safe_log_identifier(segment.id, prefix="sid"),
            segment.segment_index,
            segment.final_artifact_ref is not None,
        )

        segments = self._store.list_segments_for_job(job.id)
        if job.status is JobStatus.FAILED and job.failure_reason == FAILURE_SEGMENTS:
            if any(s.status is SegmentStatus.FAILED for s in segments):
                self._refresh_progress(job, segments)
                return
            self._reopen(job, reason="segment_skip")
        await self.on_segment_transition(segment)

    def finalize(self, *, owner_id: str, job_id: str) -> FinalizeResponse:
        record = self._store.get_job_for_owner(owner_id=owner_id, job_id=job_id)
        if record is None:
            raise not_found()

        if record.status is JobStatus.COMPLETED and record.final_artifact_ref:
            return FinalizeResponse(
                job_id=record.id,
                final_artifact_ref=record.final_artifact_ref,
                final_artifact_refs=list(record.final_artifact_refs),
                audio_ref=record.audio_ref,
                urls=[self._storage.signed_url(ref) for ref in record.final_artifact_refs],
            )
        if record.status is JobStatus.ACTIVE:
            raise conflict(
                "NOT_READY",
                "Job has not completed yet",
                details={
                    "status": record.status.value,
                    "completed_segments": record.completed_segments,
                    "total_segments": record.total_segments,
                },
            )

        missing = missing_artifact_indexes(self._store.list_segments_for_job(record.id))
        if missing:
            raise conflict(
                "INCOMPLETE_SEGMENTS",
                "Some segments have no final artifact",
                details={"status": record.status.value, "missing_segment_indexes": missing},
            )
        raise conflict(
            "AGGREGATION_FAILED",
            record.last_error or "Aggregation failed",
            details={"status": record.status.value},
        )

    async def apply_stitch_result(self, *, job_id: str, handle: OperationHandle, result: PollResult) -> bool:
        job = self._current_stitch_owner(job_id, handle)
        if job is None:
            return False
        if result.status is OperationStatus.SUCCEEDED:
            job.operation = None
            job.final_artifact_ref = result.artifact_ref
            self._store.transition_job_status(job=job, new_status=JobStatus.COMPLETED, reason="stitched")
            logger.info("job.completed job_id=%s stage=stitching", safe_log_identifier(job.id, prefix="jid"))
        elif result.status is OperationStatus.FAILED:
            self._stitch_failed(job, message=result.error or "Stitching failed", retryable=False)
        return True

    async def apply_stitch_error(self, *, job_id: str, handle: OperationHandle, error: ProviderError) -> bool:
        job = self._current_stitch_owner(job_id, handle)
        if job is None:
            return False
        self._stitch_failed(job, message=str(error), retryable=error.retryable)
        return True

    async def _aggregate(self, job: JobRecord) -> None:
        # At most one stitch submission per job is awaiting the provider.
        if job.stitch_submitting:
            return
        segments = self._store.list_segments_for_job(job.id)
        try:
            composition = self._aggregator.compose(job=job, segments=segments)
        except ApiError as exc:
            self._fail_job(job, reason=FAILURE_AGGREGATION, message=exc.payload.message)
            return

        job.final_artifact_refs = list(composition.artifact_refs)
        stitch = self._providers.stitch
        if stitch is None:
            job.final_artifact_ref = composition.ref
            self._store.transition_job_status(job=job, new_status=JobStatus.COMPLETED, reason="aggregated")
            logger.info(
                "job.completed job_id=%s segment_count=%s",
                safe_log_identifier(job.id, prefix="jid"),
                len(composition.artifact_refs),
            )
            return

        job.stage = JobStage.STITCHING
        job.aggregation_attempts += 1
        self._store.touch_job(job)
        request = StitchRequest(
            job_id=job.id,
            artifact_refs=composition.artifact_refs,
            audio_ref=composition.audio.ref if composition.audio else None,
            duration_seconds=composition.duration_seconds,
            audio_start_seconds=composition.audio.start_seconds if composition.audio else 0.0,
        )
        job.stitch_submitting = True
        try:
            handle = await stitch.submit(request)
        except ProviderError as exc:
            if job.status is JobStatus.ACTIVE and job.operation is None:
                self._stitch_failed(job, message=str(exc), retryable=exc.retryable)
            return
        finally:
            job.stitch_submitting = False

        if job.status is not JobStatus.ACTIVE or job.operation is not None:
            logger.info("job.stitch_handle_discarded job_id=%s", safe_log_identifier(job.id, prefix="jid"))
            return
        job.operation = handle
        self._store.touch_job(job)

    def _stitch_failed(self, job: JobRecord, *, message: str, retryable: bool) -> None:
        job.operation = None
        if retryable and job.aggregation_attempts < self._settings.max_aggregation_attempts:
            job.last_error = message
            self._store.touch_job(job)
            logger.warning(
                "job.stitch_retrying job_id=%s attempt=%s",
                safe_log_identifier(job.id, prefix="jid"),
                job.aggregation_attempts,
            )
            return
        self._fail_job(job, reason=FAILURE_AGGREGATION, message=message)

    def _current_stitch_owner(self, job_id: str, handle: OperationHandle) -> JobRecord | None:
        job = self._store.get_job(job_id)
        if (
            job is None
            or job.status is not JobStatus.ACTIVE
            or job.stage is not JobStage.STITCHING
            or job.operation is None
            or job.operation.operation_id != handle.operation_id
        ):
            return None
        return job

    def _fail_job(self, job: JobRecord, *, reason: str, message: str) -> None:
        job.failure_reason = reason
        job.last_error = message
        job.operation = None
        self._store.transition_job_status(job=job, new_status=JobStatus.FAILED, reason=reason)
        logger.warning(
            "job.failed job_id=%s reason=%s",
            safe_log_identifier(job.id, prefix="jid"),
            reason,
        )

    def _reopen(self, job: JobRecord, *, reason: str) -> None:
        self._store.transition_job_status(job=job, new_status=JobStatus.ACTIVE, reopen=True, reason=reason)
        job.failure_reason = None
        job.last_error = None

    def _refresh_progress(self, job: JobRecord, segments: list[SegmentRecord]) -> None:
        completed = sum(1 for segment in segments if segment.status in DONE_STATES)
        if completed != job.completed_segments:
            job.completed_segments = completed
            self._store.touch_job(job)

    def _segment_conflict(self, code: str, message: str, segment: SegmentRecord) -> ApiError:
        return conflict(
            code,
            message,
            details={
                "segment_id": segment.id,
                "current_status": segment.status,
                "retry_count": segment.retry_count,
                "max_retries": self._settings.max_segment_retries,
            },
        )

    @staticmethod
    def _to_job(record: JobRecord) -> Job:
        return Job(
            id=record.id,
            status=record.status,
            stage=record.stage,
            total_segments=record.total_segments,
            completed_segments=record.completed_segments,
            audio_ref=record.audio_ref,
            audio_duration_seconds=record.audio_duration_seconds,
            reference_image_ref=record.reference_image_ref,
            require_lipsync=record.require_lipsync,
            aspect_ratio=record.aspect_ratio,
            final_artifact_ref=record.final_artifact_ref,
            final_artifact_refs=list(record.final_artifact_refs),
            last_error=record.last_error,
            failure_reason=record.failure_reason,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    @staticmethod
    def _to_segment(record: SegmentRecord) -> Segment:
        return Segment(
            id=record.id,
            job_id=record.job_id,
            segment_index=record.segment_index,
            start_seconds=record.start_seconds,
            end_seconds=record.end_seconds,
            prompt=record.prompt,
            lyric_text=record.lyric_text,
            status=record.status,
            generation_status=record.generation_status,
            sync_status=record.sync_status,
            video_artifact_ref=record.video_artifact_ref,
            synced_artifact_ref=record.synced_artifact_ref,
            final_artifact_ref=record.final_artifact_ref,
            last_error=record.last_error,
            attempts=record.attempts,
            retry_count=record.retry_count,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
