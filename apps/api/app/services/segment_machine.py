"""Per-segment lifecycle driven by operation client submissions and poll results."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging

from app.adapters.providers import LipSyncRequest, ProviderSet, SynthRequest
from app.core.logging_safety import safe_log_identifier
from app.domain.operations import (
    Capability,
    OperationHandle,
    OperationStatus,
    PollResult,
    ProviderError,
)
from app.domain.segment_fsm import is_cancellable
from app.repositories.memory import InMemoryStore, JobRecord, SegmentRecord
from app.schemas.job import JobStatus
from app.schemas.segment import SegmentStatus, StageStatus

logger = logging.getLogger(__name__)

TransitionListener = Callable[[SegmentRecord], Awaitable[None]]

_EXPECTED_STATUS: dict[Capability, SegmentStatus] = {
    Capability.SYNTH: SegmentStatus.GENERATING,
    Capability.LIPSYNC: SegmentStatus.SYNCING,
}


async def _ignore_transition(_segment: SegmentRecord) -> None:
    return None


class SegmentStateMachine:
    """Owns every segment status mutation.

    Submission marks the segment before awaiting the provider so concurrent
    callers see the slot as taken. Results are applied only when the segment is
    still in the state that issued the handle and still carries that handle;
    anything else is a late result and is discarded.
    """

    def __init__(
        self,
        store: InMemoryStore,
        providers: ProviderSet,
        *,
        max_transient_attempts: int,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self._store = store
        self._providers = providers
        self._max_transient_attempts = max_transient_attempts
        self._on_transition = on_transition or _ignore_transition

    def set_listener(self, listener: TransitionListener) -> None:
        self._on_transition = listener

    async def submit_generation(self, *, job: JobRecord, segment: SegmentRecord) -> None:
        if segment.status is not SegmentStatus.PENDING:
            return

        self._store.transition_segment_status(segment=segment, new_status=SegmentStatus.GENERATING, reason="submit")
        segment.generation_status = StageStatus.PROCESSING
        segment.attempts += 1
        request = SynthRequest(
            prompt=segment.prompt,
            duration_seconds=segment.duration_seconds,
            aspect_ratio=job.aspect_ratio,
            reference_image_ref=job.reference_image_ref,
        )

        try:
            handle = await self._providers.synth.submit(request)
        except ProviderError as exc:
            if segment.status is not SegmentStatus.GENERATING or segment.operation is not None:
                self._log_discarded(segment, reason="submit_error_after_state_change")
                return
            await self._fail_stage(segment, capability=Capability.SYNTH, message=str(exc), retryable=exc.retryable)
            return

        if segment.status is not SegmentStatus.GENERATING or segment.operation is not None:
            self._log_discarded(segment, reason="handle_after_state_change")
            return

        segment.operation = handle
        self._store.touch_segment(segment)
        logger.info(
            "segment.generation_submitted segment_id=%s segment_index=%s attempt=%s",
            safe_log_identifier(segment.id, prefix="sid"),
            segment.segment_index,
            segment.attempts,
        )

    async def submit_sync(self, *, job: JobRecord, segment: SegmentRecord) -> None:
        if segment.status is not SegmentStatus.VIDEO_READY or segment.operation is not None:
            return
        if not job.require_lipsync:
            await self.complete_without_sync(segment=segment)
            return

        self._store.transition_segment_status(segment=segment, new_status=SegmentStatus.SYNCING, reason="submit")
        segment.sync_status = StageStatus.PROCESSING
        segment.attempts += 1
        request = LipSyncRequest(
            video_ref=segment.video_artifact_ref or "",
            audio_ref=job.audio_ref,
            start_seconds=segment.start_seconds,
            end_seconds=segment.end_seconds,
        )

        try:
            handle = await self._providers.lipsync.submit(request)
        except ProviderError as exc:
            if segment.status is not SegmentStatus.SYNCING or segment.operation is not None:
                self._log_discarded(segment, reason="submit_error_after_state_change")
                return
            await self._fail_stage(segment, capability=Capability.LIPSYNC, message=str(exc), retryable=exc.retryable)
            return

        if segment.status is not SegmentStatus.SYNCING or segment.operation is not None:
            self._log_discarded(segment, reason="handle_after_state_change")
            return

        segment.operation = handle
        self._store.touch_segment(segment)
        logger.info(
            "segment.sync_submitted segment_id=%s segment_index=%s attempt=%s",
            safe_log_identifier(segment.id, prefix="sid"),
            segment.segment_index,
            segment.attempts,
        )

    async def complete_without_sync(self, *, segment: SegmentRecord) -> None:
        if segment.status is not SegmentStatus.VIDEO_READY:
            return
        segment.final_artifact_ref = segment.video_artifact_ref
        self._store.transition_segment_status(segment=segment, new_status=SegmentStatus.READY, reason="video_only")
        await self._on_transition(segment)

    async def apply_result(self, *, segment_id: str, handle: OperationHandle, result: PollResult) -> bool:
        """Feed one observed poll result into the segment; returns False for discarded results."""
        segment = self._current_owner(segment_id, handle)
        if segment is None:
            return False
        if not result.status.is_terminal:
            return True

        if result.status is OperationStatus.FAILED:
            await self._fail_stage(
                segment,
                capability=handle.capability,
                message=result.error or "Provider reported failure",
                retryable=False,
            )
            return True

        segment.operation = None
        if handle.capability is Capability.SYNTH:
            segment.video_artifact_ref = result.artifact_ref
            segment.generation_status = StageStatus.SUCCEEDED
            segment.attempts = 0
            self._store.transition_segment_status(segment=segment, new_status=SegmentStatus.VIDEO_READY, reason="generated")
            await self._on_transition(segment)

            job = self._store.get_job(segment.job_id)
            if job is not None and job.status is JobStatus.ACTIVE:
                if job.require_lipsync:
                    await self.submit_sync(job=job, segment=segment)
                else:
                    await self.complete_without_sync(segment=segment)
            return True

        segment.synced_artifact_ref = result.artifact_ref
        segment.sync_status = StageStatus.SUCCEEDED
        segment.final_artifact_ref = result.artifact_ref
        self._store.transition_segment_status(segment=segment, new_status=SegmentStatus.READY, reason="synced")
        await self._on_transition(segment)
        return True

    async def apply_error(self, *, segment_id: str, handle: OperationHandle, error: ProviderError) -> bool:
        segment = self._current_owner(segment_id, handle)
        if segment is None:
            return False
        await self._fail_stage(segment, capability=handle.capability, message=str(error), retryable=error.retryable)
        return True

    def cancel(self, *, segment: SegmentRecord) -> None:
        if not is_cancellable(segment.status):
            return
        segment.operation = None
        self._store.transition_segment_status(segment=segment, new_status=SegmentStatus.CANCELLED, reason="cancel")

    def reset_for_retry(self, *, segment: SegmentRecord) -> None:
        self._store.transition_segment_status(segment=segment, new_status=SegmentStatus.PENDING, reason="retry")
        segment.retry_count += 1
        segment.attempts = 0
        segment.last_error = None
        segment.operation = None
        segment.generation_status = StageStatus.NOT_STARTED
        segment.sync_status = StageStatus.NOT_STARTED
        segment.video_artifact_ref = None
        segment.synced_artifact_ref = None
        segment.final_artifact_ref = None

    def skip(self, *, segment: SegmentRecord) -> None:
        # An unsynced video stands in for the final artifact when one exists.
        segment.final_artifact_ref = segment.synced_artifact_ref or segment.video_artifact_ref
        segment.operation = None
        self._store.transition_segment_status(segment=segment, new_status=SegmentStatus.SKIPPED, reason="skip")

    def _current_owner(self, segment_id: str, handle: OperationHandle) -> SegmentRecord | None:
        segment = self._store.get_segment(segment_id)
        if segment is None:
            return None
        expected = _EXPECTED_STATUS.get(handle.capability)
        if (
            segment.status is not expected
            or segment.operation is None
            or segment.operation.operation_id != handle.operation_id
        ):
            self._log_discarded(segment, reason="late_result")
            return None
        return segment

    async def _fail_stage(
        self,
        segment: SegmentRecord,
        *,
        capability: Capability,
        message: str,
        retryable: bool,
    ) -> None:
        segment.operation = None
        segment.last_error = message
        can_retry = retryable and segment.attempts < self._max_transient_attempts

        if capability is Capability.LIPSYNC:
            if can_retry:
                segment.sync_status = StageStatus.NOT_STARTED
                new_status = SegmentStatus.VIDEO_READY
            else:
                segment.sync_status = StageStatus.FAILED
                new_status = SegmentStatus.FAILED
        elif can_retry:
            segment.generation_status = StageStatus.NOT_STARTED
            new_status = SegmentStatus.PENDING
        else:
            segment.generation_status = StageStatus.FAILED
            new_status = SegmentStatus.FAILED

        self._store.transition_segment_status(
            segment=segment,
            new_status=new_status,
            reason="transient_retry" if can_retry else "failed",
        )
        logger.warning(
            "segment.stage_failed segment_id=%s segment_index=%s capability=%s attempt=%s retrying=%s",
            safe_log_identifier(segment.id, prefix="sid"),
            segment.segment_index,
            capability.value,
            segment.attempts,
            can_retry,
        )
        await self._on_transition(segment)

    @staticmethod
    def _log_discarded(segment: SegmentRecord, *, reason: str) -> None:
        logger.info(
            "segment.result_discarded segment_id=%s status=%s reason=%s",
            safe_log_identifier(segment.id, prefix="sid"),
            segment.status.value,
            reason,
        )
