"""Combine finished segment artifacts into one ordered composition."""

from __future__ import annotations

from dataclasses import dataclass

from app.errors import conflict
from app.repositories.memory import JobRecord, SegmentRecord

COMPOSITION_SCHEME = "composition://"


@dataclass(frozen=True, slots=True)
class AudioOverlay:
    ref: str
    start_seconds: float
    end_seconds: float


@dataclass(frozen=True, slots=True)
class Composition:
    job_id: str
    ref: str
    artifact_refs: tuple[str, ...]
    audio: AudioOverlay | None
    duration_seconds: float


def composition_ref(job_id: str) -> str:
    return f"{COMPOSITION_SCHEME}{job_id}"


class Aggregator:
    """Strict aggregation: every segment must contribute an artifact."""

    def compose(self, *, job: JobRecord, segments: list[SegmentRecord]) -> Composition:
        ordered = sorted(segments, key=lambda segment: segment.segment_index)
        missing = [segment.segment_index for segment in ordered if not segment.final_artifact_ref]
        if missing or not ordered:
            raise conflict(
                "INCOMPLETE_SEGMENTS",
                "Every segment needs a final artifact before aggregation",
                details={"missing_segment_indexes": missing},
            )

        duration = ordered[-1].end_seconds - ordered[0].start_seconds
        audio = None
        if job.audio_ref:
            # The overlay is the slice of the source track the clips were planned against.
            audio = AudioOverlay(
                ref=job.audio_ref,
                start_seconds=ordered[0].start_seconds,
                end_seconds=ordered[-1].end_seconds,
            )
        return Composition(
            job_id=job.id,
            ref=composition_ref(job.id),
            artifact_refs=tuple(segment.final_artifact_ref for segment in ordered if segment.final_artifact_ref),
            audio=audio,
            duration_seconds=duration,
        )


def missing_artifact_indexes(segments: list[SegmentRecord]) -> list[int]:
    return sorted(segment.segment_index for segment in segments if not segment.final_artifact_ref)
