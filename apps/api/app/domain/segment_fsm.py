"""Segment lifecycle transition rules."""

from app.errors import ApiError
from app.schemas.segment import SegmentStatus

_TERMINAL_STATES: set[SegmentStatus] = {
    SegmentStatus.READY,
    SegmentStatus.CANCELLED,
    SegmentStatus.SKIPPED,
}

IN_FLIGHT_STATES: frozenset[SegmentStatus] = frozenset(
    {
        SegmentStatus.GENERATING,
        SegmentStatus.VIDEO_READY,
        SegmentStatus.SYNCING,
    }
)

# Statuses that can still make progress without an explicit user command.
PROGRESSING_STATES: frozenset[SegmentStatus] = IN_FLIGHT_STATES | {SegmentStatus.PENDING}

DONE_STATES: frozenset[SegmentStatus] = frozenset({SegmentStatus.READY, SegmentStatus.SKIPPED})

_ALLOWED_TRANSITIONS: dict[SegmentStatus, set[SegmentStatus]] = {
    SegmentStatus.PENDING: {SegmentStatus.GENERATING, SegmentStatus.CANCELLED},
    SegmentStatus.GENERATING: {
        SegmentStatus.VIDEO_READY,
        SegmentStatus.FAILED,
        SegmentStatus.PENDING,
        SegmentStatus.CANCELLED,
    },
    SegmentStatus.VIDEO_READY: {
        SegmentStatus.SYNCING,
        SegmentStatus.READY,
        SegmentStatus.FAILED,
        SegmentStatus.CANCELLED,
    },
    SegmentStatus.SYNCING: {
        SegmentStatus.READY,
        SegmentStatus.FAILED,
        SegmentStatus.VIDEO_READY,
        SegmentStatus.CANCELLED,
    },
    SegmentStatus.FAILED: {SegmentStatus.PENDING, SegmentStatus.SKIPPED},
    SegmentStatus.READY: set(),
    SegmentStatus.CANCELLED: set(),
    SegmentStatus.SKIPPED: set(),
}


def is_cancellable(status: SegmentStatus) -> bool:
    return status in PROGRESSING_STATES


def allowed_next_statuses(status: SegmentStatus) -> list[SegmentStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def ensure_transition(old_status: SegmentStatus, new_status: SegmentStatus) -> None:
    """Validate a segment transition according to lifecycle rules."""
    if old_status in _TERMINAL_STATES:
        raise ApiError(
            status_code=409,
            code="FSM_TERMINAL_IMMUTABLE",
            message="Terminal segment state cannot be mutated",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": [],
            },
        )

    if new_status not in _ALLOWED_TRANSITIONS.get(old_status, set()):
        raise ApiError(
            status_code=409,
            code="FSM_TRANSITION_INVALID",
            message="Invalid segment status transition",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": allowed_next_statuses(old_status),
            },
        )
