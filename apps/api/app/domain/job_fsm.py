"""Job lifecycle transition rules."""

from app.errors import ApiError
from app.schemas.job import JobStatus

_TERMINAL_STATES: set[JobStatus] = {
    JobStatus.COMPLETED,
    JobStatus.CANCELLED,
}

_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.ACTIVE: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}

# FAILED -> ACTIVE is reserved for reopening a job after a segment retry or skip.
_SEGMENT_RETRY_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.FAILED: {JobStatus.ACTIVE},
}


def is_terminal(status: JobStatus) -> bool:
    return status in _TERMINAL_STATES or status is JobStatus.FAILED


def allowed_next_statuses(status: JobStatus, *, reopen: bool = False) -> list[JobStatus]:
    """Return deterministically ordered allowed successors for a status."""
    allowed = set(_ALLOWED_TRANSITIONS.get(status, set()))
    if reopen:
        allowed |= _SEGMENT_RETRY_TRANSITIONS.get(status, set())
    return sorted(allowed, key=lambda s: s.value)


def ensure_transition(old_status: JobStatus, new_status: JobStatus, *, reopen: bool = False) -> None:
    """Validate transition according to lifecycle rules."""
    if old_status in _TERMINAL_STATES or (old_status is JobStatus.FAILED and not reopen):
        raise ApiError(
            status_code=409,
            code="FSM_TERMINAL_IMMUTABLE",
            message="Terminal state cannot be mutated",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": [],
            },
        )

    allowed_next = allowed_next_statuses(old_status, reopen=reopen)
    if new_status not in allowed_next:
        raise ApiError(
            status_code=409,
            code="FSM_TRANSITION_INVALID",
            message="Invalid status transition",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": allowed_next,
            },
        )
