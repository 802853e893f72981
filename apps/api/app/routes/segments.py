"""Segment routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.routes.dependencies import get_authenticated_principal, get_job_coordinator
from app.schemas.auth import AuthPrincipal
from app.schemas.error import ErrorResponse, NoLeakNotFoundError, SegmentStateConflictError
from app.schemas.job import OkResponse
from app.services.jobs import JobCoordinator

router = APIRouter(tags=["Segments"])


@router.post(
    "/segments/{segmentId}/retry",
    response_model=OkResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": SegmentStateConflictError},
    },
)
async def retry_segment(
    segment_id: Annotated[str, Path(alias="segmentId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    coordinator: Annotated[JobCoordinator, Depends(get_job_coordinator)],
) -> OkResponse:
    coordinator.retry_segment(owner_id=principal.user_id, segment_id=segment_id)
    return OkResponse()


@router.post(
    "/segments/{segmentId}/skip",
    response_model=OkResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": SegmentStateConflictError},
    },
)
async def skip_segment(
    segment_id: Annotated[str, Path(alias="segmentId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    coordinator: Annotated[JobCoordinator, Depends(get_job_coordinator)],
) -> OkResponse:
    await coordinator.skip_segment(owner_id=principal.user_id, segment_id=segment_id)
    return OkResponse()
