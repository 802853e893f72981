"""Job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from app.routes.dependencies import get_authenticated_principal, get_job_coordinator
from app.schemas.auth import AuthPrincipal
from app.schemas.error import (
    ErrorResponse,
    FinalizeConflictError,
    InvalidInputError,
    NoLeakNotFoundError,
    QuotaExceededError,
)
from app.schemas.job import (
    CreateJobRequest,
    CreateJobResponse,
    FinalizeResponse,
    JobStatusResponse,
    OkResponse,
)
from app.services.jobs import JobCoordinator

router = APIRouter(tags=["Jobs"])


@router.post(
    "/jobs",
    response_model=CreateJobResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": InvalidInputError},
        401: {"model": ErrorResponse},
        403: {"model": QuotaExceededError},
    },
)
async def create_job(
    payload: CreateJobRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    coordinator: Annotated[JobCoordinator, Depends(get_job_coordinator)],
) -> CreateJobResponse:
    return coordinator.create_job(owner_id=principal.user_id, request=payload)


@router.post(
    "/jobs/{jobId}/status",
    response_model=JobStatusResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def post_job_status(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    coordinator: Annotated[JobCoordinator, Depends(get_job_coordinator)],
) -> JobStatusResponse:
    return coordinator.get_status(owner_id=principal.user_id, job_id=job_id)


@router.get(
    "/jobs/{jobId}",
    response_model=JobStatusResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def get_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    coordinator: Annotated[JobCoordinator, Depends(get_job_coordinator)],
) -> JobStatusResponse:
    return coordinator.get_status(owner_id=principal.user_id, job_id=job_id)


@router.post(
    "/jobs/{jobId}/cancel",
    response_model=OkResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def cancel_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    coordinator: Annotated[JobCoordinator, Depends(get_job_coordinator)],
) -> OkResponse:
    coordinator.cancel_job(owner_id=principal.user_id, job_id=job_id)
    return OkResponse()


@router.post(
    "/jobs/{jobId}/finalize",
    response_model=FinalizeResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FinalizeConflictError},
    },
)
async def finalize_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    coordinator: Annotated[JobCoordinator, Depends(get_job_coordinator)],
) -> FinalizeResponse:
    return coordinator.finalize(owner_id=principal.user_id, job_id=job_id)
