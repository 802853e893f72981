"""Request-scoped dependencies: caller identity, correlation ids and the job coordinator."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.adapters.auth import (
    AuthVerificationError,
    FirebaseTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
)
from app.core.config import Settings, get_settings
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError
from app.schemas.auth import AuthPrincipal
from app.services.jobs import JobCoordinator

CORRELATION_HEADER = "X-Correlation-Id"

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)


def _correlation_id(request: Request) -> str:
    cached = getattr(request.state, "correlation_id", None)
    if not (isinstance(cached, str) and cached):
        cached = request.headers.get(CORRELATION_HEADER) or f"req-{uuid4()}"
        request.state.correlation_id = cached
    return cached


def _reject(request: Request, *, provider: str, reason: str, message: str) -> ApiError:
    logger.warning(
        "auth.rejected correlation_id=%s method=%s path=%s provider=%s reason=%s",
        safe_log_identifier(_correlation_id(request), prefix="cid"),
        request.method,
        request.url.path,
        provider,
        reason,
    )
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    """Pick the verifier named by ``auth_provider``."""
    if settings.auth_provider == "mock":
        return MockTokenVerifier()
    return FirebaseTokenVerifier(
        project_id=settings.firebase_project_id,
        audience=settings.firebase_audience,
    )


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Resolve the job owner behind the bearer token.

    Runs before any handler body, so a rejected request never reaches the
    coordinator, the allowance or a provider.
    """
    token = credentials.credentials if credentials and credentials.scheme.lower() == "bearer" else ""
    if not token:
        raise _reject(
            request,
            provider=verifier.provider_name,
            reason="invalid_or_missing_bearer",
            message="Invalid or missing bearer token",
        )

    try:
        principal = verifier.verify_token(token)
    except AuthVerificationError as exc:
        raise _reject(
            request,
            provider=verifier.provider_name,
            reason=exc.reason,
            message=str(exc) or "Invalid bearer token",
        ) from exc

    logger.info(
        "auth.accepted correlation_id=%s method=%s path=%s provider=%s owner_id=%s",
        safe_log_identifier(_correlation_id(request), prefix="cid"),
        request.method,
        request.url.path,
        verifier.provider_name,
        safe_log_identifier(principal.user_id, prefix="pid"),
    )
    request.state.auth_principal = principal
    return principal


def get_job_coordinator(request: Request) -> JobCoordinator:
    return request.app.state.coordinator
