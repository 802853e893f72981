"""Operation client interfaces and shared HTTP plumbing for generation providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
from typing import Any

import httpx

from app.domain.operations import (
    Capability,
    OperationHandle,
    PollResult,
    ProviderError,
    ProviderErrorKind,
)

logger = logging.getLogger(__name__)

_ERROR_BODY_PREVIEW_CHARS = 500


@dataclass(frozen=True, slots=True)
class SynthRequest:
    prompt: str
    duration_seconds: float
    aspect_ratio: str
    reference_image_ref: str | None = None


@dataclass(frozen=True, slots=True)
class LipSyncRequest:
    video_ref: str
    audio_ref: str
    start_seconds: float
    end_seconds: float


@dataclass(frozen=True, slots=True)
class StitchRequest:
    job_id: str
    artifact_refs: tuple[str, ...]
    audio_ref: str | None
    duration_seconds: float
    audio_start_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class ProviderLimits:
    """Supported request ranges; out-of-range values are clamped, never rejected."""

    min_duration_seconds: float
    max_duration_seconds: float
    aspect_ratios: tuple[str, ...]
    default_aspect_ratio: str

    def clamp_duration(self, seconds: float) -> float:
        return min(self.max_duration_seconds, max(self.min_duration_seconds, seconds))

    def clamp_aspect_ratio(self, aspect_ratio: str | None) -> str:
        if aspect_ratio in self.aspect_ratios:
            return aspect_ratio
        return self.default_aspect_ratio

    def clamp(self, request: SynthRequest) -> SynthRequest:
        return SynthRequest(
            prompt=request.prompt,
            duration_seconds=self.clamp_duration(request.duration_seconds),
            aspect_ratio=self.clamp_aspect_ratio(request.aspect_ratio),
            reference_image_ref=request.reference_image_ref,
        )


class OperationClient(ABC):
    """Uniform submit-then-poll interface for one provider capability."""

    capability: Capability
    provider_name: str

    @abstractmethod
    async def submit(self, payload: Any) -> OperationHandle:
        """Start a provider operation; raise ``ProviderError`` on rejection."""

    @abstractmethod
    async def poll(self, handle: OperationHandle) -> PollResult:
        """Return the normalized status of an outstanding operation."""

    async def aclose(self) -> None:
        return None


def classify_status_code(status_code: int) -> ProviderErrorKind:
    if status_code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status_code == 402:
        return ProviderErrorKind.QUOTA_EXCEEDED
    if status_code >= 500:
        return ProviderErrorKind.PROVIDER_UNAVAILABLE
    return ProviderErrorKind.INVALID_INPUT


class HttpOperationClient(OperationClient):
    """Shared ``httpx.AsyncClient`` plumbing that maps HTTP failures onto ``ProviderError``."""

    def __init__(self, *, http_client: httpx.AsyncClient | None = None, timeout_seconds: float = 45.0) -> None:
        if http_client is None:
            limits = httpx.Limits(max_connections=50, max_keepalive_connections=20)
            http_client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds, connect=10.0), limits=limits)
        self._http = http_client

    async def _auth_headers(self) -> dict[str, str]:
        return {}

    async def _request_json(self, method: str, url: str, *, json: Any | None = None) -> dict[str, Any]:
        headers = {"Content-Type": "application/json", **(await self._auth_headers())}
        try:
            response = await self._http.request(method, url, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(ProviderErrorKind.TIMEOUT, f"{self.provider_name} request timed out") from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                ProviderErrorKind.PROVIDER_UNAVAILABLE,
                f"{self.provider_name} transport error: {type(exc).__name__}",
            ) from exc

        if response.is_error:
            kind = classify_status_code(response.status_code)
            logger.warning(
                "provider.http_error provider=%s status_code=%s kind=%s",
                self.provider_name,
                response.status_code,
                kind.value,
            )
            raise ProviderError(
                kind,
                f"{self.provider_name} returned {response.status_code}: {response.text[:_ERROR_BODY_PREVIEW_CHARS]}",
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(
                ProviderErrorKind.PROVIDER_UNAVAILABLE,
                f"{self.provider_name} returned a non-JSON body",
            ) from exc
        if not isinstance(body, dict):
            raise ProviderError(
                ProviderErrorKind.PROVIDER_UNAVAILABLE,
                f"{self.provider_name} returned an unexpected body",
            )
        return body

    async def aclose(self) -> None:
        await self._http.aclose()


__all__ = [
    "HttpOperationClient",
    "LipSyncRequest",
    "OperationClient",
    "ProviderLimits",
    "StitchRequest",
    "SynthRequest",
    "classify_status_code",
]
