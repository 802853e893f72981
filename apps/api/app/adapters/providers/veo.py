"""Vertex AI Veo video synthesis client."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
import json
import logging
import re
from typing import Any

from google.auth.exceptions import TransportError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.adapters.providers.base import (
    HttpOperationClient,
    ProviderLimits,
    SynthRequest,
)
from app.core.logging_safety import safe_log_identifier
from app.domain.operations import (
    Capability,
    OperationHandle,
    OperationStatus,
    PollResult,
    ProviderError,
    ProviderErrorKind,
)

logger = logging.getLogger(__name__)

VEO_LIMITS = ProviderLimits(
    min_duration_seconds=4,
    max_duration_seconds=8,
    aspect_ratios=("16:9", "9:16"),
    default_aspect_ratio="16:9",
)
_CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
_DATA_URL = re.compile(r"^data:(image/\w+);base64,(.+)$", re.DOTALL)


class VertexAccessTokenProvider:
    """Mints OAuth access tokens from a service-account JSON document."""

    def __init__(self, service_account_json: str) -> None:
        try:
            info = json.loads(service_account_json)
        except ValueError as exc:
            raise ValueError("Vertex service account JSON is not valid JSON") from exc
        self._credentials = service_account.Credentials.from_service_account_info(info, scopes=[_CLOUD_PLATFORM_SCOPE])
        self._lock = asyncio.Lock()

    async def token(self) -> str:
        async with self._lock:
            if not self._credentials.valid:
                await asyncio.to_thread(self._refresh)
            return self._credentials.token

    @retry(
        retry=retry_if_exception_type(TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=8),
        reraise=True,
    )
    def _refresh(self) -> None:
        self._credentials.refresh(Request())


class VeoOperationClient(HttpOperationClient):
    capability = Capability.SYNTH
    provider_name = "veo"
    limits = VEO_LIMITS

    def __init__(
        self,
        *,
        project_id: str,
        location: str,
        model_id: str,
        token_provider: VertexAccessTokenProvider | None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        super().__init__(http_client=http_client, timeout_seconds=timeout_seconds)
        self._token_provider = token_provider
        self._model_url = (
            f"https://{location}-aiplatform.googleapis.com/v1/projects/{project_id}"
            f"/locations/{location}/publishers/google/models/{model_id}"
        )

    async def _auth_headers(self) -> dict[str, str]:
        if self._token_provider is None:
            return {}
        return {"Authorization": f"Bearer {await self._token_provider.token()}"}

    async def submit(self, payload: SynthRequest) -> OperationHandle:
        request = self.limits.clamp(payload)
        instance: dict[str, Any] = {"prompt": request.prompt}
        image = _reference_image(request.reference_image_ref)
        if image is not None:
            instance["image"] = image

        body = {
            "instances": [instance],
            "parameters": {
                "aspectRatio": request.aspect_ratio,
                "durationSeconds": int(round(request.duration_seconds)),
                "sampleCount": 1,
                "personGeneration": "allow_all",
                "addWatermark": False,
                "generateAudio": False,
            },
        }
        data = await self._request_json("POST", f"{self._model_url}:predictLongRunning", json=body)
        operation_name = data.get("name")
        if not operation_name:
            raise ProviderError(ProviderErrorKind.PROVIDER_UNAVAILABLE, "veo returned no operation name")

        logger.info(
            "veo.submitted operation_id=%s duration_seconds=%s aspect_ratio=%s",
            safe_log_identifier(operation_name, prefix="op"),
            body["parameters"]["durationSeconds"],
            request.aspect_ratio,
        )
        return OperationHandle(
            capability=self.capability,
            operation_id=str(operation_name),
            submitted_at=datetime.now(UTC),
        )

    async def poll(self, handle: OperationHandle) -> PollResult:
        data = await self._request_json(
            "POST",
            f"{self._model_url}:fetchPredictOperation",
            json={"operationName": handle.operation_id},
        )
        return normalize_veo_operation(data)


def _reference_image(ref: str | None) -> dict[str, str] | None:
    if not ref:
        return None
    if ref.startswith("gs://"):
        return {"gcsUri": ref, "mimeType": "image/png" if ref.lower().endswith(".png") else "image/jpeg"}
    match = _DATA_URL.match(ref)
    if match:
        return {"bytesBase64Encoded": match.group(2), "mimeType": match.group(1)}
    logger.debug("veo.reference_image_skipped reason=unsupported_ref_scheme")
    return None


def normalize_veo_operation(data: dict[str, Any]) -> PollResult:
    """Map a ``fetchPredictOperation`` body onto the four normalized states."""
    if not data.get("done"):
        return PollResult(status=OperationStatus.PROCESSING)

    error = data.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        return PollResult(status=OperationStatus.FAILED, error=message or "Video generation failed")

    artifact_ref = _extract_video_ref(data.get("response") or {})
    if artifact_ref is None:
        return PollResult(status=OperationStatus.FAILED, error="Operation finished without a video")
    return PollResult(status=OperationStatus.SUCCEEDED, artifact_ref=artifact_ref)


def _extract_video_ref(response: dict[str, Any]) -> str | None:
    for video in response.get("videos") or []:
        ref = _video_ref(video)
        if ref:
            return ref
    nested = [*(response.get("generatedVideos") or []), *(response.get("predictions") or [])]
    for item in nested:
        if not isinstance(item, dict):
            continue
        ref = _video_ref(item.get("video") or item)
        if ref:
            return ref
    return None


def _video_ref(video: Any) -> str | None:
    if not isinstance(video, dict):
        return None
    if video.get("bytesBase64Encoded"):
        return f"data:video/mp4;base64,{video['bytesBase64Encoded']}"
    return video.get("gcsUri") or video.get("uri") or video.get("videoUri")


__all__ = ["VEO_LIMITS", "VeoOperationClient", "VertexAccessTokenProvider", "normalize_veo_operation"]
