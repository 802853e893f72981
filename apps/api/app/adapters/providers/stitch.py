"""HTTP stitching service client."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any

import httpx

from app.adapters.providers.base import HttpOperationClient, StitchRequest
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

_STATUS_MAP: dict[str, OperationStatus] = {
    "queued": OperationStatus.PENDING,
    "running": OperationStatus.PROCESSING,
    "succeeded": OperationStatus.SUCCEEDED,
    "failed": OperationStatus.FAILED,
    "error": OperationStatus.FAILED,
}


class HttpStitchOperationClient(HttpOperationClient):
    """Submits ordered clip references plus one audio overlay to a stitching service."""

    capability = Capability.STITCH
    provider_name = "stitch"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        super().__init__(http_client=http_client, timeout_seconds=timeout_seconds)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key

    async def _auth_headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}"}

    async def submit(self, payload: StitchRequest) -> OperationHandle:
        if not payload.artifact_refs:
            raise ProviderError(ProviderErrorKind.INVALID_INPUT, "stitch requires at least one clip")

        body: dict[str, Any] = {
            "clips": [{"index": index, "url": ref} for index, ref in enumerate(payload.artifact_refs)],
            "duration_seconds": payload.duration_seconds,
            "reference": payload.job_id,
        }
        if payload.audio_ref:
            start = payload.audio_start_seconds
            body["audio"] = {"url": payload.audio_ref, "start_seconds": start, "end_seconds": start + payload.duration_seconds}

        data = await self._request_json("POST", f"{self._base_url}/stitch", json=body)
        operation_id = data.get("id") or data.get("job_id")
        if not operation_id:
            raise ProviderError(ProviderErrorKind.PROVIDER_UNAVAILABLE, "stitch service returned no job id")

        logger.info(
            "stitch.submitted operation_id=%s clip_count=%s",
            safe_log_identifier(operation_id, prefix="op"),
            len(payload.artifact_refs),
        )
        return OperationHandle(
            capability=self.capability,
            operation_id=str(operation_id),
            submitted_at=datetime.now(UTC),
        )

    async def poll(self, handle: OperationHandle) -> PollResult:
        data = await self._request_json("GET", f"{self._base_url}/stitch/{handle.operation_id}")
        return normalize_stitch_job(data)


def normalize_stitch_job(data: dict[str, Any]) -> PollResult:
    raw_status = str(data.get("status") or "").lower()
    status = _STATUS_MAP.get(raw_status, OperationStatus.PROCESSING)
    if status is OperationStatus.SUCCEEDED:
        output = data.get("output_url") or data.get("url")
        if not output:
            return PollResult(status=OperationStatus.FAILED, error="Stitch finished without an output")
        return PollResult(status=status, artifact_ref=str(output))
    if status is OperationStatus.FAILED:
        return PollResult(status=status, error=str(data.get("error") or f"Stitch {raw_status}"))
    return PollResult(status=status)


__all__ = ["HttpStitchOperationClient", "normalize_stitch_job"]
