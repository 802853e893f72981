"""Sync.so lip-sync client."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any

import httpx

from app.adapters.providers.base import HttpOperationClient, LipSyncRequest
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

DEFAULT_SYNCSO_MODEL = "lipsync-1.9.0-beta"

_STATUS_MAP: dict[str, OperationStatus] = {
    "PENDING": OperationStatus.PENDING,
    "PROCESSING": OperationStatus.PROCESSING,
    "COMPLETED": OperationStatus.SUCCEEDED,
    "FAILED": OperationStatus.FAILED,
    "REJECTED": OperationStatus.FAILED,
}


class SyncSoOperationClient(HttpOperationClient):
    capability = Capability.LIPSYNC
    provider_name = "syncso"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.sync.so/v2",
        model: str = DEFAULT_SYNCSO_MODEL,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        super().__init__(http_client=http_client, timeout_seconds=timeout_seconds)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model

    async def _auth_headers(self) -> dict[str, str]:
        return {"x-api-key": self._api_key}

    async def submit(self, payload: LipSyncRequest) -> OperationHandle:
        start = max(0.0, payload.start_seconds)
        end = max(start, payload.end_seconds)
        body = {
            "model": self._model,
            "input": [
                {"type": "video", "url": payload.video_ref},
                {"type": "audio", "url": payload.audio_ref, "segments_secs": [[start, end]]},
            ],
        }
        data = await self._request_json("POST", f"{self._base_url}/generate", json=body)
        job_id = data.get("id")
        if not job_id:
            raise ProviderError(ProviderErrorKind.PROVIDER_UNAVAILABLE, "syncso returned no job id")

        logger.info(
            "syncso.submitted operation_id=%s model=%s",
            safe_log_identifier(job_id, prefix="op"),
            self._model,
        )
        return OperationHandle(
            capability=self.capability,
            operation_id=str(job_id),
            submitted_at=datetime.now(UTC),
        )

    async def poll(self, handle: OperationHandle) -> PollResult:
        data = await self._request_json("GET", f"{self._base_url}/generate/{handle.operation_id}")
        return normalize_syncso_job(data)


def normalize_syncso_job(data: dict[str, Any]) -> PollResult:
    raw_status = str(data.get("status") or "").upper()
    status = _STATUS_MAP.get(raw_status)
    if status is None:
        # Unknown vocabulary is treated as still running.
        return PollResult(status=OperationStatus.PROCESSING)

    if status is OperationStatus.SUCCEEDED:
        output_url = data.get("outputUrl") or data.get("output_url")
        if not output_url:
            return PollResult(status=OperationStatus.FAILED, error="Lip-sync finished without an output")
        return PollResult(status=status, artifact_ref=str(output_url))
    if status is OperationStatus.FAILED:
        return PollResult(status=status, error=str(data.get("error") or f"Lip-sync {raw_status.lower()}"))
    return PollResult(status=status)


__all__ = ["DEFAULT_SYNCSO_MODEL", "SyncSoOperationClient", "normalize_syncso_job"]
