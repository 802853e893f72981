"""Deterministic in-memory operation client for local development and tests."""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import UTC, datetime
from typing import Any

from app.adapters.providers.base import OperationClient, ProviderLimits, SynthRequest
from app.domain.operations import (
    Capability,
    OperationHandle,
    OperationStatus,
    PollResult,
    ProviderError,
)


class MockOperationClient(OperationClient):
    """Completes every operation after ``polls_until_done`` polls.

    Tests can script outcomes per operation with ``set_result``, queue submission
    errors with ``fail_next_submit`` and hold submissions open with ``submit_gate``.
    ``polls_until_done=None`` keeps operations processing until scripted.
    """

    def __init__(
        self,
        capability: Capability,
        *,
        polls_until_done: int | None = 1,
        limits: ProviderLimits | None = None,
    ) -> None:
        self.capability = capability
        self.provider_name = f"mock-{capability.value}"
        self.limits = limits
        self.polls_until_done = polls_until_done
        self.submit_gate: asyncio.Event | None = None
        self.submissions: list[tuple[OperationHandle, Any]] = []
        self.poll_counts: dict[str, int] = {}
        self._scripted: dict[str, PollResult | ProviderError] = {}
        self._submit_errors: deque[ProviderError] = deque()
        self._sequence = 0

    def fail_next_submit(self, error: ProviderError) -> None:
        self._submit_errors.append(error)

    def set_result(self, operation_id: str, result: PollResult | ProviderError) -> None:
        self._scripted[operation_id] = result

    def operation_ids(self) -> list[str]:
        return [handle.operation_id for handle, _ in self.submissions]

    async def submit(self, payload: Any) -> OperationHandle:
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self._submit_errors:
            raise self._submit_errors.popleft()

        if self.limits is not None and isinstance(payload, SynthRequest):
            payload = self.limits.clamp(payload)

        self._sequence += 1
        handle = OperationHandle(
            capability=self.capability,
            operation_id=f"mock-{self.capability.value}-{self._sequence}",
            submitted_at=datetime.now(UTC),
        )
        self.submissions.append((handle, payload))
        return handle

    async def poll(self, handle: OperationHandle) -> PollResult:
        count = self.poll_counts.get(handle.operation_id, 0) + 1
        self.poll_counts[handle.operation_id] = count

        scripted = self._scripted.get(handle.operation_id)
        if isinstance(scripted, ProviderError):
            raise scripted
        if scripted is not None:
            return scripted

        if self.polls_until_done is not None and count >= self.polls_until_done:
            return PollResult(
                status=OperationStatus.SUCCEEDED,
                artifact_ref=f"mock://{self.capability.value}/{handle.operation_id}.mp4",
            )
        return PollResult(status=OperationStatus.PROCESSING)


__all__ = ["MockOperationClient"]
