"""Single control loop that owns every outstanding operation handle."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
import logging
import time
from typing import Literal

from app.adapters.providers import ProviderSet
from app.core.logging_safety import safe_log_identifier
from app.domain.operations import OperationHandle, ProviderError, ProviderErrorKind
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStage, JobStatus
from app.services.jobs import JobCoordinator

logger = logging.getLogger(__name__)

_MAX_BACKOFF_MULTIPLIER = 32


@dataclass(frozen=True, slots=True)
class PollWorkItem:
    owner: Literal["segment", "job"]
    owner_id: str
    job_id: str
    handle: OperationHandle


class PollScheduler:
    """Polls outstanding handles on a fixed interval through a bounded worker pool.

    Each cycle first lets every active job submit ready work, then enqueues each
    due handle once. Workers poll and hand results to the state machine (segments)
    or the coordinator (stitching). The scheduler itself never writes records.
    """

    def __init__(
        self,
        store: InMemoryStore,
        coordinator: JobCoordinator,
        providers: ProviderSet,
        *,
        poll_interval_seconds: float,
        staleness_seconds: float,
        workers: int,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._providers = providers
        self._poll_interval = poll_interval_seconds
        self._staleness_seconds = staleness_seconds
        self._worker_count = max(1, workers)
        self._clock = clock
        self._wall_clock = wall_clock
        self._queue: asyncio.Queue[PollWorkItem] = asyncio.Queue()
        self._last_polled_at: dict[str, float] = {}
        self._next_poll_at: dict[str, float] = {}
        self._backoff: dict[str, int] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None

    def last_polled_at(self, operation_id: str) -> float | None:
        return self._last_polled_at.get(operation_id)

    async def start(self) -> None:
        if self._loop_task is not None:
            return
        self._workers = [asyncio.create_task(self._worker(index)) for index in range(self._worker_count)]
        self._loop_task = asyncio.create_task(self._run_forever())
        logger.info(
            "scheduler.started workers=%s poll_interval_seconds=%s",
            self._worker_count,
            self._poll_interval,
        )

    async def stop(self) -> None:
        tasks = [task for task in (self._loop_task, *self._workers) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._workers = []
        logger.info("scheduler.stopped")

    async def run_cycle(self) -> int:
        """Run one scheduling cycle; returns the number of handles checked."""
        for job in self._store.list_active_jobs():
            await self._coordinator.submit_ready_segments(job.id)

        items = self._due_items()
        for item in items:
            self._queue.put_nowait(item)

        if self._workers:
            await self._queue.join()
        else:
            while not self._queue.empty():
                item = self._queue.get_nowait()
                try:
                    await self._process(item)
                finally:
                    self._queue.task_done()
        return len(items)

    async def _run_forever(self) -> None:
        while True:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("scheduler.cycle_failed")
            await asyncio.sleep(self._poll_interval)

    async def _worker(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._process(item)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "scheduler.poll_failed worker=%s operation_id=%s",
                    index,
                    safe_log_identifier(item.handle.operation_id, prefix="op"),
                )
            finally:
                self._queue.task_done()

    def _due_items(self) -> list[PollWorkItem]:
        now = self._clock()
        items: list[PollWorkItem] = []
        live_operation_ids: set[str] = set()

        # Only active jobs are scanned, so handles of cancelled jobs are never enqueued.
        for job in self._store.list_active_jobs():
            if job.stage is JobStage.STITCHING and job.operation is not None:
                live_operation_ids.add(job.operation.operation_id)
                if self._is_due(job.operation.operation_id, now):
                    items.append(PollWorkItem(owner="job", owner_id=job.id, job_id=job.id, handle=job.operation))
                continue

            for segment in self._store.list_segments_for_job(job.id):
                if segment.operation is None:
                    continue
                live_operation_ids.add(segment.operation.operation_id)
                if self._is_due(segment.operation.operation_id, now):
                    items.append(
                        PollWorkItem(owner="segment", owner_id=segment.id, job_id=job.id, handle=segment.operation)
                    )

        self._forget_except(live_operation_ids)
        return items

    def _is_due(self, operation_id: str, now: float) -> bool:
        return now >= self._next_poll_at.get(operation_id, float("-inf"))

    def _forget_except(self, live_operation_ids: set[str]) -> None:
        for bookkeeping in (self._last_polled_at, self._next_poll_at, self._backoff):
            for operation_id in [key for key in bookkeeping if key not in live_operation_ids]:
                del bookkeeping[operation_id]

    async def _process(self, item: PollWorkItem) -> None:
        job = self._store.get_job(item.job_id)
        if job is None or job.status is not JobStatus.ACTIVE:
            return

        operation_id = item.handle.operation_id
        age_seconds = (self._wall_clock() - item.handle.submitted_at).total_seconds()
        if age_seconds > self._staleness_seconds:
            logger.warning(
                "scheduler.handle_stale operation_id=%s capability=%s age_seconds=%s",
                safe_log_identifier(operation_id, prefix="op"),
                item.handle.capability.value,
                int(age_seconds),
            )
            await self._deliver_error(
                item,
                ProviderError(ProviderErrorKind.TIMEOUT, f"Operation exceeded {int(self._staleness_seconds)}s without finishing"),
            )
            return

        client = self._providers.for_capability(item.handle.capability)
        if client is None:
            return

        self._mark_polled(operation_id)
        try:
            result = await client.poll(item.handle)
        except ProviderError as exc:
            if exc.retryable:
                # Transient poll failures keep the handle; staleness bounds how long.
                if exc.kind is ProviderErrorKind.RATE_LIMITED:
                    self._increase_backoff(operation_id)
                logger.warning(
                    "scheduler.poll_transient_error operation_id=%s kind=%s",
                    safe_log_identifier(operation_id, prefix="op"),
                    exc.kind.value,
                )
                return
            await self._deliver_error(item, exc)
            return

        self._backoff.pop(operation_id, None)
        if item.owner == "job":
            await self._coordinator.apply_stitch_result(job_id=item.owner_id, handle=item.handle, result=result)
        else:
            await self._coordinator.machine.apply_result(segment_id=item.owner_id, handle=item.handle, result=result)

    async def _deliver_error(self, item: PollWorkItem, error: ProviderError) -> None:
        if item.owner == "job":
            await self._coordinator.apply_stitch_error(job_id=item.owner_id, handle=item.handle, error=error)
        else:
            await self._coordinator.machine.apply_error(segment_id=item.owner_id, handle=item.handle, error=error)

    def _mark_polled(self, operation_id: str) -> None:
        now = self._clock()
        self._last_polled_at[operation_id] = now
        self._next_poll_at[operation_id] = now + self._poll_interval * self._backoff.get(operation_id, 1)

    def _increase_backoff(self, operation_id: str) -> None:
        multiplier = min(_MAX_BACKOFF_MULTIPLIER, self._backoff.get(operation_id, 1) * 2)
        self._backoff[operation_id] = multiplier
        now = self._last_polled_at.get(operation_id, self._clock())
        self._next_poll_at[operation_id] = now + self._poll_interval * multiplier
