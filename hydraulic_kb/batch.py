"""
Hydraulic Cylinder Knowledge Base — Batch Coordinator

Responsibilities:
  1. Process catalog items through a bounded asyncio worker pool
  2. Classify each outcome (success / failed / skipped / timeout), with
     in-task retries for transient errors
  3. Checkpoint counters and outcome lists every ``batch_size`` completions
  4. Cooperative pause and cancel; resume from the last checkpoint
  5. Retry recorded failures of a finished job

Resume relies on two things: the checkpoint (a contiguous completion
watermark plus the outcome lists), and durable per-item outcomes (saved
entries tagged with the job id, saved ProcessingFailures). Items past the
watermark that already have a durable outcome are recovered, not re-run.
"""
from __future__ import annotations
import asyncio
import logging
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

from hydraulic_kb.catalog import CatalogSource
from hydraulic_kb.config import Settings, get_settings
from hydraulic_kb.errors import (
    CriticalBatchFailure, InvalidJobStateError, ItemProcessingFailure, JobNotFoundError,
    TaskTimeout, determine_error_type,
)
from hydraulic_kb.memo import BoundedMemo
from hydraulic_kb.models import (
    BatchJob, BatchOptions, BatchResult, CatalogItem, ErrorType, ItemOutcome,
    JobStatus, KnowledgeBaseEntry, ProcessingFailure,
)
from hydraulic_kb.repository import KnowledgeBaseRepository

logger = logging.getLogger(__name__)

# Results of finished jobs kept for late wait() calls
FINISHED_RESULTS_KEPT = 64


class ItemPipeline(Protocol):
    """What the coordinator needs from the knowledge-base service."""

    catalog: CatalogSource

    async def process_item(self, item: CatalogItem, job_id: Optional[str] = None,
                           include_hierarchy: bool = True) -> KnowledgeBaseEntry:
        ...


# ============================================================
# Cancellation
# ============================================================

class CancellationToken:
    """Cooperative stop signal, checked at the top of every task."""

    def __init__(self):
        self._reason: Optional[JobStatus] = None

    def pause(self) -> None:
        self._reason = self._reason or JobStatus.PAUSED

    def cancel(self) -> None:
        self._reason = JobStatus.CANCELLED

    @property
    def is_stopped(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[JobStatus]:
        return self._reason


# ============================================================
# Run State
# ============================================================

@dataclass
class _ItemResult:
    index: int
    item_code: str
    outcome: ItemOutcome
    error_type: Optional[ErrorType] = None
    message: str = ""
    is_cylinder: bool = False


@dataclass
class _JobRun:
    job: BatchJob
    items: list[CatalogItem]
    options: BatchOptions
    token: CancellationToken = field(default_factory=CancellationToken)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    completed: set[int] = field(default_factory=set)
    watermark: int = -1
    successful: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    timed_out: list[str] = field(default_factory=list)
    cylinders: list[str] = field(default_factory=list)
    resumed_from: Optional[int] = None
    processed_this_run: int = 0
    since_checkpoint: int = 0
    elapsed_before: float = 0.0
    started: float = field(default_factory=time.monotonic)
    task: Optional[asyncio.Task] = None

    @property
    def processed(self) -> int:
        return len(self.successful) + len(self.failed) + len(self.skipped) + len(self.timed_out)

    @property
    def elapsed(self) -> float:
        return self.elapsed_before + (time.monotonic() - self.started)

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def known_codes(self) -> set[str]:
        return (
            set(self.successful) | {f["item_code"] for f in self.failed}
            | set(self.skipped) | set(self.timed_out)
        )

    def mark_complete(self, index: int) -> None:
        self.completed.add(index)
        while self.watermark + 1 in self.completed:
            self.watermark += 1
        if self.watermark >= 0:
            self.job.last_processed_item_code = self.items[self.watermark].item_code

    def record(self, result: _ItemResult) -> None:
        if result.outcome is ItemOutcome.SUCCESS:
            self.successful.append(result.item_code)
            if result.is_cylinder:
                self.cylinders.append(result.item_code)
        elif result.outcome is ItemOutcome.FAILED:
            self.failed.append({
                "item_code": result.item_code,
                "error_type": (result.error_type or ErrorType.UNKNOWN).value,
                "message": result.message,
            })
        elif result.outcome is ItemOutcome.SKIPPED:
            self.skipped.append(result.item_code)
        else:
            self.timed_out.append(result.item_code)
        self.mark_complete(result.index)
        self.job.update_progress(
            processed=self.processed,
            success=len(self.successful),
            failed=len(self.failed),
            skipped=len(self.skipped),
            timeouts=len(self.timed_out),
            elapsed_seconds=self.elapsed,
        )

    def checkpoint_data(self) -> dict[str, Any]:
        return {
            "successful_items": list(self.successful),
            "failed_items": [dict(f) for f in self.failed],
            "skipped_items": list(self.skipped),
            "timed_out_items": list(self.timed_out),
            "cylinder_items": list(self.cylinders),
            "elapsed_seconds": self.elapsed,
            "options": self.options.model_dump(),
            "checkpointed_at": datetime.now(timezone.utc).isoformat(),
        }

    def restore(self, data: dict[str, Any]) -> None:
        self.successful = list(data.get("successful_items", []))
        self.failed = [dict(f) for f in data.get("failed_items", [])]
        self.skipped = list(data.get("skipped_items", []))
        self.timed_out = list(data.get("timed_out_items", []))
        self.cylinders = list(data.get("cylinder_items", []))
        self.elapsed_before = float(data.get("elapsed_seconds", 0.0))


@dataclass
class RetryReport:
    job_id: str
    attempted: int = 0
    resolved: list[str] = field(default_factory=list)
    still_failing: list[str] = field(default_factory=list)


def _error_message(e: BaseException) -> str:
    if isinstance(e, ItemProcessingFailure):
        return e.message
    return str(e) or type(e).__name__


# ============================================================
# Coordinator
# ============================================================

class BatchCoordinator:

    def __init__(
        self,
        service: ItemPipeline,
        repo: KnowledgeBaseRepository,
        settings: Optional[Settings] = None,
        catalog: Optional[CatalogSource] = None,
    ):
        self.service = service
        self.repo = repo
        self.settings = settings or get_settings()
        self.catalog = catalog or service.catalog
        self._runs: dict[str, _JobRun] = {}
        self._finished: BoundedMemo[BatchResult] = BoundedMemo(max_size=FINISHED_RESULTS_KEPT)

    # ----------------------------------------------------------
    # Public API
    # ----------------------------------------------------------

    async def start(
        self,
        items: Optional[Iterable[CatalogItem]] = None,
        options: Optional[BatchOptions] = None,
    ) -> str:
        """Create a job and start processing in the background. Returns the job id."""
        options = options or BatchOptions.from_settings(self.settings)
        items = list(items) if items is not None else await self.catalog.list_items()

        job = BatchJob(
            total_items=len(items),
            initiated_by=options.initiated_by,
            batch_size=options.batch_size,
        )
        await self.repo.create_job(job)
        job.status = JobStatus.PROCESSING
        await self.repo.update_job(job)

        state = _JobRun(job=job, items=items, options=options)
        self._runs[job.id] = state
        state.task = asyncio.create_task(self._run(state, list(enumerate(items))))
        logger.info(
            f"Batch {job.id} started: {len(items)} items, "
            f"pool={options.pool_size}, batch_size={options.batch_size}"
        )
        return job.id

    async def wait(self, job_id: str) -> BatchResult:
        """Await the job's current run and return its result."""
        state = self._runs.get(job_id)
        if state is None:
            finished = self._finished.get(job_id)
            if finished is None:
                raise JobNotFoundError(job_id)
            return finished
        if state.task is not None:
            await state.task
        return self._result(state)

    async def run(
        self,
        items: Optional[Iterable[CatalogItem]] = None,
        options: Optional[BatchOptions] = None,
    ) -> BatchResult:
        job_id = await self.start(items, options)
        return await self.wait(job_id)

    async def get_status(self, job_id: str) -> BatchJob:
        state = self._runs.get(job_id)
        if state is not None:
            return state.job.model_copy(deep=True)
        return await self._load_job(job_id)

    async def pause(self, job_id: str) -> BatchJob:
        """Stop dispatching; in-flight tasks still finish and are recorded."""
        state = self._runs.get(job_id)
        job = state.job if state else await self._load_job(job_id)
        if job.status is not JobStatus.PROCESSING:
            raise InvalidJobStateError(job_id, job.status.value, "pause")
        if state is not None and state.running:
            async with state.lock:
                state.token.pause()
                job.status = JobStatus.PAUSED
                await self._checkpoint(state)
        else:
            job.status = JobStatus.PAUSED
            await self.repo.update_job(job)
        logger.info(f"Batch {job_id} paused at {job.processed_items}/{job.total_items}")
        return job.model_copy(deep=True)

    async def cancel(self, job_id: str) -> BatchJob:
        """Terminal stop. Results recorded so far are kept."""
        state = self._runs.get(job_id)
        job = state.job if state else await self._load_job(job_id)
        if job.status is JobStatus.CANCELLED:
            return job.model_copy(deep=True)
        if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            raise InvalidJobStateError(job_id, job.status.value, "cancel")
        if state is not None and state.running:
            async with state.lock:
                state.token.cancel()
                job.mark_cancelled()
                await self._checkpoint(state)
        else:
            job.mark_cancelled()
            await self.repo.update_job(job)
            if state is not None:
                self._retire(state)
        logger.info(f"Batch {job_id} cancelled at {job.processed_items}/{job.total_items}")
        return job.model_copy(deep=True)

    async def resume(
        self,
        job_id: str,
        items: Optional[Iterable[CatalogItem]] = None,
        options: Optional[BatchOptions] = None,
    ) -> BatchResult:
        """
        Continue a PAUSED job, or a PROCESSING job whose run died, from its
        last checkpoint. Runs until the job completes or is stopped again.
        """
        previous = self._runs.get(job_id)
        if previous is not None and previous.running:
            if previous.job.status is JobStatus.PROCESSING:
                raise InvalidJobStateError(job_id, previous.job.status.value, "resume")
            # Paused but still draining in-flight tasks
            await previous.task

        job = await self._load_job(job_id)
        if not job.is_resumable:
            raise InvalidJobStateError(job_id, job.status.value, "resume")

        items = list(items) if items is not None else await self.catalog.list_items()
        if options is None:
            saved = job.checkpoint_data.get("options")
            options = BatchOptions(**saved) if saved else BatchOptions.from_settings(self.settings)

        start_index = job.processed_items
        if job.last_processed_item_code is not None:
            codes = [item.item_code for item in items]
            if job.last_processed_item_code in codes:
                start_index = codes.index(job.last_processed_item_code) + 1
            else:
                logger.warning(
                    f"Batch {job_id}: last processed item {job.last_processed_item_code} "
                    f"not in catalog; resuming at offset {start_index}"
                )
        start_index = min(start_index, len(items))

        job.status = JobStatus.PROCESSING
        job.total_items = len(items)
        job.end_time = None
        state = _JobRun(job=job, items=items, options=options, resumed_from=start_index)
        state.restore(job.checkpoint_data)
        state.watermark = start_index - 1
        self._runs[job_id] = state

        queue = await self._recover(state, start_index)
        await self.repo.update_job(job)
        logger.info(
            f"Batch {job_id} resuming at {start_index}/{len(items)}: "
            f"{len(queue)} items to process"
        )
        state.task = asyncio.create_task(self._run(state, queue))
        return await self.wait(job_id)

    async def retry_failures(self, job_id: str) -> RetryReport:
        """Re-run the retryable, unresolved failures of a finished job."""
        state = self._runs.get(job_id)
        if state is not None and state.running:
            raise InvalidJobStateError(job_id, state.job.status.value, "retry failures of")
        job = await self._load_job(job_id)
        saved = job.checkpoint_data.get("options")
        options = BatchOptions(**saved) if saved else BatchOptions.from_settings(self.settings)

        report = RetryReport(job_id=job_id)
        for failure in await self.repo.list_failures(job_id, unresolved_only=True):
            if not failure.can_retry(options.max_retries):
                report.still_failing.append(failure.item_code)
                continue
            item = await self.catalog.get_item(failure.item_code)
            if item is None:
                report.still_failing.append(failure.item_code)
                continue
            report.attempted += 1
            failure.retry_count += 1
            try:
                entry = await asyncio.wait_for(
                    self.service.process_item(item, job_id, options.include_hierarchy),
                    options.task_timeout_seconds,
                )
                await self.repo.save_entry(entry)
                failure.mark_resolved()
                report.resolved.append(failure.item_code)
            except Exception as e:
                failure.error_type = determine_error_type(e)
                failure.error_message = _error_message(e)
                failure.stack_trace = traceback.format_exc()
                report.still_failing.append(failure.item_code)
                logger.warning(f"Retry of {failure.item_code} failed: {failure.short_message}")
            await self.repo.update_failure(failure)

        if report.resolved:
            self._apply_resolved(job, report.resolved)
            await self.repo.update_job(job)
        logger.info(
            f"Batch {job_id} retry: {len(report.resolved)} resolved, "
            f"{len(report.still_failing)} still failing"
        )
        return report

    # ----------------------------------------------------------
    # Dispatch loop
    # ----------------------------------------------------------

    async def _run(self, state: _JobRun, queue: list[tuple[int, CatalogItem]]) -> None:
        pending: set[asyncio.Task] = set()
        position = 0
        try:
            while True:
                await self._sync_external_status(state)
                while (
                    not state.token.is_stopped
                    and len(pending) < state.options.pool_size
                    and position < len(queue)
                ):
                    index, item = queue[position]
                    pending.add(asyncio.create_task(self._process(state, index, item)))
                    position += 1
                if not pending:
                    break
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    result = task.result()
                    if result is None:
                        continue
                    async with state.lock:
                        state.record(result)
                        state.processed_this_run += 1
                        state.since_checkpoint += 1
                        if state.since_checkpoint >= state.options.batch_size:
                            await self._checkpoint(state)

            async with state.lock:
                if state.token.reason is JobStatus.CANCELLED:
                    if state.job.status is not JobStatus.CANCELLED:
                        state.job.mark_cancelled()
                elif state.token.reason is JobStatus.PAUSED:
                    state.job.status = JobStatus.PAUSED
                else:
                    state.job.mark_completed()
                await self._checkpoint(state)
            logger.info(
                f"Batch {state.job.id} {state.job.status.value}: "
                f"{state.job.processed_items}/{state.job.total_items} processed, "
                f"{state.job.success_count} succeeded, {state.job.failure_count} failed "
                f"in {state.job.duration_seconds:.1f}s"
            )

        except asyncio.CancelledError:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Batch {state.job.id} run interrupted; resumable from last checkpoint")
            raise
        except Exception as e:
            logger.exception(f"Batch {state.job.id} failed")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            state.job.mark_failed(f"{type(e).__name__}: {e}")
            await self.repo.update_job(state.job)
            raise CriticalBatchFailure(state.job.id, str(e)) from e
        finally:
            if state.job.is_terminal:
                self._retire(state)

    async def _process(self, state: _JobRun, index: int, item: CatalogItem) -> Optional[_ItemResult]:
        if state.token.is_stopped:
            return None
        code = item.item_code
        job_id = state.job.id
        options = state.options

        if code in await self.repo.find_processed_codes([code]):
            logger.debug(f"Skipping {code}: already in knowledge base")
            return _ItemResult(index, code, ItemOutcome.SKIPPED)

        attempt = 0
        while True:
            try:
                entry = await self._process_with_timeout(item, job_id, options)
                await self.repo.save_entry(entry)
                return _ItemResult(index, code, ItemOutcome.SUCCESS,
                                   is_cylinder=entry.is_hydraulic_cylinder)
            except TaskTimeout as e:
                logger.warning(str(e))
                return _ItemResult(index, code, ItemOutcome.TIMEOUT, ErrorType.TIMEOUT, str(e))
            except Exception as e:
                error_type = determine_error_type(e)
                if error_type.is_transient and attempt < options.max_retries:
                    attempt += 1
                    logger.info(f"Retrying {code} ({attempt}/{options.max_retries}) after {error_type.value}: {e}")
                    continue
                failure = ProcessingFailure(
                    job_id=job_id,
                    item_code=code,
                    error_type=error_type,
                    error_message=_error_message(e),
                    stack_trace=traceback.format_exc(),
                    retry_count=attempt,
                )
                await self.repo.save_failure(failure)
                logger.warning(f"Failed {code} [{error_type.value}]: {failure.short_message}")
                return _ItemResult(index, code, ItemOutcome.FAILED, error_type, failure.error_message)

    async def _process_with_timeout(self, item: CatalogItem, job_id: str,
                                    options: BatchOptions) -> KnowledgeBaseEntry:
        try:
            return await asyncio.wait_for(
                self.service.process_item(item, job_id, options.include_hierarchy),
                options.task_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise TaskTimeout(item.item_code, options.task_timeout_seconds) from e

    # ----------------------------------------------------------
    # Checkpoints & recovery
    # ----------------------------------------------------------

    async def _checkpoint(self, state: _JobRun) -> None:
        """Persist counters and outcome lists. Caller holds ``state.lock``."""
        state.job.checkpoint_data = state.checkpoint_data()
        await self.repo.update_job(state.job)
        state.since_checkpoint = 0
        logger.info(
            f"Batch {state.job.id} checkpoint: {state.job.processed_items}/{state.job.total_items} "
            f"({state.job.progress_percentage:.1f}%)"
        )

    async def _sync_external_status(self, state: _JobRun) -> None:
        """Adopt a PAUSED/CANCELLED status written by another process."""
        if state.token.is_stopped:
            return
        persisted = await self.repo.get_job(state.job.id)
        if persisted is None or persisted.status is state.job.status:
            return
        if persisted.status is JobStatus.PAUSED:
            state.token.pause()
            state.job.status = JobStatus.PAUSED
        elif persisted.status is JobStatus.CANCELLED:
            state.token.cancel()
            state.job.mark_cancelled()
        else:
            return
        logger.info(f"Batch {state.job.id} observed external {persisted.status.value}")

    async def _recover(self, state: _JobRun, start_index: int) -> list[tuple[int, CatalogItem]]:
        """Fold durable outcomes past the watermark into ``state``; return what still needs running."""
        job_id = state.job.id
        entries = {e.item_code: e for e in await self.repo.list_entries(job_id)}
        failures = {f.item_code: f for f in await self.repo.list_failures(job_id)}
        known = state.known_codes()

        queue: list[tuple[int, CatalogItem]] = []
        recovered = 0
        for index in range(start_index, len(state.items)):
            item = state.items[index]
            code = item.item_code
            if code in known:
                state.mark_complete(index)
            elif code in entries:
                state.record(_ItemResult(index, code, ItemOutcome.SUCCESS,
                                         is_cylinder=entries[code].is_hydraulic_cylinder))
                recovered += 1
            elif code in failures:
                f = failures[code]
                state.record(_ItemResult(index, code, ItemOutcome.FAILED, f.error_type, f.error_message))
                recovered += 1
            else:
                queue.append((index, item))
        if recovered:
            logger.info(f"Batch {job_id}: recovered {recovered} outcomes recorded after the last checkpoint")
        state.job.update_progress(
            processed=state.processed,
            success=len(state.successful),
            failed=len(state.failed),
            skipped=len(state.skipped),
            timeouts=len(state.timed_out),
            elapsed_seconds=state.elapsed,
        )
        return queue

    def _apply_resolved(self, job: BatchJob, resolved: list[str]) -> None:
        data = job.checkpoint_data
        done = set(resolved)
        data["failed_items"] = [f for f in data.get("failed_items", []) if f["item_code"] not in done]
        data["successful_items"] = list(data.get("successful_items", [])) + resolved
        job.failure_count = len(data["failed_items"])
        job.success_count = len(data["successful_items"])

    async def _load_job(self, job_id: str) -> BatchJob:
        job = await self.repo.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    # ----------------------------------------------------------
    # Results
    # ----------------------------------------------------------

    def _result(self, state: _JobRun) -> BatchResult:
        job = state.job
        elapsed = state.elapsed
        processed = job.processed_items
        summary = (
            f"Batch {job.status.value.lower()}: {processed}/{job.total_items} items processed, "
            f"{job.success_count} succeeded, {job.failure_count} failed, "
            f"{job.skipped_count} skipped, {job.timeout_count} timed out "
            f"in {elapsed:.1f}s"
        )
        return BatchResult(
            job_id=job.id,
            status=job.status,
            total_items=job.total_items,
            processed_items=processed,
            success_count=job.success_count,
            failure_count=job.failure_count,
            skipped_count=job.skipped_count,
            timeout_count=job.timeout_count,
            successful_items=list(state.successful),
            failed_items=[dict(f) for f in state.failed],
            skipped_items=list(state.skipped),
            timed_out_items=list(state.timed_out),
            processing_time_seconds=round(elapsed, 3),
            average_time_per_item=job.average_time_per_item,
            success_rate=job.success_rate,
            hydraulic_cylinder_count=len(state.cylinders),
            resumed_from=state.resumed_from,
            processed_in_this_run=state.processed_this_run,
            summary=summary,
        )

    def _retire(self, state: _JobRun) -> None:
        """Drop a finished run, keeping only its result."""
        job_id = state.job.id
        self._finished.put(job_id, self._result(state))
        if self._runs.get(job_id) is state:
            del self._runs[job_id]
