"""
Batch Orchestrator

Runs import batches out-of-band after the HTTP request that started them has
returned. Each batch is an asyncio.Task registered together with a
CancellationToken so that operators can stop a run between chunks and the
application can cancel everything on shutdown.

Processing model:
- Records are sliced into chunks (size and inter-chunk delay per job kind)
- Records inside a chunk run concurrently, bounded by an asyncio.Semaphore
- Chunk outcomes are applied to the job in input order, atomically
- A failing record becomes an error entry; it never aborts the batch
- Anything failing outside per-record handling marks the job FAILED while
  keeping the counts already applied

Backpressure: once max_active_jobs batches are running, submit() refuses new
work with OrchestratorBusyError instead of queueing it.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from billing_migration.core.config import Settings, get_settings
from billing_migration.core.exceptions import (
    MigrationError,
    OrchestratorBusyError,
    RecordCountMismatchError,
)
from billing_migration.core.timeutils import utc_now
from billing_migration.models.enums import JobKind, JobStatus
from billing_migration.models.schemas import ImportJob
from billing_migration.services.batch_handlers import BatchHandler
from billing_migration.services.job_repository import JobRepository, RecordOutcome


logger = logging.getLogger(__name__)


Notifier = Callable[[ImportJob], Any]


class CancellationToken:
    """Cooperative stop signal checked by a running batch between chunks."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class BatchOrchestrator:
    def __init__(
        self,
        repository: JobRepository,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.repository = repository
        self.settings = settings or get_settings()
        self.notifier = notifier
        self._tasks: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[str, CancellationToken] = {}

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def chunk_config(self, kind: JobKind) -> Tuple[int, float]:
        """(chunk_size, delay_seconds) for a job kind."""
        s = self.settings
        if kind == JobKind.VAULT_MIGRATION:
            return s.vault_chunk_size, s.vault_chunk_delay_seconds
        if kind == JobKind.TRANSACTION_MIGRATION:
            return s.transaction_chunk_size, s.transaction_chunk_delay_seconds
        return s.client_chunk_size, s.client_chunk_delay_seconds

    @property
    def active_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def submit(
        self,
        kind: JobKind,
        batch_id: str,
        records: Sequence[Any],
        total_expected: int,
        handler: BatchHandler,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ImportJob:
        """
        Register a batch and start processing it in the background.

        Returns the job in STARTED state immediately; poll the repository for
        progress.

        Raises:
            RecordCountMismatchError: len(records) != total_expected (no job created)
            OrchestratorBusyError: max_active_jobs batches already running
            DuplicateJobError: batch_id already exists
        """
        if len(records) != total_expected:
            raise RecordCountMismatchError(total_expected, len(records), noun=handler.noun)

        if self.active_count >= self.settings.max_active_jobs:
            raise OrchestratorBusyError(
                f"{self.active_count} import batches already running; retry later"
            )

        job = await self.repository.create_job(ImportJob(
            batch_id=batch_id,
            kind=kind,
            total_records=len(records),
            metadata=metadata or {},
            started_at=utc_now(),
        ))

        token = CancellationToken()
        task = asyncio.create_task(
            self._run(kind, batch_id, list(records), handler, token),
            name=f"import-batch-{batch_id}",
        )
        self._tokens[batch_id] = token
        self._tasks[batch_id] = task
        task.add_done_callback(lambda done: self._forget(batch_id, done))

        logger.info("Submitted %s batch %s with %d records", kind.value, batch_id, len(records))
        return job

    def _forget(self, batch_id: str, task: asyncio.Task) -> None:
        # A purged batch id may already belong to a newer run
        if self._tasks.get(batch_id) is task:
            del self._tasks[batch_id]
            self._tokens.pop(batch_id, None)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _process_record(
        self,
        handler: BatchHandler,
        index: int,
        record: Any,
        semaphore: asyncio.Semaphore,
    ) -> RecordOutcome:
        async with semaphore:
            try:
                return await handler.handle(index, record)
            except Exception as exc:
                record_id = handler.record_id(record)
                logger.warning("Record %d (%s) failed: %s", index, record_id, exc)
                return RecordOutcome(
                    record_index=index,
                    record_id=record_id,
                    success=False,
                    error_message=str(exc),
                    error_code=getattr(exc, "code", "UNKNOWN_ERROR"),
                )

    async def _run(
        self,
        kind: JobKind,
        batch_id: str,
        records: Sequence[Any],
        handler: BatchHandler,
        token: CancellationToken,
    ) -> None:
        chunk_size, delay = self.chunk_config(kind)
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        total = len(records)

        try:
            await self.repository.transition(batch_id, JobStatus.PROCESSING)

            for start in range(0, total, chunk_size):
                if token.cancelled:
                    break

                chunk = records[start:start + chunk_size]
                outcomes = await asyncio.gather(*(
                    self._process_record(handler, start + offset, record, semaphore)
                    for offset, record in enumerate(chunk)
                ))

                job = await self.repository.apply_chunk(batch_id, outcomes)
                results = [o.result for o in outcomes if o.result is not None]
                if results:
                    await self.repository.append_results(kind, results, batch_id)

                logger.info("Processed %d/%d records", job.processed_records, total)

                # Another worker may have flagged the job through the repository
                if job.cancel_requested:
                    token.cancel()

                if delay > 0 and start + chunk_size < total and not token.cancelled:
                    await asyncio.sleep(delay)

            if token.cancelled:
                job = await self.repository.transition(batch_id, JobStatus.CANCELLED)
                logger.warning(
                    "Import batch %s cancelled after %d/%d records",
                    batch_id, job.processed_records, total
                )
            else:
                stored = await self.repository.list_results(kind, batch_id)
                await self.repository.set_summary(batch_id, handler.summarize(stored))
                job = await self.repository.transition(batch_id, JobStatus.COMPLETED)
                logger.info(
                    "Import batch %s completed: %d succeeded, %d failed",
                    batch_id, job.success_count, job.failure_count
                )

        except asyncio.CancelledError:
            logger.warning("Import batch %s interrupted by shutdown", batch_id)
            try:
                await self.repository.transition(batch_id, JobStatus.CANCELLED)
            except MigrationError:
                logger.exception("Could not mark batch %s cancelled", batch_id)
            raise

        except Exception:
            logger.exception("Import batch %s failed", batch_id)
            try:
                job = await self.repository.transition(batch_id, JobStatus.FAILED)
            except MigrationError:
                logger.exception("Could not mark batch %s failed", batch_id)
                return

        await self._notify(job)

    async def _notify(self, job: ImportJob) -> None:
        if self.notifier is None:
            return
        try:
            result = self.notifier(job)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Completion notification for batch %s failed", job.batch_id)

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    async def wait(self, batch_id: str) -> ImportJob:
        """Wait for a batch run to finish and return its final job state."""
        task = self._tasks.get(batch_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.repository.get_job(batch_id)

    async def cancel(self, batch_id: str) -> ImportJob:
        """
        Ask a running batch to stop after its current chunk.

        Raises:
            JobNotFoundError: Unknown batch
            InvalidJobTransitionError: Batch already finished
        """
        job = await self.repository.request_cancel(batch_id)
        token = self._tokens.get(batch_id)
        if token is not None:
            token.cancel()
        logger.info("Cancellation requested for batch %s", batch_id)
        return job

    async def shutdown(self) -> None:
        """
        Cancel every running batch task and wait for them to unwind.

        A task cancelled before its first step never runs its own cleanup, so
        any job still non-terminal afterwards is moved to CANCELLED here.
        """
        running = [(batch_id, task) for batch_id, task in self._tasks.items() if not task.done()]
        for _, task in running:
            task.cancel()
        if running:
            logger.info("Cancelling %d running import batches", len(running))
            await asyncio.gather(*(task for _, task in running), return_exceptions=True)

        for batch_id, task in running:
            if not task.cancelled():
                continue
            try:
                job = await self.repository.get_job(batch_id)
                if not job.status.is_terminal:
                    await self.repository.transition(batch_id, JobStatus.CANCELLED)
                    logger.warning("Import batch %s cancelled before it started", batch_id)
            except MigrationError:
                logger.exception("Could not mark batch %s cancelled", batch_id)

        self._tasks.clear()
        self._tokens.clear()
