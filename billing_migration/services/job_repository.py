"""
Job Repository

Storage abstraction for import jobs and their per-record results. The batch
orchestrator and the API routers only talk to a JobRepository, so the same
code runs against process memory (default) or PostgreSQL.

Implementations:
- InMemoryJobRepository: dict-backed, guarded by an asyncio.Lock, hands out
  deep copies so progress readers never see a half-applied chunk
- PostgresJobRepository: import_job / import_job_result tables (JSONB
  payloads) through the asyncpg pool

Invariants enforced here for every implementation:
- success_count + failure_count == processed_records after every chunk
- job status only moves forward (see ALLOWED_TRANSITIONS)
- error entries are capped at max_errors; the overflow is counted in
  errors_truncated
- deleting a job deletes its per-record results with it
"""

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from billing_migration.core.exceptions import (
    DuplicateJobError,
    InvalidJobTransitionError,
    JobNotFoundError,
)
from billing_migration.core.timeutils import utc_now
from billing_migration.models.enums import JobKind, JobStatus
from billing_migration.models.schemas import ImportJob, JobError, TokenMapping


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    JobStatus.STARTED: {JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}

INTERRUPTED_STATUSES = (JobStatus.STARTED, JobStatus.PROCESSING)


@dataclass
class RecordOutcome:
    """Result of running one record through an engine inside a batch."""
    record_index: int
    record_id: str
    success: bool
    outcome_key: Optional[str] = None
    risk_band: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


def check_transition(job: ImportJob, new_status: JobStatus) -> None:
    if new_status not in ALLOWED_TRANSITIONS[job.status]:
        raise InvalidJobTransitionError(
            f"Cannot move batch {job.batch_id} from {job.status.value} to {new_status.value}"
        )


def apply_transition(job: ImportJob, new_status: JobStatus) -> ImportJob:
    check_transition(job, new_status)
    job.status = new_status
    if new_status.is_terminal:
        job.completed_at = utc_now()
    return job


def apply_outcomes(job: ImportJob, outcomes: Sequence[RecordOutcome], max_errors: int) -> ImportJob:
    """
    Fold a chunk of record outcomes into the job counters in the given order.

    Mutates and returns ``job``.
    """
    if job.status != JobStatus.PROCESSING:
        raise InvalidJobTransitionError(
            f"Batch {job.batch_id} is {job.status.value}; chunk results cannot be applied"
        )

    for outcome in outcomes:
        job.processed_records += 1

        if outcome.success:
            job.success_count += 1
        else:
            job.failure_count += 1
            if len(job.errors) < max_errors:
                job.errors.append(JobError(
                    record_index=outcome.record_index,
                    record_id=outcome.record_id,
                    error_message=outcome.error_message or "Unknown error",
                    error_code=outcome.error_code or "UNKNOWN_ERROR",
                ))
            else:
                job.errors_truncated += 1

        if outcome.outcome_key:
            job.outcome_counts[outcome.outcome_key] = job.outcome_counts.get(outcome.outcome_key, 0) + 1

        if outcome.risk_band:
            job.risk_distribution[outcome.risk_band] = job.risk_distribution.get(outcome.risk_band, 0) + 1

    return job


def _mapping_matches(payload: Dict[str, Any], vault_id: str) -> bool:
    return bool(vault_id) and vault_id in (payload.get("new_vault_id"), payload.get("legacy_vault_id"))


# =============================================================================
# Interface
# =============================================================================

class JobRepository(ABC):
    """Async storage interface for import jobs and per-record results."""

    def __init__(self, max_errors: int = 100):
        self.max_errors = max_errors

    @abstractmethod
    async def create_job(self, job: ImportJob) -> ImportJob:
        ...

    @abstractmethod
    async def get_job(self, batch_id: str) -> ImportJob:
        ...

    @abstractmethod
    async def list_jobs(self, kind: Optional[JobKind] = None) -> List[ImportJob]:
        ...

    @abstractmethod
    async def transition(self, batch_id: str, status: JobStatus) -> ImportJob:
        ...

    @abstractmethod
    async def apply_chunk(self, batch_id: str, outcomes: Sequence[RecordOutcome]) -> ImportJob:
        ...

    @abstractmethod
    async def set_summary(self, batch_id: str, summary: Dict[str, Any]) -> ImportJob:
        ...

    @abstractmethod
    async def request_cancel(self, batch_id: str) -> ImportJob:
        ...

    @abstractmethod
    async def fail_interrupted_jobs(self) -> List[str]:
        """Mark jobs left STARTED or PROCESSING by a previous process FAILED."""
        ...

    @abstractmethod
    async def delete_job(self, batch_id: str) -> None:
        ...

    @abstractmethod
    async def append_results(
        self,
        kind: JobKind,
        results: Sequence[Dict[str, Any]],
        batch_id: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    async def list_results(self, kind: JobKind, batch_id: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def find_token_mapping(self, vault_id: str) -> Optional[TokenMapping]:
        ...


# =============================================================================
# In-Memory Implementation
# =============================================================================

class InMemoryJobRepository(JobRepository):
    """
    Process-local repository.

    Jobs are lost on restart. All reads return deep copies taken under the
    lock, so a progress poll never observes a partially applied chunk.

    Results stored without a batch (ad-hoc classifications) are kept per kind
    in a ring of max_unbatched_results entries; the oldest are dropped first.
    """

    def __init__(self, max_errors: int = 100, max_unbatched_results: int = 10000):
        super().__init__(max_errors)
        self.max_unbatched_results = max_unbatched_results
        self._lock = asyncio.Lock()
        self._jobs: Dict[str, ImportJob] = {}
        self._results: List[Dict[str, Any]] = []
        self._unbatched: Dict[JobKind, deque] = {}

    def _require(self, batch_id: str) -> ImportJob:
        job = self._jobs.get(batch_id)
        if job is None:
            raise JobNotFoundError(batch_id)
        return job

    async def create_job(self, job: ImportJob) -> ImportJob:
        async with self._lock:
            if job.batch_id in self._jobs:
                raise DuplicateJobError(job.batch_id)
            self._jobs[job.batch_id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    async def get_job(self, batch_id: str) -> ImportJob:
        async with self._lock:
            return self._require(batch_id).model_copy(deep=True)

    async def list_jobs(self, kind: Optional[JobKind] = None) -> List[ImportJob]:
        async with self._lock:
            return [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if kind is None or job.kind == kind
            ]

    async def transition(self, batch_id: str, status: JobStatus) -> ImportJob:
        async with self._lock:
            job = apply_transition(self._require(batch_id), status)
            return job.model_copy(deep=True)

    async def apply_chunk(self, batch_id: str, outcomes: Sequence[RecordOutcome]) -> ImportJob:
        async with self._lock:
            job = apply_outcomes(self._require(batch_id), outcomes, self.max_errors)
            return job.model_copy(deep=True)

    async def set_summary(self, batch_id: str, summary: Dict[str, Any]) -> ImportJob:
        async with self._lock:
            job = self._require(batch_id)
            job.summary = copy.deepcopy(summary)
            return job.model_copy(deep=True)

    async def request_cancel(self, batch_id: str) -> ImportJob:
        async with self._lock:
            job = self._require(batch_id)
            if job.status.is_terminal:
                raise InvalidJobTransitionError(
                    f"Batch {batch_id} already finished with status {job.status.value}"
                )
            job.cancel_requested = True
            return job.model_copy(deep=True)

    async def delete_job(self, batch_id: str) -> None:
        async with self._lock:
            job = self._require(batch_id)
            if not job.status.is_terminal:
                raise InvalidJobTransitionError(
                    f"Batch {batch_id} is still {job.status.value}; only finished batches can be deleted"
                )
            del self._jobs[batch_id]
            self._results = [row for row in self._results if row["batch_id"] != batch_id]

    async def fail_interrupted_jobs(self) -> List[str]:
        async with self._lock:
            interrupted = [job for job in self._jobs.values() if job.status in INTERRUPTED_STATUSES]
            for job in interrupted:
                apply_transition(job, JobStatus.FAILED)
            return [job.batch_id for job in interrupted]

    async def append_results(
        self,
        kind: JobKind,
        results: Sequence[Dict[str, Any]],
        batch_id: Optional[str] = None,
    ) -> None:
        async with self._lock:
            if batch_id is None:
                ring = self._unbatched.setdefault(kind, deque(maxlen=self.max_unbatched_results))
                ring.extend(copy.deepcopy(payload) for payload in results)
                return
            for payload in results:
                self._results.append({
                    "kind": kind,
                    "batch_id": batch_id,
                    "payload": copy.deepcopy(payload),
                })

    async def list_results(self, kind: JobKind, batch_id: Optional[str] = None) -> List[Dict[str, Any]]:
        async with self._lock:
            rows = [
                copy.deepcopy(row["payload"])
                for row in self._results
                if row["kind"] == kind and (batch_id is None or row["batch_id"] == batch_id)
            ]
            if batch_id is None:
                rows.extend(copy.deepcopy(payload) for payload in self._unbatched.get(kind, ()))
            return rows

    async def find_token_mapping(self, vault_id: str) -> Optional[TokenMapping]:
        async with self._lock:
            for row in reversed(self._results):
                if row["kind"] == JobKind.VAULT_MIGRATION and _mapping_matches(row["payload"], vault_id):
                    return TokenMapping.model_validate(row["payload"])
        return None


# =============================================================================
# PostgreSQL Implementation
# =============================================================================

class PostgresJobRepository(JobRepository):
    """
    Durable repository on the asyncpg pool.

    Job documents live in import_job.payload; chunk application locks the row
    with SELECT ... FOR UPDATE inside a transaction so concurrent progress
    readers only ever see committed chunks.
    """

    def __init__(self, pool, max_errors: int = 100):
        super().__init__(max_errors)
        self.pool = pool

    @staticmethod
    def _row_to_job(row) -> ImportJob:
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return ImportJob.model_validate(payload)

    @staticmethod
    def _payload_json(job: ImportJob) -> str:
        return json.dumps(job.model_dump(mode="json"))

    async def _write(self, conn, job: ImportJob) -> None:
        await conn.execute(
            """
            UPDATE import_job
            SET status = $2, payload = $3::jsonb, completed_at = $4
            WHERE batch_id = $1
            """,
            job.batch_id,
            job.status.value,
            self._payload_json(job),
            job.completed_at,
        )

    async def _locked(self, conn, batch_id: str) -> ImportJob:
        row = await conn.fetchrow(
            "SELECT payload FROM import_job WHERE batch_id = $1 FOR UPDATE",
            batch_id,
        )
        if row is None:
            raise JobNotFoundError(batch_id)
        return self._row_to_job(row)

    async def create_job(self, job: ImportJob) -> ImportJob:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                INSERT INTO import_job (batch_id, kind, status, payload, started_at, completed_at)
                VALUES ($1, $2, $3, $4::jsonb, $5, $6)
                ON CONFLICT (batch_id) DO NOTHING
                """,
                job.batch_id,
                job.kind.value,
                job.status.value,
                self._payload_json(job),
                job.started_at,
                job.completed_at,
            )
        # asyncpg returns the command tag, e.g. 'INSERT 0 1'
        if result.endswith(" 0"):
            raise DuplicateJobError(job.batch_id)
        return job.model_copy(deep=True)

    async def get_job(self, batch_id: str) -> ImportJob:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT payload FROM import_job WHERE batch_id = $1",
                batch_id,
            )
        if row is None:
            raise JobNotFoundError(batch_id)
        return self._row_to_job(row)

    async def list_jobs(self, kind: Optional[JobKind] = None) -> List[ImportJob]:
        async with self.pool.acquire() as conn:
            if kind is None:
                rows = await conn.fetch("SELECT payload FROM import_job ORDER BY started_at")
            else:
                rows = await conn.fetch(
                    "SELECT payload FROM import_job WHERE kind = $1 ORDER BY started_at",
                    kind.value,
                )
        return [self._row_to_job(row) for row in rows]

    async def transition(self, batch_id: str, status: JobStatus) -> ImportJob:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                job = apply_transition(await self._locked(conn, batch_id), status)
                await self._write(conn, job)
        return job

    async def apply_chunk(self, batch_id: str, outcomes: Sequence[RecordOutcome]) -> ImportJob:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                job = apply_outcomes(await self._locked(conn, batch_id), outcomes, self.max_errors)
                await self._write(conn, job)
        return job

    async def set_summary(self, batch_id: str, summary: Dict[str, Any]) -> ImportJob:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                job = await self._locked(conn, batch_id)
                job.summary = summary
                await self._write(conn, job)
        return job

    async def request_cancel(self, batch_id: str) -> ImportJob:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                job = await self._locked(conn, batch_id)
                if job.status.is_terminal:
                    raise InvalidJobTransitionError(
                        f"Batch {batch_id} already finished with status {job.status.value}"
                    )
                job.cancel_requested = True
                await self._write(conn, job)
        return job

    async def delete_job(self, batch_id: str) -> None:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                job = await self._locked(conn, batch_id)
                if not job.status.is_terminal:
                    raise InvalidJobTransitionError(
                        f"Batch {batch_id} is still {job.status.value}; only finished batches can be deleted"
                    )
                await conn.execute("DELETE FROM import_job_result WHERE batch_id = $1", batch_id)
                await conn.execute("DELETE FROM import_job WHERE batch_id = $1", batch_id)

    async def fail_interrupted_jobs(self) -> List[str]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(
                    "SELECT payload FROM import_job WHERE status = ANY($1::text[]) FOR UPDATE",
                    [status.value for status in INTERRUPTED_STATUSES],
                )
                failed = []
                for row in rows:
                    job = apply_transition(self._row_to_job(row), JobStatus.FAILED)
                    await self._write(conn, job)
                    failed.append(job.batch_id)
        return failed

    async def append_results(
        self,
        kind: JobKind,
        results: Sequence[Dict[str, Any]],
        batch_id: Optional[str] = None,
    ) -> None:
        if not results:
            return
        records = [
            (
                kind.value,
                batch_id,
                payload.get("legacy_vault_id") or payload.get("transaction_id") or payload.get("client_id"),
                json.dumps(payload),
            )
            for payload in results
        ]
        async with self.pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO import_job_result (kind, batch_id, record_key, payload)
                VALUES ($1, $2, $3, $4::jsonb)
                """,
                records,
            )

    async def list_results(self, kind: JobKind, batch_id: Optional[str] = None) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            if batch_id is None:
                rows = await conn.fetch(
                    "SELECT payload FROM import_job_result WHERE kind = $1 ORDER BY id",
                    kind.value,
                )
            else:
                rows = await conn.fetch(
                    "SELECT payload FROM import_job_result WHERE kind = $1 AND batch_id = $2 ORDER BY id",
                    kind.value,
                    batch_id,
                )
        return [
            json.loads(row["payload"]) if isinstance(row["payload"], str) else row["payload"]
            for row in rows
        ]

    async def find_token_mapping(self, vault_id: str) -> Optional[TokenMapping]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT payload FROM import_job_result
                WHERE kind = $1
                  AND (payload->>'new_vault_id' = $2 OR payload->>'legacy_vault_id' = $2)
                ORDER BY id DESC
                LIMIT 1
                """,
                JobKind.VAULT_MIGRATION.value,
                vault_id,
            )
        if row is None:
            return None
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return TokenMapping.model_validate(payload)
