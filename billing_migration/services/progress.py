"""
Progress reporting for import jobs.

Turns ImportJob snapshots into progress views with a linear ETA, and builds
the global active/completed summary shown by the import status endpoint.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from billing_migration.core.timeutils import ensure_utc, utc_now
from billing_migration.models.enums import JobStatus
from billing_migration.models.schemas import ImportJob, JobProgress


RECENT_COMPLETED_LIMIT = 10


def completion_percentage(processed: int, total: int) -> int:
    if total <= 0:
        return 100
    return min(100, round(processed / total * 100))


def format_time_remaining(seconds: Optional[float], processed: int, is_terminal: bool) -> str:
    """Human ETA: 'Calculating...', 'Less than 1 minute', 'N minutes', 'Hh Mm', 'Complete'."""
    if is_terminal:
        return "Complete"
    if processed == 0 or seconds is None:
        return "Calculating..."

    minutes = seconds / 60
    if minutes < 1:
        return "Less than 1 minute"
    if minutes < 60:
        return f"{round(minutes)} minutes"

    hours = int(minutes // 60)
    return f"{hours}h {int(minutes % 60)}m"


def compute_progress(job: ImportJob, now: Optional[datetime] = None) -> JobProgress:
    """
    Point-in-time progress of a job.

    ETA is linear: remaining records divided by the observed throughput. It is
    None before the first record completes and once the job is terminal.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    is_terminal = job.status.is_terminal
    end = ensure_utc(job.completed_at) if job.completed_at is not None else now
    elapsed = max(0.0, (end - ensure_utc(job.started_at)).total_seconds())

    records_per_second = None
    if job.processed_records > 0 and elapsed > 0:
        records_per_second = job.processed_records / elapsed

    eta_seconds = None
    if not is_terminal and records_per_second:
        remaining = max(0, job.total_records - job.processed_records)
        eta_seconds = remaining / records_per_second

    return JobProgress(
        batch_id=job.batch_id,
        kind=job.kind,
        status=job.status,
        total_records=job.total_records,
        processed_records=job.processed_records,
        success_count=job.success_count,
        failure_count=job.failure_count,
        completion_percentage=completion_percentage(job.processed_records, job.total_records),
        elapsed_seconds=round(elapsed, 3),
        records_per_second=round(records_per_second, 3) if records_per_second else None,
        estimated_seconds_remaining=round(eta_seconds, 1) if eta_seconds is not None else None,
        estimated_time_remaining=format_time_remaining(eta_seconds, job.processed_records, is_terminal),
        outcome_counts=dict(job.outcome_counts),
        risk_distribution=dict(job.risk_distribution),
        errors=list(job.errors),
        errors_truncated=job.errors_truncated,
        summary=job.summary,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


def summarize_registry(
    jobs: Sequence[ImportJob],
    now: Optional[datetime] = None,
    completed_limit: int = RECENT_COMPLETED_LIMIT,
) -> Dict[str, Any]:
    """Active jobs, the most recently finished jobs, and totals across all jobs."""
    active: List[ImportJob] = [job for job in jobs if not job.status.is_terminal]
    finished: List[ImportJob] = sorted(
        (job for job in jobs if job.status.is_terminal),
        key=lambda job: job.completed_at or job.started_at,
        reverse=True,
    )

    return {
        "active_imports": [compute_progress(job, now) for job in active],
        "completed_imports": [compute_progress(job, now) for job in finished[:completed_limit]],
        "totals": {
            "total_jobs": len(jobs),
            "active_jobs": len(active),
            "completed_jobs": sum(1 for job in finished if job.status == JobStatus.COMPLETED),
            "failed_jobs": sum(1 for job in finished if job.status == JobStatus.FAILED),
            "cancelled_jobs": sum(1 for job in finished if job.status == JobStatus.CANCELLED),
            "records_processed": sum(job.processed_records for job in jobs),
            "records_succeeded": sum(job.success_count for job in jobs),
            "records_failed": sum(job.failure_count for job in jobs),
        },
    }
