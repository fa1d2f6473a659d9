"""
Helpers shared by the API routers: domain error to HTTP mapping and
kind-checked job lookup.
"""

from typing import Optional

from fastapi import HTTPException

from billing_migration.core.exceptions import (
    DuplicateJobError,
    InvalidJobTransitionError,
    JobNotFoundError,
    MigrationError,
    OrchestratorBusyError,
    RecordCountMismatchError,
)
from billing_migration.models.enums import JobKind
from billing_migration.models.schemas import ImportJob
from billing_migration.services.job_repository import JobRepository


STATUS_CODES = {
    RecordCountMismatchError: 400,
    JobNotFoundError: 404,
    DuplicateJobError: 409,
    InvalidJobTransitionError: 409,
    OrchestratorBusyError: 429,
}


def to_http_exception(exc: MigrationError) -> HTTPException:
    status_code = next(
        (code for error_type, code in STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    return HTTPException(
        status_code=status_code,
        detail={"success": False, "message": exc.message, "code": exc.code, "errors": [exc.message]},
    )


async def load_job(
    repository: JobRepository,
    batch_id: str,
    kind: Optional[JobKind] = None,
) -> ImportJob:
    """Fetch a job, treating a job of another kind as not found."""
    job = await repository.get_job(batch_id)
    if kind is not None and job.kind != kind:
        raise JobNotFoundError(batch_id)
    return job
