"""
FastAPI dependency injection module for the billing migration backend.

The job repository and the batch orchestrator are built once in the
application lifespan and stored on ``app.state``; endpoint handlers receive
them through the dependencies below, so tests can swap either one with
``app.dependency_overrides``.

Key Dependencies Provided:
- build_job_repository: Build the configured JobRepository (memory or postgres)
- get_settings_dependency: Returns the cached Settings singleton
- get_job_repository / get_orchestrator: Read the lifespan-built instances
- SettingsDep, RepositoryDep, OrchestratorDep: Annotated aliases for endpoints

Usage Examples:
    @router.get("/progress/{batch_id}")
    async def get_progress(batch_id: str, repository: RepositoryDep):
        job = await repository.get_job(batch_id)
        ...
"""

import logging
from typing import Annotated

from fastapi import Depends, Request

from billing_migration.core.config import Settings, get_settings
from billing_migration.core.database import ensure_schema, init_db
from billing_migration.services.job_repository import (
    InMemoryJobRepository,
    JobRepository,
    PostgresJobRepository,
)
from billing_migration.services.orchestrator import BatchOrchestrator


logger = logging.getLogger(__name__)


# =============================================================================
# Construction
# =============================================================================

async def build_job_repository(settings: Settings) -> JobRepository:
    """
    Build the JobRepository selected by JOB_REPOSITORY_BACKEND.

    The postgres backend initializes the asyncpg pool, creates the job
    tables if they are missing and fails any job a previous process left
    STARTED or PROCESSING, since no task in this process will finish it.

    Raises:
        RuntimeError: postgres backend selected without DATABASE_URL.
    """
    if settings.job_repository_backend == 'postgres':
        pool = await init_db()
        await ensure_schema()
        repository = PostgresJobRepository(pool, max_errors=settings.max_job_errors)
        interrupted = await repository.fail_interrupted_jobs()
        if interrupted:
            logger.warning(
                "Marked %d interrupted import batches FAILED: %s",
                len(interrupted), ", ".join(interrupted)
            )
        return repository

    return InMemoryJobRepository(
        max_errors=settings.max_job_errors,
        max_unbatched_results=settings.max_unbatched_results,
    )


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Note:
        This is a thin wrapper around get_settings() to enable FastAPI's
        dependency override mechanism for testing:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


# =============================================================================
# Job Infrastructure Dependencies
# =============================================================================

def get_job_repository(request: Request) -> JobRepository:
    return request.app.state.job_repository


def get_orchestrator(request: Request) -> BatchOrchestrator:
    return request.app.state.orchestrator


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

# Usage: async def endpoint(repository: RepositoryDep)
RepositoryDep = Annotated[JobRepository, Depends(get_job_repository)]

# Usage: async def endpoint(orchestrator: OrchestratorDep)
OrchestratorDep = Annotated[BatchOrchestrator, Depends(get_orchestrator)]
