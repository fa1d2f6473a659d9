"""
FastAPI router module for transaction log migration.

Implements:
- POST /transaction-migration/start: start a transaction log batch
- GET /transaction-migration/progress/{batch_id}: counts and risk distribution
- GET /transaction-migration/stats: aggregate processed transaction stats
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from billing_migration.api.common import load_job, to_http_exception
from billing_migration.core.dependencies import OrchestratorDep, RepositoryDep, SettingsDep
from billing_migration.core.exceptions import MigrationError
from billing_migration.models.enums import JobKind
from billing_migration.models.schemas import (
    BatchStartResponse,
    JobProgress,
    ProcessedTransaction,
    TransactionLogMigrationRequest,
)
from billing_migration.services.batch_handlers import TransactionMigrationHandler
from billing_migration.services.progress import compute_progress
from billing_migration.services.transaction_processing import (
    TransactionLogProcessor,
    summarize_processed_transactions,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/start", response_model=BatchStartResponse)
async def start_transaction_migration(
    request: TransactionLogMigrationRequest,
    orchestrator: OrchestratorDep,
    settings: SettingsDep,
) -> BatchStartResponse:
    try:
        processor = TransactionLogProcessor(settings=settings)
        job = await orchestrator.submit(
            JobKind.TRANSACTION_MIGRATION,
            request.import_batch_id,
            request.transactions,
            request.total_expected,
            TransactionMigrationHandler(processor),
            metadata={
                "source_system": request.source_system,
                "migration_type": request.migration_type.value,
                "date_range": request.date_range.model_dump(),
            },
        )
        return BatchStartResponse(
            message=f"Transaction log migration started for {job.total_records} transactions",
            batch_id=job.batch_id,
            date_range=request.date_range,
            progress_endpoint=f"/transaction-migration/progress/{job.batch_id}",
        )
    except MigrationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception(f"Error starting transaction migration {request.import_batch_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to start transaction migration: {str(e)}"
        )


@router.get("/progress/{batch_id}", response_model=JobProgress)
async def transaction_migration_progress(batch_id: str, repository: RepositoryDep) -> JobProgress:
    try:
        job = await load_job(repository, batch_id, JobKind.TRANSACTION_MIGRATION)
        return compute_progress(job)
    except MigrationError as e:
        raise to_http_exception(e)


@router.get("/stats")
async def transaction_migration_stats(repository: RepositoryDep) -> Dict[str, Any]:
    try:
        stored = await repository.list_results(JobKind.TRANSACTION_MIGRATION)
        processed = [ProcessedTransaction.model_validate(row) for row in stored]
        return {"success": True, "stats": summarize_processed_transactions(processed)}
    except Exception as e:
        logger.exception("Error computing transaction migration stats")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute transaction migration stats: {str(e)}"
        )
