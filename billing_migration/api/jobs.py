"""
FastAPI router module for operator control of import jobs.

Implements:
- GET /jobs/{batch_id}: raw job snapshot with progress
- POST /jobs/{batch_id}/cancel: stop a running batch after its current chunk
- DELETE /jobs/{batch_id}: purge a finished job
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter

from billing_migration.api.common import to_http_exception
from billing_migration.core.dependencies import OrchestratorDep, RepositoryDep
from billing_migration.core.exceptions import MigrationError
from billing_migration.services.progress import compute_progress


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{batch_id}")
async def get_job(batch_id: str, repository: RepositoryDep) -> Dict[str, Any]:
    try:
        job = await repository.get_job(batch_id)
    except MigrationError as e:
        raise to_http_exception(e)
    return {
        "success": True,
        "job": job.model_dump(mode="json"),
        "progress": compute_progress(job).model_dump(mode="json"),
    }


@router.post("/{batch_id}/cancel")
async def cancel_job(batch_id: str, orchestrator: OrchestratorDep) -> Dict[str, Any]:
    try:
        job = await orchestrator.cancel(batch_id)
    except MigrationError as e:
        raise to_http_exception(e)
    return {
        "success": True,
        "message": f"Cancellation requested for batch {batch_id}",
        "status": job.status.value,
    }


@router.delete("/{batch_id}")
async def delete_job(batch_id: str, repository: RepositoryDep) -> Dict[str, Any]:
    try:
        await repository.delete_job(batch_id)
    except MigrationError as e:
        raise to_http_exception(e)
    logger.info("Import batch %s deleted", batch_id)
    return {"success": True, "message": f"Batch {batch_id} deleted"}
