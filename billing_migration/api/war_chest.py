"""
FastAPI router module for War Chest client imports.

Implements:
- POST /war-chest-import/start: start a client import batch
- GET /war-chest-import/progress/{batch_id}: job progress
- GET /war-chest-import/status: active imports plus the last 10 finished
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query

from billing_migration.api.common import load_job, to_http_exception
from billing_migration.core.dependencies import OrchestratorDep, RepositoryDep
from billing_migration.core.exceptions import MigrationError
from billing_migration.models.enums import JobKind
from billing_migration.models.schemas import BatchStartResponse, JobProgress, WarChestImportRequest
from billing_migration.services.batch_handlers import WarChestImportHandler
from billing_migration.services.progress import compute_progress, summarize_registry


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/start", response_model=BatchStartResponse)
async def start_war_chest_import(
    request: WarChestImportRequest,
    orchestrator: OrchestratorDep,
) -> BatchStartResponse:
    try:
        job = await orchestrator.submit(
            JobKind.WAR_CHEST_IMPORT,
            request.import_batch_id,
            request.clients,
            request.total_expected_count,
            WarChestImportHandler(),
            metadata={
                "vertical_name": request.vertical_name,
                "import_started_by": request.import_started_by,
            },
        )
        return BatchStartResponse(
            message=f"{request.vertical_name} import started for {job.total_records} clients",
            batch_id=job.batch_id,
            progress_endpoint=f"/war-chest-import/progress/{job.batch_id}",
        )
    except MigrationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception(f"Error starting War Chest import {request.import_batch_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to start client import: {str(e)}"
        )


@router.get("/progress/{batch_id}", response_model=JobProgress)
async def war_chest_import_progress(batch_id: str, repository: RepositoryDep) -> JobProgress:
    try:
        job = await load_job(repository, batch_id, JobKind.WAR_CHEST_IMPORT)
        return compute_progress(job)
    except MigrationError as e:
        raise to_http_exception(e)


@router.get("/status")
async def import_status(
    repository: RepositoryDep,
    kind: Optional[JobKind] = Query(default=None, description="Only jobs of this kind"),
) -> Dict[str, Any]:
    try:
        jobs = await repository.list_jobs(kind)
        summary = summarize_registry(jobs)
        return {
            "success": True,
            "active_imports": [p.model_dump(mode="json") for p in summary["active_imports"]],
            "completed_imports": [p.model_dump(mode="json") for p in summary["completed_imports"]],
            "totals": summary["totals"],
        }
    except Exception as e:
        logger.exception("Error building import status")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to build import status: {str(e)}"
        )
