"""
FastAPI router module for legacy NMI vault migration.

Implements:
- POST /nmi-legacy/migrate: start a vault migration batch (returns immediately)
- GET /nmi-legacy/progress/{batch_id}: counts, percentage, ETA, outcomes, risk
- POST /nmi-legacy/validate-tokens: per-id validity from stored mappings
- GET /nmi-legacy/stats: aggregate token mapping stats
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from billing_migration.api.common import load_job, to_http_exception
from billing_migration.core.dependencies import OrchestratorDep, RepositoryDep, SettingsDep
from billing_migration.core.exceptions import MigrationError
from billing_migration.models.enums import JobKind
from billing_migration.models.schemas import (
    BatchStartResponse,
    JobProgress,
    LegacyVaultMigrationRequest,
    TokenMapping,
    VaultTokenValidation,
    VaultTokenValidationRequest,
)
from billing_migration.services.batch_handlers import VaultMigrationHandler
from billing_migration.services.progress import compute_progress
from billing_migration.services.vault_migration import (
    VaultMigrationEngine,
    summarize_token_mappings,
    validate_vault_tokens,
)


logger = logging.getLogger(__name__)

router = APIRouter()


class TokenValidationResponse(BaseModel):
    success: bool = True
    validations: List[VaultTokenValidation]
    valid_count: int
    invalid_count: int


@router.post("/migrate", response_model=BatchStartResponse)
async def start_vault_migration(
    request: LegacyVaultMigrationRequest,
    orchestrator: OrchestratorDep,
    settings: SettingsDep,
) -> BatchStartResponse:
    try:
        engine = VaultMigrationEngine(validation_mode=request.validation_mode, settings=settings)
        job = await orchestrator.submit(
            JobKind.VAULT_MIGRATION,
            request.import_batch_id,
            request.legacy_vault_records,
            request.total_records,
            VaultMigrationHandler(engine),
            metadata={
                "legacy_system_name": request.legacy_system_name,
                "migration_date": request.migration_date,
                "validation_mode": request.validation_mode.value,
            },
        )
        return BatchStartResponse(
            message=f"Legacy vault migration started for {job.total_records} records",
            batch_id=job.batch_id,
            progress_endpoint=f"/nmi-legacy/progress/{job.batch_id}",
        )
    except MigrationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception(f"Error starting vault migration {request.import_batch_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to start vault migration: {str(e)}"
        )


@router.get("/progress/{batch_id}", response_model=JobProgress)
async def vault_migration_progress(batch_id: str, repository: RepositoryDep) -> JobProgress:
    try:
        job = await load_job(repository, batch_id, JobKind.VAULT_MIGRATION)
        return compute_progress(job)
    except MigrationError as e:
        raise to_http_exception(e)


@router.post("/validate-tokens", response_model=TokenValidationResponse)
async def validate_tokens(
    request: VaultTokenValidationRequest,
    repository: RepositoryDep,
) -> TokenValidationResponse:
    try:
        validations = await validate_vault_tokens(request.vault_ids, repository)
        valid_count = sum(1 for v in validations if v.is_valid)
        return TokenValidationResponse(
            validations=validations,
            valid_count=valid_count,
            invalid_count=len(validations) - valid_count,
        )
    except Exception as e:
        logger.exception("Error validating vault tokens")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to validate vault tokens: {str(e)}"
        )


@router.get("/stats")
async def vault_migration_stats(repository: RepositoryDep) -> Dict[str, Any]:
    try:
        stored = await repository.list_results(JobKind.VAULT_MIGRATION)
        mappings = [TokenMapping.model_validate(row) for row in stored]
        return {"success": True, "stats": summarize_token_mappings(mappings)}
    except Exception as e:
        logger.exception("Error computing vault migration stats")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute vault migration stats: {str(e)}"
        )
