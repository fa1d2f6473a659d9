"""
FastAPI router module for client status classification.

Implements:
- POST /status-classification/classify: classify one client
- POST /status-classification/batch-classify: classify many clients, with
  per-client validation errors (error details capped)
- GET /status-classification/stats: aggregates over stored classifications
- GET /status-classification/rules: ordered rule list for auditing
- GET /status-classification/validate-rules: rule self-check

Classification results are stored through the job repository so the stats
endpoint can report on everything classified so far.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from billing_migration.core.dependencies import RepositoryDep, SettingsDep
from billing_migration.core.timeutils import utc_now
from billing_migration.models.enums import JobKind
from billing_migration.models.schemas import (
    BatchClassificationError,
    BatchClassifyRequest,
    ClassificationResult,
    ClientRecord,
)
from billing_migration.services.classification import (
    classify_batch,
    classify_client,
    compute_classification_stats,
    explain_rules,
    validate_classification_rules,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Local Pydantic Models for API Responses
# =============================================================================

class ClassifyResponse(BaseModel):
    success: bool = True
    classification: ClassificationResult
    timestamp: datetime


class BatchClassifyResponse(BaseModel):
    success: bool = True
    total_processed: int
    successful_classifications: int
    error_count: int
    results: List[ClassificationResult] = Field(default_factory=list)
    errors: List[BatchClassificationError] = Field(
        default_factory=list,
        description="First validation errors, capped"
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/classify", response_model=ClassifyResponse)
async def classify(record: ClientRecord, repository: RepositoryDep) -> ClassifyResponse:
    try:
        result = classify_client(record)
        await repository.append_results(
            JobKind.CLIENT_CLASSIFICATION,
            [result.model_dump(mode="json")],
        )
        return ClassifyResponse(classification=result, timestamp=utc_now())
    except Exception as e:
        logger.exception(f"Error classifying client {record.client_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to classify client: {str(e)}"
        )


@router.post("/batch-classify", response_model=BatchClassifyResponse)
async def batch_classify(
    request: BatchClassifyRequest,
    repository: RepositoryDep,
    settings: SettingsDep,
) -> BatchClassifyResponse:
    try:
        # CPU bound for large batches; run off the event loop
        outcome = await asyncio.to_thread(
            classify_batch,
            request.clients,
            max_errors=settings.batch_error_detail_limit,
            settings=settings,
        )
        if outcome.results:
            await repository.append_results(
                JobKind.CLIENT_CLASSIFICATION,
                [r.model_dump(mode="json") for r in outcome.results],
            )

        logger.info(
            "Batch classification: %d clients, %d classified, %d errors",
            outcome.total_processed, len(outcome.results), outcome.error_count
        )

        return BatchClassifyResponse(
            total_processed=outcome.total_processed,
            successful_classifications=len(outcome.results),
            error_count=outcome.error_count,
            results=outcome.results,
            errors=outcome.errors,
        )
    except Exception as e:
        logger.exception("Error in batch classification")
        raise HTTPException(
            status_code=500,
            detail=f"Batch classification failed: {str(e)}"
        )


@router.get("/stats")
async def classification_stats(repository: RepositoryDep) -> Dict[str, Any]:
    try:
        stored = await repository.list_results(JobKind.CLIENT_CLASSIFICATION)
        results = [ClassificationResult.model_validate(row) for row in stored]
        return {"success": True, "stats": compute_classification_stats(results)}
    except Exception as e:
        logger.exception("Error computing classification stats")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute classification stats: {str(e)}"
        )


@router.get("/rules")
async def classification_rules() -> Dict[str, Any]:
    return {"success": True, "rules": explain_rules()}


@router.get("/validate-rules")
async def validate_rules() -> Dict[str, Any]:
    report = validate_classification_rules()
    return {"success": report["status"] == "PASSED", **report}
