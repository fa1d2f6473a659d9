"""
Per-kind batch handlers.

A handler adapts one engine to the orchestrator: it runs a single record,
turns the engine output into a RecordOutcome (success flag, outcome bucket,
risk band, error entry, stored result) and summarizes the stored results once
the batch is done.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from billing_migration.models.enums import JobKind, MappingStatus, ProcessingStatus
from billing_migration.models.schemas import (
    LegacyVaultRecord,
    ProcessedTransaction,
    TokenMapping,
    TransactionRecord,
    WarChestClientRecord,
    WarChestImportOutcome,
)
from billing_migration.services.job_repository import RecordOutcome
from billing_migration.services.risk_scoring import risk_band
from billing_migration.services.transaction_processing import (
    TransactionLogProcessor,
    summarize_processed_transactions,
)
from billing_migration.services.vault_migration import (
    VaultMigrationEngine,
    summarize_token_mappings,
)
from billing_migration.services.war_chest import (
    process_war_chest_client,
    summarize_war_chest_outcomes,
)


class BatchHandler(ABC):
    kind: JobKind
    # Used in count mismatch messages, e.g. "Transaction count mismatch"
    noun: str = "Record"

    @abstractmethod
    def record_id(self, record: Any) -> str:
        ...

    @abstractmethod
    async def handle(self, index: int, record: Any) -> RecordOutcome:
        ...

    @abstractmethod
    def summarize(self, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        ...


class VaultMigrationHandler(BatchHandler):
    """MAPPED and NEEDS_VALIDATION count as successes; FAILED and DUPLICATE as failures."""

    kind = JobKind.VAULT_MIGRATION

    def __init__(self, engine: VaultMigrationEngine, as_of: Optional[datetime] = None):
        self.engine = engine
        self.as_of = as_of

    def record_id(self, record: LegacyVaultRecord) -> str:
        return record.customer_vault_id

    async def handle(self, index: int, record: LegacyVaultRecord) -> RecordOutcome:
        mapping = await self.engine.process(record, self.as_of)
        success = mapping.mapping_status in (MappingStatus.MAPPED, MappingStatus.NEEDS_VALIDATION)

        error_code = None
        if mapping.mapping_status == MappingStatus.DUPLICATE:
            error_code = "DUPLICATE_RECORD"
        elif mapping.mapping_status == MappingStatus.FAILED:
            error_code = "VALIDATION_FAILED"

        return RecordOutcome(
            record_index=index,
            record_id=record.customer_vault_id,
            success=success,
            outcome_key=mapping.mapping_status.value,
            risk_band=risk_band(mapping.risk_assessment.score).value,
            error_message=None if success else "; ".join(mapping.validation_errors),
            error_code=error_code,
            result=mapping.model_dump(mode="json"),
        )

    def summarize(self, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        return summarize_token_mappings([TokenMapping.model_validate(r) for r in results])


class TransactionMigrationHandler(BatchHandler):
    """SUCCESS and NEEDS_REVIEW count as successes; FAILED as a failure."""

    kind = JobKind.TRANSACTION_MIGRATION
    noun = "Transaction"

    def __init__(self, processor: TransactionLogProcessor, as_of: Optional[datetime] = None):
        self.processor = processor
        self.as_of = as_of

    def record_id(self, record: TransactionRecord) -> str:
        return record.transaction_id or "unknown"

    async def handle(self, index: int, record: TransactionRecord) -> RecordOutcome:
        processed = await self.processor.process(record, self.as_of)
        success = processed.processing_status != ProcessingStatus.FAILED

        return RecordOutcome(
            record_index=index,
            record_id=self.record_id(record),
            success=success,
            outcome_key=processed.processing_status.value,
            risk_band=risk_band(processed.risk_assessment.score).value,
            error_message=None if success else "; ".join(processed.validation_errors),
            error_code=None if success else "VALIDATION_FAILED",
            result=processed.model_dump(mode="json"),
        )

    def summarize(self, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        return summarize_processed_transactions([ProcessedTransaction.model_validate(r) for r in results])


class WarChestImportHandler(BatchHandler):
    """Errors raised by the importer become failed records with their code."""

    kind = JobKind.WAR_CHEST_IMPORT
    noun = "Client"

    def record_id(self, record: WarChestClientRecord) -> str:
        return record.client_id

    async def handle(self, index: int, record: WarChestClientRecord) -> RecordOutcome:
        outcome = await process_war_chest_client(record)
        return RecordOutcome(
            record_index=index,
            record_id=record.client_id,
            success=True,
            outcome_key=outcome.action.value,
            result=outcome.model_dump(mode="json"),
        )

    def summarize(self, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        return summarize_war_chest_outcomes([WarChestImportOutcome.model_validate(r) for r in results])
