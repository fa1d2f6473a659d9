"""
Billing Migration Services

Business logic for migrating the War Chest legacy billing clients.

Services:
- risk_scoring: Weighted client risk score and risk bands
- classification: Ordered disposition rules (DO_NOT_BILL, BILL, REWRITE, FLIP, DORMANT)
- vault_migration: Legacy vault token validation, deduplication, risk and remapping
- transaction_processing: Transaction log validation, enrichment and risk scoring
- war_chest: War Chest client import follow-ups
- job_repository: Import job storage (in-memory or PostgreSQL)
- batch_handlers: Per-kind adapters between the engines and the orchestrator
- orchestrator: Chunked, throttled, cancellable background batch execution
- progress: Progress, ETA and registry summaries

All services are designed to be consumed by the API layer (billing_migration/api/).
"""

# =============================================================================
# Risk Scoring and Classification
# =============================================================================

from billing_migration.services.risk_scoring import score_client, risk_band
from billing_migration.services.classification import (
    CLASSIFICATION_RULES,
    ClassificationContext,
    ClassificationRule,
    classify_batch,
    classify_client,
    compute_classification_stats,
    evaluate_rules,
    explain_rules,
    validate_classification_rules,
)

# =============================================================================
# Migration Engines
# =============================================================================

from billing_migration.services.vault_migration import (
    VaultMigrationEngine,
    assess_vault_risk,
    summarize_token_mappings,
    validate_payment_method,
    validate_vault_tokens,
)
from billing_migration.services.transaction_processing import (
    CustomerProfileProvider,
    GeoRiskProvider,
    InMemoryCustomerProfileProvider,
    StaticGeoRiskProvider,
    TransactionLogProcessor,
    summarize_processed_transactions,
)
from billing_migration.services.war_chest import (
    process_war_chest_client,
    summarize_war_chest_outcomes,
)

# =============================================================================
# Batch Execution
# =============================================================================

from billing_migration.services.job_repository import (
    InMemoryJobRepository,
    JobRepository,
    PostgresJobRepository,
    RecordOutcome,
)
from billing_migration.services.batch_handlers import (
    BatchHandler,
    TransactionMigrationHandler,
    VaultMigrationHandler,
    WarChestImportHandler,
)
from billing_migration.services.orchestrator import BatchOrchestrator, CancellationToken
from billing_migration.services.progress import compute_progress, summarize_registry


__all__ = [
    # Risk scoring and classification
    "score_client",
    "risk_band",
    "CLASSIFICATION_RULES",
    "ClassificationContext",
    "ClassificationRule",
    "classify_batch",
    "classify_client",
    "compute_classification_stats",
    "evaluate_rules",
    "explain_rules",
    "validate_classification_rules",
    # Migration engines
    "VaultMigrationEngine",
    "assess_vault_risk",
    "summarize_token_mappings",
    "validate_payment_method",
    "validate_vault_tokens",
    "CustomerProfileProvider",
    "GeoRiskProvider",
    "InMemoryCustomerProfileProvider",
    "StaticGeoRiskProvider",
    "TransactionLogProcessor",
    "summarize_processed_transactions",
    "process_war_chest_client",
    "summarize_war_chest_outcomes",
    # Batch execution
    "InMemoryJobRepository",
    "JobRepository",
    "PostgresJobRepository",
    "RecordOutcome",
    "BatchHandler",
    "TransactionMigrationHandler",
    "VaultMigrationHandler",
    "WarChestImportHandler",
    "BatchOrchestrator",
    "CancellationToken",
    "compute_progress",
    "summarize_registry",
]
