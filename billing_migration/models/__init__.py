"""
Package initialization file for billing migration models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py, making them importable from billing_migration.models directly.

Usage:
    from billing_migration.models import (
        ClientRecord,
        ClassificationResult,
        Disposition,
        ImportJob,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from billing_migration.models.enums import (
    # Classification
    Disposition,
    Priority,
    PaymentMethodType,
    SubscriptionStatus,
    DisputeStatus,
    ComplianceFlag,
    RiskLevel,
    RiskBand,
    # Vault migration
    VaultStatus,
    MappingStatus,
    Recommendation,
    ValidationMode,
    # Transaction migration
    TransactionType,
    TransactionStatus,
    TransactionPaymentType,
    ProcessingStatus,
    MigrationType,
    FraudIndicator,
    # Jobs
    JobKind,
    JobStatus,
    WarChestAction,
)


# =============================================================================
# Schemas
# =============================================================================

from billing_migration.models.schemas import (
    # Classification
    Dispute,
    TosAcceptance,
    ClientRecord,
    ClassificationResult,
    RiskScore,
    BatchClassifyRequest,
    BatchClassificationError,
    BatchClassificationOutcome,
    # Vault migration
    LegacyVaultRecord,
    VaultRiskAssessment,
    TokenMapping,
    LegacyVaultMigrationRequest,
    VaultTokenValidationRequest,
    VaultTokenValidation,
    # Transaction migration
    PaymentMethodDetails,
    BillingAddress,
    TransactionRecord,
    TransactionValidation,
    CustomerRiskProfile,
    GeographicRisk,
    CardMetadata,
    TransactionEnrichment,
    TransactionRiskAssessment,
    ProcessedTransaction,
    DateRange,
    TransactionLogMigrationRequest,
    # War Chest
    ChargebackEntry,
    WarChestClientRecord,
    WarChestImportOutcome,
    WarChestImportRequest,
    # Jobs
    JobError,
    ImportJob,
    JobProgress,
    BatchStartResponse,
)


__all__ = [
    # Enums
    'Disposition',
    'Priority',
    'PaymentMethodType',
    'SubscriptionStatus',
    'DisputeStatus',
    'ComplianceFlag',
    'RiskLevel',
    'RiskBand',
    'VaultStatus',
    'MappingStatus',
    'Recommendation',
    'ValidationMode',
    'TransactionType',
    'TransactionStatus',
    'TransactionPaymentType',
    'ProcessingStatus',
    'MigrationType',
    'FraudIndicator',
    'JobKind',
    'JobStatus',
    'WarChestAction',
    # Schemas
    'Dispute',
    'TosAcceptance',
    'ClientRecord',
    'ClassificationResult',
    'RiskScore',
    'BatchClassifyRequest',
    'BatchClassificationError',
    'BatchClassificationOutcome',
    'LegacyVaultRecord',
    'VaultRiskAssessment',
    'TokenMapping',
    'LegacyVaultMigrationRequest',
    'VaultTokenValidationRequest',
    'VaultTokenValidation',
    'PaymentMethodDetails',
    'BillingAddress',
    'TransactionRecord',
    'TransactionValidation',
    'CustomerRiskProfile',
    'GeographicRisk',
    'CardMetadata',
    'TransactionEnrichment',
    'TransactionRiskAssessment',
    'ProcessedTransaction',
    'DateRange',
    'TransactionLogMigrationRequest',
    'ChargebackEntry',
    'WarChestClientRecord',
    'WarChestImportOutcome',
    'WarChestImportRequest',
    'JobError',
    'ImportJob',
    'JobProgress',
    'BatchStartResponse',
]
