"""
Pydantic request/response models for the billing migration backend.

This module provides type-safe data validation and serialization for every
engine boundary: client classification input/output, legacy vault records and
token mappings, transaction log records and their processed form, War Chest
client imports, and the import job documents tracked by the orchestrator.

Each engine has its own input model so malformed records are rejected at the
HTTP boundary instead of deep inside scoring logic.

All models use Pydantic v2 syntax with proper field validation and examples.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from billing_migration.core.timeutils import utc_now
from billing_migration.models.enums import (
    Disposition,
    DisputeStatus,
    JobKind,
    JobStatus,
    MappingStatus,
    MigrationType,
    PaymentMethodType,
    Priority,
    ProcessingStatus,
    Recommendation,
    RiskBand,
    RiskLevel,
    SubscriptionStatus,
    TransactionPaymentType,
    TransactionStatus,
    TransactionType,
    ValidationMode,
    VaultStatus,
    WarChestAction,
)


def _check_email(value: str) -> str:
    value = value.strip()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("value is not a valid email address")
    return value


# =============================================================================
# Client Classification Models
# =============================================================================


class Dispute(BaseModel):
    """A historical payment dispute raised by the client."""
    model_config = ConfigDict(frozen=True)

    date: datetime = Field(..., description="When the dispute was opened")
    amount: float = Field(..., description="Disputed amount")
    reason: str = Field(..., description="Dispute reason text")
    status: DisputeStatus = Field(..., description="pending, won or lost")


class TosAcceptance(BaseModel):
    """Evidence that the client accepted the terms of service."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    ip_address: str
    hash: str
    version: Optional[str] = None


class ClientRecord(BaseModel):
    """
    Legacy billing client as exported from the discontinued product line.

    Immutable input to the classification engine.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "client_id": "WC-000123",
                "legal_name": "Acme Dental LLC",
                "email": "billing@acmedental.com",
                "signup_date": "2022-03-01",
                "last_activity_date": "2026-09-20",
                "last_payment_date": "2026-10-01",
                "last_payment_amount": 99.0,
                "total_lifetime_value": 2400.0,
                "payment_history_months": 24,
                "has_valid_payment_method": True,
                "payment_method_type": "credit_card",
                "successful_payments": 24,
                "subscription_status": "active",
            }
        }
    )

    # Identity
    client_id: str = Field(..., min_length=1, description="Legacy client identifier")
    legal_name: str = Field(..., description="Legal business or person name")
    email: str = Field(..., description="Billing contact email")
    phone: Optional[str] = Field(default=None, description="Billing contact phone")

    # Historical signals
    signup_date: datetime = Field(..., description="Original signup date")
    last_activity_date: datetime = Field(..., description="Last recorded account activity")
    last_payment_date: Optional[datetime] = Field(default=None)
    last_payment_amount: Optional[float] = Field(default=None)
    total_lifetime_value: float = Field(default=0.0, ge=0.0)
    payment_history_months: int = Field(default=0, ge=0)

    # Payment method
    has_valid_payment_method: bool = Field(default=False)
    payment_method_type: Optional[PaymentMethodType] = Field(default=None)
    card_last_four: Optional[str] = Field(default=None)
    card_expiry: Optional[str] = Field(default=None)

    # Billing history
    successful_payments: int = Field(default=0, ge=0)
    failed_payments: int = Field(default=0, ge=0)
    chargebacks: int = Field(default=0, ge=0)
    dispute_history: List[Dispute] = Field(default_factory=list)

    # Plan and subscription
    current_plan: Optional[str] = Field(default=None)
    legacy_plan: Optional[str] = Field(default=None)
    subscription_status: SubscriptionStatus = Field(default=SubscriptionStatus.PENDING)

    # Compliance
    tos_acceptance: Optional[TosAcceptance] = Field(default=None)

    # Risk
    risk_score: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        description="Risk score stored by the legacy system"
    )
    fraud_indicators: List[str] = Field(default_factory=list)
    compliance_flags: List[str] = Field(default_factory=list)

    # Jurisdiction
    country: Optional[str] = Field(default=None)
    state: Optional[str] = Field(default=None)
    regulatory_restrictions: List[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _check_email(value)


class ClassificationResult(BaseModel):
    """
    Disposition decision for one client.

    Created once per classification call and never updated in place;
    re-classifying a client produces a new result.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "client_id": "WC-000123",
                "recommended_status": "BILL",
                "confidence_score": 90,
                "reasoning": ["Recent successful payment activity"],
                "risk_factors": [],
                "required_actions": ["Continue regular billing cycle"],
                "estimated_recovery_value": 100.0,
                "processing_priority": "HIGH",
                "compliance_review_required": False,
                "risk_score": 0,
                "rule_fired": "bill",
            }
        }
    )

    client_id: str
    recommended_status: Disposition
    confidence_score: int = Field(..., ge=0, le=100)
    reasoning: List[str] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)
    required_actions: List[str] = Field(default_factory=list)
    estimated_recovery_value: Optional[float] = Field(default=None)
    processing_priority: Priority
    compliance_review_required: bool
    risk_score: int = Field(
        ...,
        ge=0,
        le=100,
        description="Effective risk score the rules were evaluated with"
    )
    rule_fired: str = Field(..., description="Name of the first matching rule")
    classified_at: datetime = Field(default_factory=utc_now)


class RiskScore(BaseModel):
    """Output of the client risk scorer."""
    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, le=100)
    factors: List[str] = Field(default_factory=list)
    band: RiskBand


class BatchClassifyRequest(BaseModel):
    """
    Body of the batch-classify endpoint.

    Clients are kept as raw dicts so one malformed client becomes a
    per-record error instead of rejecting the whole batch.
    """
    clients: List[Dict[str, Any]]


class BatchClassificationError(BaseModel):
    index: int
    client_id: str
    error: str


class BatchClassificationOutcome(BaseModel):
    total_processed: int
    results: List[ClassificationResult] = Field(default_factory=list)
    errors: List[BatchClassificationError] = Field(default_factory=list)
    error_count: int = 0


# =============================================================================
# Vault Migration Models
# =============================================================================


class LegacyVaultRecord(BaseModel):
    """One customer vault entry exported from the legacy gateway."""
    model_config = ConfigDict(str_strip_whitespace=True)

    customer_vault_id: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None

    # Payment method (masked)
    cc_number_masked: str = Field(..., description="Masked card number, at least last four")
    cc_exp: str = Field(..., description="Expiry in MMYY format")
    cc_type: str = Field(default="", description="visa, mastercard, ...")

    # Vault metadata
    created_date: datetime
    updated_date: Optional[datetime] = None
    status: VaultStatus = VaultStatus.ACTIVE

    # Legacy references
    original_system_id: Optional[str] = None
    migration_batch: Optional[str] = None

    # Risk data
    previous_chargebacks: int = Field(default=0, ge=0)
    account_notes: Optional[str] = None
    risk_level: RiskLevel = RiskLevel.LOW

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _check_email(value)


class VaultRiskAssessment(BaseModel):
    score: int = Field(..., ge=0, le=100)
    factors: List[str] = Field(default_factory=list)
    recommendation: Recommendation


class TokenMapping(BaseModel):
    """Legacy vault id to new vault id mapping produced by the migration engine."""
    legacy_vault_id: str
    new_vault_id: str
    customer_id: str
    mapping_status: MappingStatus
    validation_errors: List[str] = Field(default_factory=list)
    risk_assessment: VaultRiskAssessment
    card_type: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class LegacyVaultMigrationRequest(BaseModel):
    legacy_vault_records: List[LegacyVaultRecord]
    import_batch_id: str = Field(..., min_length=1)
    legacy_system_name: str
    migration_date: str
    total_records: int = Field(..., ge=0)
    validation_mode: ValidationMode = ValidationMode.STRICT


class VaultTokenValidationRequest(BaseModel):
    vault_ids: List[str]


class VaultTokenValidation(BaseModel):
    vault_id: str
    is_valid: bool
    mapping_status: Optional[MappingStatus] = None
    validation_date: datetime
    error_message: Optional[str] = None


# =============================================================================
# Transaction Log Models
# =============================================================================


class PaymentMethodDetails(BaseModel):
    type: TransactionPaymentType
    card_type: Optional[str] = None
    last_four: Optional[str] = None
    exp_month: Optional[str] = None
    exp_year: Optional[str] = None


class BillingAddress(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class TransactionRecord(BaseModel):
    """
    Historical transaction from the legacy gateway logs.

    transaction_date stays a string here; it is parsed during validation so
    that a bad date fails that single record rather than the whole request.
    """
    transaction_id: str
    legacy_transaction_id: Optional[str] = None
    order_id: Optional[str] = None

    customer_id: str
    customer_vault_id: Optional[str] = None
    customer_email: Optional[str] = None

    amount: float
    currency: str = "USD"
    type: TransactionType

    payment_method: Optional[PaymentMethodDetails] = None

    status: TransactionStatus
    response_code: Optional[str] = None
    response_text: Optional[str] = None
    auth_code: Optional[str] = None
    avs_response: Optional[str] = None
    cvv_response: Optional[str] = None

    transaction_date: str
    processed_date: Optional[str] = None
    settled_date: Optional[str] = None

    billing_address: Optional[BillingAddress] = None

    merchant_id: Optional[str] = None
    processor: str = "NMI"
    gateway_transaction_id: Optional[str] = None

    risk_score: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    fraud_flags: List[str] = Field(default_factory=list)

    subscription_id: Optional[str] = None
    recurring_flag: bool = False

    source_system: Optional[str] = None
    migration_batch: Optional[str] = None
    original_data: Optional[Dict[str, Any]] = None


class TransactionValidation(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class CustomerRiskProfile(BaseModel):
    customer_id: str
    total_transactions: int = 0
    total_chargebacks: int = 0
    avg_transaction_amount: float = 0.0
    risk_level: RiskLevel = RiskLevel.LOW
    account_age_days: Optional[int] = None


class GeographicRisk(BaseModel):
    country: str
    risk_level: RiskLevel


class CardMetadata(BaseModel):
    card_type: Optional[str] = None
    last_four: Optional[str] = None


class TransactionEnrichment(BaseModel):
    customer_risk_profile: Optional[CustomerRiskProfile] = None
    geographic_data: Optional[GeographicRisk] = None
    fraud_indicators: List[str] = Field(default_factory=list)
    chargeback_probability: float = 0.0
    card_data: Optional[CardMetadata] = None


class TransactionRiskAssessment(BaseModel):
    score: int = Field(..., ge=0, le=100)
    flags: List[str] = Field(default_factory=list)
    recommendation: Recommendation


class ProcessedTransaction(BaseModel):
    transaction_id: str
    processing_status: ProcessingStatus
    validation_errors: List[str] = Field(default_factory=list)
    validation_warnings: List[str] = Field(default_factory=list)
    enrichment_data: TransactionEnrichment = Field(default_factory=TransactionEnrichment)
    risk_assessment: TransactionRiskAssessment
    processed_at: datetime


class DateRange(BaseModel):
    start_date: str
    end_date: str


class TransactionLogMigrationRequest(BaseModel):
    transactions: List[TransactionRecord]
    import_batch_id: str = Field(..., min_length=1)
    date_range: DateRange
    total_expected: int = Field(..., ge=0)
    source_system: str
    migration_type: MigrationType = MigrationType.FULL


# =============================================================================
# War Chest Import Models
# =============================================================================


class ChargebackEntry(BaseModel):
    date: str
    amount: float
    reason: str
    status: str


class WarChestClientRecord(BaseModel):
    """Client row from the War Chest vertical export with a pre-assigned disposition."""
    model_config = ConfigDict(str_strip_whitespace=True)

    client_id: str = Field(..., min_length=1)
    legal_name: str
    email: str
    phone: Optional[str] = None

    original_signup_date: str
    last_activity_date: str
    historical_plan: str

    current_status: Disposition

    nmi_customer_vault_id: Optional[str] = None
    payment_method_token: Optional[str] = None

    tos_acceptance: Optional[TosAcceptance] = None

    last_transaction_date: Optional[str] = None
    last_payment_amount: Optional[float] = None
    chargeback_history: List[ChargebackEntry] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _check_email(value)


class WarChestImportOutcome(BaseModel):
    client_id: str
    status: Disposition
    action: WarChestAction
    skipped: bool = False


class WarChestImportRequest(BaseModel):
    clients: List[WarChestClientRecord]
    import_batch_id: str = Field(..., min_length=1)
    vertical_name: str = "War Chest"
    total_expected_count: int = Field(..., ge=0)
    import_started_by: str


# =============================================================================
# Import Job Models
# =============================================================================


class JobError(BaseModel):
    """One failed record inside a batch job."""
    record_index: int
    record_id: str
    error_message: str
    error_code: str


class ImportJob(BaseModel):
    """
    Batch job document tracked by the orchestrator.

    Created on batch submission, mutated only through the JobRepository as
    chunks complete, and removed only by an explicit operator purge.
    """
    batch_id: str
    kind: JobKind
    total_records: int = Field(..., ge=0)
    processed_records: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    status: JobStatus = JobStatus.STARTED
    errors: List[JobError] = Field(default_factory=list)
    errors_truncated: int = Field(default=0, ge=0)
    outcome_counts: Dict[str, int] = Field(default_factory=dict)
    risk_distribution: Dict[str, int] = Field(
        default_factory=lambda: {band.value: 0 for band in RiskBand}
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)
    summary: Optional[Dict[str, Any]] = None
    cancel_requested: bool = False
    started_at: datetime
    completed_at: Optional[datetime] = None


class JobProgress(BaseModel):
    """Point-in-time progress view of an import job."""
    batch_id: str
    kind: JobKind
    status: JobStatus
    total_records: int
    processed_records: int
    success_count: int
    failure_count: int
    completion_percentage: int = Field(..., ge=0, le=100)
    elapsed_seconds: float
    records_per_second: Optional[float] = None
    estimated_seconds_remaining: Optional[float] = None
    estimated_time_remaining: str
    outcome_counts: Dict[str, int] = Field(default_factory=dict)
    risk_distribution: Dict[str, int] = Field(default_factory=dict)
    errors: List[JobError] = Field(default_factory=list)
    errors_truncated: int = 0
    summary: Optional[Dict[str, Any]] = None
    started_at: datetime
    completed_at: Optional[datetime] = None


class BatchStartResponse(BaseModel):
    success: bool = True
    message: str
    batch_id: str
    progress_endpoint: str
    date_range: Optional[DateRange] = None
