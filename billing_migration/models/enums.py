"""
Enumeration definitions for the billing migration backend.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, enabling automatic serialization and
deserialization in API responses and in stored job documents.
"""

from enum import Enum


# =============================================================================
# Client Classification
# =============================================================================

class Disposition(str, Enum):
    """
    Billing disposition assigned to a legacy client during migration.

    - BILL: Keep billing on the regular cycle
    - REWRITE: Move the client onto a current plan before billing
    - FLIP: Same plan, move the payment method to the new processor
    - DORMANT: Keep the record and tokens, do not bill
    - DO_NOT_BILL: Compliance stop; never attempt billing
    """
    BILL = "BILL"
    REWRITE = "REWRITE"
    FLIP = "FLIP"
    DORMANT = "DORMANT"
    DO_NOT_BILL = "DO_NOT_BILL"


class Priority(str, Enum):
    """Processing priority for a classified client."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class PaymentMethodType(str, Enum):
    CREDIT_CARD = "credit_card"
    ACH = "ach"
    PAYPAL = "paypal"
    NONE = "none"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    PENDING = "pending"


class DisputeStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


class ComplianceFlag(str, Enum):
    """
    Compliance flags that force DO_NOT_BILL on their own.

    Other flag strings are allowed on a client record; they add risk and
    require compliance review but do not stop billing by themselves.
    """
    LEGAL_HOLD = "LEGAL_HOLD"
    FRAUD_CONFIRMED = "FRAUD_CONFIRMED"
    REGULATORY_BLOCK = "REGULATORY_BLOCK"
    DECEASED = "DECEASED"


class RiskLevel(str, Enum):
    """Legacy or looked-up risk level attached to a vault record, customer or country."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskBand(str, Enum):
    """
    Coarse risk bucket used in distributions.

    - low: score 0-30
    - medium: score 31-60
    - high: score 61+
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# Vault Migration
# =============================================================================

class VaultStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    EXPIRED = "expired"


class MappingStatus(str, Enum):
    """
    Outcome of migrating one legacy vault record.

    - MAPPED: New vault token issued
    - FAILED: Payment method failed validation
    - NEEDS_VALIDATION: Token issued but risk warrants manual review
    - DUPLICATE: Same email and card already seen in this batch
    """
    MAPPED = "MAPPED"
    FAILED = "FAILED"
    NEEDS_VALIDATION = "NEEDS_VALIDATION"
    DUPLICATE = "DUPLICATE"


class Recommendation(str, Enum):
    APPROVE = "APPROVE"
    REVIEW = "REVIEW"
    REJECT = "REJECT"


class ValidationMode(str, Enum):
    """
    How vault validation errors are treated.

    - strict: validation errors fail the mapping
    - permissive: validation errors send the mapping to manual validation
    """
    STRICT = "strict"
    PERMISSIVE = "permissive"


# =============================================================================
# Transaction Log Migration
# =============================================================================

class TransactionType(str, Enum):
    SALE = "sale"
    AUTH = "auth"
    CAPTURE = "capture"
    VOID = "void"
    REFUND = "refund"
    CHARGEBACK = "chargeback"


class TransactionStatus(str, Enum):
    APPROVED = "approved"
    DECLINED = "declined"
    ERROR = "error"
    PENDING = "pending"
    VOIDED = "voided"
    REFUNDED = "refunded"


class TransactionPaymentType(str, Enum):
    CREDIT_CARD = "credit_card"
    ACH = "ach"
    PAYPAL = "paypal"
    OTHER = "other"


class ProcessingStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class MigrationType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    BACKFILL = "backfill"


class FraudIndicator(str, Enum):
    LARGE_AMOUNT = "LARGE_AMOUNT"
    UNUSUAL_HOUR = "UNUSUAL_HOUR"
    SUSPICIOUS_RESPONSE = "SUSPICIOUS_RESPONSE"
    AVS_MISMATCH = "AVS_MISMATCH"
    CVV_MISMATCH = "CVV_MISMATCH"


# =============================================================================
# Batch Jobs
# =============================================================================

class JobKind(str, Enum):
    """Which engine a batch job drives."""
    CLIENT_CLASSIFICATION = "client_classification"
    VAULT_MIGRATION = "vault_migration"
    TRANSACTION_MIGRATION = "transaction_migration"
    WAR_CHEST_IMPORT = "war_chest_import"


class JobStatus(str, Enum):
    """
    Lifecycle of an import job.

    Status only moves forward:
    STARTED -> PROCESSING -> COMPLETED | FAILED | CANCELLED
    STARTED -> FAILED | CANCELLED
    """
    STARTED = "STARTED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class WarChestAction(str, Enum):
    """Follow-up queued for an imported War Chest client."""
    SCHEDULE_BILLING = "schedule_billing"
    QUEUE_PLAN_REWRITE = "queue_plan_rewrite"
    QUEUE_PROCESSOR_FLIP = "queue_processor_flip"
    PRESERVE_DORMANT = "preserve_dormant"
    PRESERVE_FOR_COMPLIANCE = "preserve_for_compliance"
