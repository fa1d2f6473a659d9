"""
Client Risk Scorer

Weighted additive risk model over a legacy client's billing history. The score
feeds the status classification rules and is reported back to operators with
the list of factors that produced it.

Weights:
- Each chargeback: 25 points (largest single signal)
- Failed / total payment ratio: proportional, up to 30 points
- Each fraud indicator: 15 points
- Each compliance flag: 20 points
- Each pending dispute: 10 points
- Account age under 3 / 6 / 12 months: 15 / 10 / 5 points

The total is rounded and clamped to [0, 100]. Scoring is pure: identical
(record, as_of) input always yields the identical RiskScore.
"""

from datetime import datetime
from typing import List, Optional

from billing_migration.core.timeutils import months_since
from billing_migration.models.enums import DisputeStatus, RiskBand
from billing_migration.models.schemas import ClientRecord, RiskScore


# =============================================================================
# Weights
# =============================================================================

CHARGEBACK_WEIGHT: int = 25
FAILURE_RATIO_WEIGHT: int = 30
FRAUD_INDICATOR_WEIGHT: int = 15
COMPLIANCE_FLAG_WEIGHT: int = 20
PENDING_DISPUTE_WEIGHT: int = 10

# (months, points): first bucket the account age falls under wins
ACCOUNT_AGE_BUCKETS = (
    (3, 15, "New account (< 3 months)"),
    (6, 10, "Recent account (< 6 months)"),
    (12, 5, "Account younger than 12 months"),
)

MAX_SCORE: int = 100

# Upper bounds (inclusive) of the low and medium bands
LOW_BAND_MAX: int = 30
MEDIUM_BAND_MAX: int = 60


def clamp_score(value: float) -> int:
    """Round and clamp a raw additive score into [0, 100]."""
    return int(max(0, min(MAX_SCORE, round(value))))


def risk_band(score: float) -> RiskBand:
    """
    Bucket a 0-100 score into low (0-30), medium (31-60) or high (61+).

    Used for every risk distribution reported by the service.
    """
    if score <= LOW_BAND_MAX:
        return RiskBand.LOW
    if score <= MEDIUM_BAND_MAX:
        return RiskBand.MEDIUM
    return RiskBand.HIGH


def score_client(record: ClientRecord, as_of: Optional[datetime] = None) -> RiskScore:
    """
    Compute the 0-100 risk score for a client record.

    Args:
        record: The immutable client record
        as_of: Reference time for account age (default: now)

    Returns:
        RiskScore with clamped score, contributing factors and band
    """
    score = 0.0
    factors: List[str] = []

    if record.chargebacks > 0:
        score += record.chargebacks * CHARGEBACK_WEIGHT
        factors.append(f"{record.chargebacks} chargeback(s) on record")

    total_payments = record.successful_payments + record.failed_payments
    if total_payments > 0:
        failure_rate = record.failed_payments / total_payments
        score += failure_rate * FAILURE_RATIO_WEIGHT
        if record.failed_payments > 0:
            factors.append(f"Payment failure rate {round(failure_rate * 100)}%")

    score += len(record.fraud_indicators) * FRAUD_INDICATOR_WEIGHT
    factors.extend(record.fraud_indicators)

    score += len(record.compliance_flags) * COMPLIANCE_FLAG_WEIGHT
    factors.extend(record.compliance_flags)

    pending_disputes = sum(
        1 for dispute in record.dispute_history if dispute.status == DisputeStatus.PENDING
    )
    if pending_disputes:
        score += pending_disputes * PENDING_DISPUTE_WEIGHT
        factors.append(f"{pending_disputes} pending dispute(s)")

    account_age_months = months_since(record.signup_date, as_of)
    for limit, points, label in ACCOUNT_AGE_BUCKETS:
        if account_age_months < limit:
            score += points
            factors.append(label)
            break

    clamped = clamp_score(score)
    return RiskScore(score=clamped, factors=factors, band=risk_band(clamped))
