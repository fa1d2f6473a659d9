"""
Status Classification Engine

Assigns each legacy War Chest client one of five billing dispositions. The
rules are an explicit ordered list evaluated top-to-bottom by a small
interpreter; the first predicate that matches decides the disposition.

Rule order (business priority, first match wins):
1. DO_NOT_BILL - compliance stop; short-circuits everything else
2. BILL - valid payment method plus recent or reliable payment activity
3. REWRITE - legacy or discontinued plan needs mapping to a current offering
4. FLIP - same service, move the payment method to the new processor
5. DORMANT - fallback, always matches

BILL, REWRITE and FLIP conditions overlap (a client can satisfy several of
them); the ordering above resolves the overlap and is surfaced through
explain_rules() so it can be audited.

Risk used by every predicate is the effective risk score:
max(stored legacy risk score, freshly computed score).

Classification is pure: the same (record, as_of) always produces the same
disposition, confidence and rule.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import ValidationError

from billing_migration.core.config import Settings, get_settings
from billing_migration.core.timeutils import days_since
from billing_migration.models.enums import (
    ComplianceFlag,
    Disposition,
    PaymentMethodType,
    Priority,
    RiskBand,
    SubscriptionStatus,
)
from billing_migration.models.schemas import (
    BatchClassificationError,
    BatchClassificationOutcome,
    ClassificationResult,
    ClientRecord,
    RiskScore,
)
from billing_migration.services.risk_scoring import clamp_score, risk_band, score_client


logger = logging.getLogger(__name__)


# =============================================================================
# Thresholds
# =============================================================================

HARD_COMPLIANCE_FLAGS = frozenset(flag.value for flag in ComplianceFlag)

DO_NOT_BILL_CHARGEBACKS: int = 3
DO_NOT_BILL_RISK: int = 80
BILL_RELIABLE_RISK: int = 40
BILL_HIGH_VALUE_RISK: int = 50
BILL_MODERATE_RISK: int = 30
REWRITE_MIN_SUCCESSES: int = 3
REWRITE_ELEVATED_RISK: int = 50
FLIP_MAX_RISK: int = 30

RECOVERY_MONTHS: int = 6
RECOVERY_FLOOR: float = 0.3


# =============================================================================
# Evaluation Context
# =============================================================================

@dataclass(frozen=True)
class ClassificationContext:
    """Everything a rule needs to decide and build its result."""
    record: ClientRecord
    as_of: datetime
    risk: RiskScore
    effective_risk: int
    settings: Settings

    def days_since(self, moment: Optional[datetime]) -> Optional[int]:
        if moment is None:
            return None
        return days_since(moment, self.as_of)

    @property
    def monthly_value(self) -> float:
        months = self.record.payment_history_months
        if months <= 0:
            return 0.0
        return self.record.total_lifetime_value / months

    @property
    def recovery_value(self) -> float:
        risk_factor = max(RECOVERY_FLOOR, 1 - self.effective_risk / 100)
        return self.monthly_value * RECOVERY_MONTHS * risk_factor


Predicate = Callable[[ClassificationContext], bool]
Builder = Callable[[ClassificationContext], ClassificationResult]


@dataclass(frozen=True)
class ClassificationRule:
    """One entry of the ordered rule list."""
    name: str
    disposition: Disposition
    description: str
    predicate: Predicate
    build: Builder


def _result(
    ctx: ClassificationContext,
    rule_name: str,
    disposition: Disposition,
    confidence: int,
    priority: Priority,
    reasoning: List[str],
    risk_factors: List[str],
    actions: List[str],
    value: Optional[float],
) -> ClassificationResult:
    record = ctx.record
    return ClassificationResult(
        client_id=record.client_id,
        recommended_status=disposition,
        confidence_score=confidence,
        reasoning=reasoning,
        risk_factors=risk_factors,
        required_actions=actions,
        estimated_recovery_value=round(value, 2) if value is not None else None,
        processing_priority=priority,
        compliance_review_required=(
            disposition == Disposition.DO_NOT_BILL or bool(record.compliance_flags)
        ),
        risk_score=ctx.effective_risk,
        rule_fired=rule_name,
        classified_at=ctx.as_of,
    )


def _dedupe(items: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(items))


# =============================================================================
# DO_NOT_BILL
# =============================================================================

def _should_not_bill(ctx: ClassificationContext) -> bool:
    record = ctx.record

    if HARD_COMPLIANCE_FLAGS.intersection(record.compliance_flags):
        return True

    if record.chargebacks >= DO_NOT_BILL_CHARGEBACKS:
        return True

    if ctx.effective_risk > DO_NOT_BILL_RISK and record.compliance_flags:
        return True

    # No payment history and no evidence the client ever accepted the terms
    if record.payment_history_months == 0 and record.tos_acceptance is None:
        return True

    return False


def _build_do_not_bill(ctx: ClassificationContext) -> ClassificationResult:
    record = ctx.record
    return _result(
        ctx,
        "do_not_bill",
        Disposition.DO_NOT_BILL,
        confidence=95,
        priority=Priority.HIGH,
        reasoning=[
            "High compliance risk detected",
            "Regulatory restrictions present",
            "Multiple fraud indicators",
            "Legal protection required",
        ],
        risk_factors=_dedupe(
            list(record.compliance_flags) + list(record.fraud_indicators) + ctx.risk.factors
        ),
        actions=[
            "Legal review required",
            "Do not attempt billing",
            "Preserve payment data for compliance",
            "Flag for manual review",
        ],
        value=None,
    )


# =============================================================================
# BILL
# =============================================================================

def _should_bill(ctx: ClassificationContext) -> bool:
    record = ctx.record
    settings = ctx.settings

    if not record.has_valid_payment_method:
        return False

    payment_age = ctx.days_since(record.last_payment_date)
    recent_payment = (
        payment_age is not None
        and payment_age <= settings.bill_recent_payment_days
        and (record.last_payment_amount or 0) > 0
    )

    reliable_subscriber = (
        record.subscription_status == SubscriptionStatus.ACTIVE
        and record.successful_payments > record.failed_payments
        and record.chargebacks == 0
        and ctx.effective_risk < BILL_RELIABLE_RISK
    )

    activity_age = ctx.days_since(record.last_activity_date)
    engaged_high_value = (
        record.total_lifetime_value > settings.bill_lifetime_value_threshold
        and activity_age is not None
        and activity_age <= settings.recent_activity_days
        and ctx.effective_risk < BILL_HIGH_VALUE_RISK
    )

    return recent_payment or reliable_subscriber or engaged_high_value


def _build_bill(ctx: ClassificationContext) -> ClassificationResult:
    high_value = ctx.record.total_lifetime_value > ctx.settings.high_value_priority_threshold
    return _result(
        ctx,
        "bill",
        Disposition.BILL,
        confidence=90,
        priority=Priority.HIGH if high_value else Priority.MEDIUM,
        reasoning=[
            "Recent successful payment activity",
            "Valid payment method on file",
            "Good payment history",
            "Low risk profile",
        ],
        risk_factors=["Moderate risk score"] if ctx.effective_risk > BILL_MODERATE_RISK else [],
        actions=[
            "Continue regular billing cycle",
            "Monitor payment success rate",
            "Update payment method if needed",
        ],
        value=ctx.monthly_value,
    )


# =============================================================================
# REWRITE
# =============================================================================

def _should_rewrite(ctx: ClassificationContext) -> bool:
    record = ctx.record

    if record.legacy_plan and not record.current_plan:
        return True

    if record.current_plan and record.current_plan in ctx.settings.discontinued_plans:
        return True

    return (
        record.has_valid_payment_method
        and record.successful_payments > REWRITE_MIN_SUCCESSES
        and record.chargebacks == 0
        and record.subscription_status == SubscriptionStatus.SUSPENDED
    )


def _build_rewrite(ctx: ClassificationContext) -> ClassificationResult:
    return _result(
        ctx,
        "rewrite",
        Disposition.REWRITE,
        confidence=85,
        priority=Priority.HIGH,
        reasoning=[
            "Legacy plan requires migration",
            "Plan discontinuation",
            "Better plan available",
            "Pricing structure update needed",
        ],
        risk_factors=(
            ["Higher risk during migration"] if ctx.effective_risk > REWRITE_ELEVATED_RISK else []
        ),
        actions=[
            "Map legacy plan to current offering",
            "Update subscription details",
            "Notify customer of changes",
            "Ensure payment method compatibility",
        ],
        value=ctx.recovery_value,
    )


# =============================================================================
# FLIP
# =============================================================================

def _should_flip(ctx: ClassificationContext) -> bool:
    record = ctx.record

    clean_card = (
        record.has_valid_payment_method
        and record.payment_method_type == PaymentMethodType.CREDIT_CARD
        and record.chargebacks == 0
        and ctx.effective_risk < FLIP_MAX_RISK
    )

    valuable_customer = (
        record.total_lifetime_value > ctx.settings.flip_lifetime_value_threshold
        and record.successful_payments > record.failed_payments
        and record.subscription_status != SubscriptionStatus.CANCELLED
    )

    return clean_card or valuable_customer


def _build_flip(ctx: ClassificationContext) -> ClassificationResult:
    return _result(
        ctx,
        "flip",
        Disposition.FLIP,
        confidence=80,
        priority=Priority.MEDIUM,
        reasoning=[
            "Payment processor migration required",
            "Same service, different billing method",
            "Processor optimization",
            "Cost reduction strategy",
        ],
        risk_factors=["Payment method re-validation needed", "Potential customer confusion"],
        actions=[
            "Re-validate payment method",
            "Update processor references",
            "Test payment flow",
            "Minimal customer communication",
        ],
        value=ctx.monthly_value,
    )


# =============================================================================
# DORMANT (fallback)
# =============================================================================

def _build_dormant(ctx: ClassificationContext) -> ClassificationResult:
    return _result(
        ctx,
        "dormant",
        Disposition.DORMANT,
        confidence=70,
        priority=Priority.LOW,
        reasoning=[
            "Inactive but potential future value",
            "Preserve customer relationship",
            "Payment method available",
            "No immediate billing opportunity",
        ],
        risk_factors=["Extended inactivity period", "Uncertain reactivation potential"],
        actions=[
            "Preserve payment tokens",
            "Maintain customer record",
            "Consider reactivation campaign",
            "Monitor for activity",
        ],
        value=None,
    )


# =============================================================================
# Rule List and Interpreter
# =============================================================================

CLASSIFICATION_RULES: List[ClassificationRule] = [
    ClassificationRule(
        name="do_not_bill",
        disposition=Disposition.DO_NOT_BILL,
        description=(
            "Hard compliance flag, 3+ chargebacks, risk above 80 with any compliance "
            "flag, or no payment history and no terms-of-service acceptance"
        ),
        predicate=_should_not_bill,
        build=_build_do_not_bill,
    ),
    ClassificationRule(
        name="bill",
        disposition=Disposition.BILL,
        description=(
            "Valid payment method and one of: payment within 45 days, reliable active "
            "subscriber with risk under 40, or high lifetime value with recent activity"
        ),
        predicate=_should_bill,
        build=_build_bill,
    ),
    ClassificationRule(
        name="rewrite",
        disposition=Disposition.REWRITE,
        description=(
            "Legacy plan without a current plan, a discontinued current plan, or a "
            "suspended subscriber with a clean payment record"
        ),
        predicate=_should_rewrite,
        build=_build_rewrite,
    ),
    ClassificationRule(
        name="flip",
        disposition=Disposition.FLIP,
        description=(
            "Clean low-risk credit card, or valuable customer with more successes than "
            "failures and a subscription that is not cancelled"
        ),
        predicate=_should_flip,
        build=_build_flip,
    ),
    ClassificationRule(
        name="dormant",
        disposition=Disposition.DORMANT,
        description="Fallback when no other rule matches",
        predicate=lambda ctx: True,
        build=_build_dormant,
    ),
]


def evaluate_rules(
    ctx: ClassificationContext,
    rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES,
) -> ClassificationResult:
    """
    Walk the rule list top-to-bottom and build the first matching result.

    Raises:
        ValueError: If no rule matches (only possible with a custom rule list
            that lacks an always-true fallback).
    """
    for rule in rules:
        if rule.predicate(ctx):
            return rule.build(ctx)
    raise ValueError(f"No classification rule matched client {ctx.record.client_id}")


def build_context(
    record: ClientRecord,
    as_of: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> ClassificationContext:
    as_of = as_of or datetime.now(timezone.utc)
    risk = score_client(record, as_of)
    return ClassificationContext(
        record=record,
        as_of=as_of,
        risk=risk,
        effective_risk=max(clamp_score(record.risk_score), risk.score),
        settings=settings or get_settings(),
    )


def classify_client(
    record: ClientRecord,
    as_of: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> ClassificationResult:
    """
    Classify one client into a billing disposition.

    Args:
        record: Validated client record
        as_of: Reference time for all date comparisons (default: now)
        settings: Threshold overrides (default: application settings)

    Returns:
        ClassificationResult from the first matching rule
    """
    return evaluate_rules(build_context(record, as_of, settings))


def _describe_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    )


def classify_batch(
    raw_clients: Sequence[Dict[str, Any]],
    as_of: Optional[datetime] = None,
    max_errors: int = 10,
    settings: Optional[Settings] = None,
) -> BatchClassificationOutcome:
    """
    Classify a batch of raw client dicts.

    Each client is validated on its own; a malformed client becomes an error
    entry and the rest of the batch is still classified. Error details are
    capped at ``max_errors`` while error_count reports the full number.
    """
    results: List[ClassificationResult] = []
    errors: List[BatchClassificationError] = []
    error_count = 0

    for index, raw in enumerate(raw_clients):
        try:
            record = ClientRecord.model_validate(raw)
            results.append(classify_client(record, as_of, settings))
        except ValidationError as e:
            error_count += 1
            if len(errors) < max_errors:
                client_id = raw.get("client_id") if isinstance(raw, dict) else None
                errors.append(BatchClassificationError(
                    index=index,
                    client_id=str(client_id) if client_id else f"index_{index}",
                    error=_describe_validation_error(e),
                ))

    if error_count:
        logger.warning(
            "Batch classification: %d of %d clients failed validation",
            error_count, len(raw_clients)
        )

    return BatchClassificationOutcome(
        total_processed=len(raw_clients),
        results=results,
        errors=errors,
        error_count=error_count,
    )


def explain_rules(rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES) -> List[Dict[str, Any]]:
    """Ordered rule names and descriptions for auditing the decision priority."""
    return [
        {
            "order": position,
            "name": rule.name,
            "disposition": rule.disposition.value,
            "description": rule.description,
        }
        for position, rule in enumerate(rules, start=1)
    ]


# =============================================================================
# Rule Self-Check
# =============================================================================

_SELF_CHECK_AS_OF = datetime(2026, 1, 15, tzinfo=timezone.utc)


def _self_check_fixtures() -> List[Dict[str, Any]]:
    as_of = _SELF_CHECK_AS_OF
    established = as_of - timedelta(days=730)
    base = {
        "legal_name": "Self Check Client",
        "email": "self-check@example.com",
        "signup_date": established,
        "last_activity_date": as_of - timedelta(days=10),
        "payment_history_months": 12,
        "total_lifetime_value": 600.0,
    }
    return [
        {
            "rule": "do_not_bill",
            "expected": Disposition.DO_NOT_BILL,
            "record": {**base, "client_id": "CHECK-DNB", "chargebacks": 3},
        },
        {
            "rule": "bill",
            "expected": Disposition.BILL,
            "record": {
                **base,
                "client_id": "CHECK-BILL",
                "has_valid_payment_method": True,
                "payment_method_type": "credit_card",
                "last_payment_date": as_of - timedelta(days=10),
                "last_payment_amount": 50.0,
                "successful_payments": 12,
                "subscription_status": "active",
            },
        },
        {
            "rule": "rewrite",
            "expected": Disposition.REWRITE,
            "record": {
                **base,
                "client_id": "CHECK-REWRITE",
                "legacy_plan": "war_chest_gold",
                "subscription_status": "suspended",
            },
        },
        {
            "rule": "flip",
            "expected": Disposition.FLIP,
            "record": {
                **base,
                "client_id": "CHECK-FLIP",
                "total_lifetime_value": 150.0,
                "last_activity_date": as_of - timedelta(days=200),
                "last_payment_date": as_of - timedelta(days=200),
                "last_payment_amount": 25.0,
                "has_valid_payment_method": True,
                "payment_method_type": "credit_card",
                "successful_payments": 6,
                "current_plan": "standard",
                "subscription_status": "cancelled",
            },
        },
        {
            "rule": "dormant",
            "expected": Disposition.DORMANT,
            "record": {
                **base,
                "client_id": "CHECK-DORMANT",
                "total_lifetime_value": 0.0,
                "last_activity_date": as_of - timedelta(days=400),
                "current_plan": "standard",
                "subscription_status": "cancelled",
            },
        },
    ]


def validate_classification_rules() -> Dict[str, Any]:
    """
    Run built-in scenario fixtures through the interpreter.

    Returns a per-rule pass/fail report plus an overall status, so a change to
    the thresholds or the rule order that breaks a known scenario is visible
    from the API.
    """
    checks = []
    for fixture in _self_check_fixtures():
        record = ClientRecord.model_validate(fixture["record"])
        result = classify_client(record, as_of=_SELF_CHECK_AS_OF)
        checks.append({
            "rule": fixture["rule"],
            "expected": fixture["expected"].value,
            "actual": result.recommended_status.value,
            "rule_fired": result.rule_fired,
            "passed": result.recommended_status == fixture["expected"],
        })

    all_passed = all(check["passed"] for check in checks)
    if not all_passed:
        logger.warning("Classification rule self-check failed: %s", checks)

    return {
        "status": "PASSED" if all_passed else "FAILED",
        "checks": checks,
        "rule_order": [rule.name for rule in CLASSIFICATION_RULES],
    }


# =============================================================================
# Aggregate Statistics
# =============================================================================

def _confidence_band(confidence: float) -> str:
    if confidence >= 90:
        return "high"
    if confidence >= 80:
        return "medium"
    return "low"


def compute_classification_stats(results: Sequence[ClassificationResult]) -> Dict[str, Any]:
    """
    Aggregate classification results for reporting.

    Returns status breakdown, risk distribution, priority counts, compliance
    review count, average confidence and recovery value totals (overall and
    per confidence band).
    """
    status_breakdown = {d.value: 0 for d in Disposition}
    risk_distribution = {band.value: 0 for band in RiskBand}
    priority_counts = {p.value: 0 for p in Priority}
    value_by_confidence = {"high": 0.0, "medium": 0.0, "low": 0.0}

    if not results:
        return {
            "total_classified": 0,
            "status_breakdown": status_breakdown,
            "risk_distribution": risk_distribution,
            "priority_counts": priority_counts,
            "compliance_reviews_required": 0,
            "average_confidence": 0.0,
            "total_estimated_recovery_value": 0.0,
            "recovery_value_by_confidence": value_by_confidence,
        }

    df = pd.DataFrame([r.model_dump(mode="json") for r in results])
    df['estimated_recovery_value'] = df['estimated_recovery_value'].fillna(0.0).astype(float)
    df['risk_band'] = df['risk_score'].map(lambda s: risk_band(s).value)
    df['confidence_band'] = df['confidence_score'].map(_confidence_band)

    status_breakdown.update(df['recommended_status'].value_counts().astype(int).to_dict())
    risk_distribution.update(df['risk_band'].value_counts().astype(int).to_dict())
    priority_counts.update(df['processing_priority'].value_counts().astype(int).to_dict())
    value_by_confidence.update(
        {k: round(float(v), 2) for k, v in df.groupby('confidence_band')['estimated_recovery_value'].sum().items()}
    )

    return {
        "total_classified": int(len(df)),
        "status_breakdown": {k: int(v) for k, v in status_breakdown.items()},
        "risk_distribution": {k: int(v) for k, v in risk_distribution.items()},
        "priority_counts": {k: int(v) for k, v in priority_counts.items()},
        "compliance_reviews_required": int(df['compliance_review_required'].sum()),
        "average_confidence": round(float(np.mean(df['confidence_score'])), 2),
        "total_estimated_recovery_value": round(float(df['estimated_recovery_value'].sum()), 2),
        "recovery_value_by_confidence": value_by_confidence,
    }
