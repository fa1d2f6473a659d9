"""
Transaction Log Processor

Reprocesses historical gateway transactions during migration:

1. validate - hard errors fail the record, warnings send it to review
2. enrich - customer risk profile, geographic risk, fraud indicators,
   chargeback probability and card metadata (lookups run concurrently)
3. assess - additive 0-100 risk score with an APPROVE/REVIEW/REJECT
   recommendation
4. status - FAILED if invalid, NEEDS_REVIEW on high risk or any warning,
   otherwise SUCCESS

Customer and geography lookups go through injected providers so the processor
can be pointed at a real data source without touching the scoring logic.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from pydantic import TypeAdapter, ValidationError

from billing_migration.core.config import Settings, get_settings
from billing_migration.core.timeutils import ensure_utc, utc_now
from billing_migration.models.enums import (
    FraudIndicator,
    ProcessingStatus,
    Recommendation,
    RiskBand,
    RiskLevel,
    TransactionPaymentType,
    TransactionStatus,
    TransactionType,
)
from billing_migration.models.schemas import (
    CardMetadata,
    CustomerRiskProfile,
    GeographicRisk,
    ProcessedTransaction,
    TransactionEnrichment,
    TransactionRecord,
    TransactionRiskAssessment,
    TransactionValidation,
)
from billing_migration.services.risk_scoring import risk_band


logger = logging.getLogger(__name__)


_DATETIME_ADAPTER = TypeAdapter(datetime)

MAX_HISTORY_YEARS: int = 5
LARGE_AMOUNT_WARNING: float = 50000.0
LARGE_AMOUNT_FRAUD: float = 9000.0
SUSPICIOUS_RESPONSE_CODES = frozenset({"201", "202", "203"})
ACCEPTED_AVS_CODES = frozenset({"X", "Y", "A"})
ACCEPTED_CVV_CODES = frozenset({"M", "P"})
DEFAULT_COUNTRY = "US"

REJECT_THRESHOLD: int = 80
REVIEW_THRESHOLD: int = 50
NEEDS_REVIEW_RISK: int = 70
HIGH_RISK_THRESHOLD: int = 70


def parse_transaction_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 date/datetime string; None when it cannot be parsed."""
    if not value:
        return None
    try:
        return ensure_utc(_DATETIME_ADAPTER.validate_python(value))
    except ValidationError:
        return None


# =============================================================================
# Lookup Providers
# =============================================================================

class CustomerProfileProvider(ABC):
    @abstractmethod
    async def get_profile(self, customer_id: str) -> CustomerRiskProfile:
        ...


class GeoRiskProvider(ABC):
    @abstractmethod
    async def get_risk(self, country: str) -> GeographicRisk:
        ...


class InMemoryCustomerProfileProvider(CustomerProfileProvider):
    """Profiles held in a dict; unknown customers are low risk."""

    def __init__(self, profiles: Optional[Iterable[CustomerRiskProfile]] = None):
        self._profiles: Dict[str, CustomerRiskProfile] = {
            profile.customer_id: profile for profile in (profiles or [])
        }

    async def get_profile(self, customer_id: str) -> CustomerRiskProfile:
        profile = self._profiles.get(customer_id)
        if profile is None:
            return CustomerRiskProfile(customer_id=customer_id, risk_level=RiskLevel.LOW)
        return profile


class StaticGeoRiskProvider(GeoRiskProvider):
    """Country list lookup: listed countries are high risk, everything else low."""

    def __init__(self, high_risk_countries: Sequence[str]):
        self._high_risk = frozenset(code.upper() for code in high_risk_countries)

    async def get_risk(self, country: str) -> GeographicRisk:
        code = (country or DEFAULT_COUNTRY).upper()
        level = RiskLevel.HIGH if code in self._high_risk else RiskLevel.LOW
        return GeographicRisk(country=code, risk_level=level)


# =============================================================================
# Processor
# =============================================================================

class TransactionLogProcessor:
    def __init__(
        self,
        customer_profiles: Optional[CustomerProfileProvider] = None,
        geo_risk: Optional[GeoRiskProvider] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.customer_profiles = customer_profiles or InMemoryCustomerProfileProvider()
        self.geo_risk = geo_risk or StaticGeoRiskProvider(self.settings.high_risk_countries)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self, transaction: TransactionRecord, as_of: Optional[datetime] = None) -> TransactionValidation:
        errors: List[str] = []
        warnings: List[str] = []
        reference = ensure_utc(as_of) if as_of is not None else utc_now()

        if not transaction.transaction_id.strip():
            errors.append("Missing transaction_id")
        if not transaction.customer_id.strip():
            errors.append("Missing customer_id")
        if transaction.amount <= 0:
            errors.append("Invalid amount")

        if not transaction.transaction_date:
            errors.append("Missing transaction_date")
        else:
            occurred = parse_transaction_date(transaction.transaction_date)
            if occurred is None:
                errors.append("Invalid transaction_date format")
            elif occurred > reference:
                warnings.append("Transaction date is in the future")
            elif occurred < reference - timedelta(days=365 * MAX_HISTORY_YEARS):
                warnings.append("Transaction older than 5 years")

        if transaction.amount > LARGE_AMOUNT_WARNING:
            warnings.append("Unusually large transaction amount")

        if transaction.status == TransactionStatus.APPROVED and not transaction.auth_code:
            warnings.append("Approved transaction missing auth code")

        payment = transaction.payment_method
        if payment is not None and payment.type == TransactionPaymentType.CREDIT_CARD:
            if not payment.last_four or not payment.card_type:
                warnings.append("Credit card transaction missing card details")

        return TransactionValidation(is_valid=not errors, errors=errors, warnings=warnings)

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    @staticmethod
    def detect_fraud_indicators(transaction: TransactionRecord) -> List[str]:
        indicators: List[str] = []

        if transaction.amount > LARGE_AMOUNT_FRAUD:
            indicators.append(FraudIndicator.LARGE_AMOUNT.value)

        occurred = parse_transaction_date(transaction.transaction_date)
        if occurred is not None and (occurred.hour < 6 or occurred.hour > 22):
            indicators.append(FraudIndicator.UNUSUAL_HOUR.value)

        if transaction.response_code in SUSPICIOUS_RESPONSE_CODES:
            indicators.append(FraudIndicator.SUSPICIOUS_RESPONSE.value)

        if transaction.avs_response and transaction.avs_response.upper() not in ACCEPTED_AVS_CODES:
            indicators.append(FraudIndicator.AVS_MISMATCH.value)

        if transaction.cvv_response and transaction.cvv_response.upper() not in ACCEPTED_CVV_CODES:
            indicators.append(FraudIndicator.CVV_MISMATCH.value)

        for flag in transaction.fraud_flags:
            if flag not in indicators:
                indicators.append(flag)

        return indicators

    @staticmethod
    def chargeback_probability(transaction: TransactionRecord) -> float:
        probability = 0.05
        if transaction.amount > 500:
            probability += 0.1
        if transaction.amount > 1000:
            probability += 0.15
        if transaction.status == TransactionStatus.DECLINED:
            probability += 0.3
        if transaction.type == TransactionType.SALE:
            probability += 0.05
        return round(min(probability, 1.0), 4)

    async def enrich(self, transaction: TransactionRecord) -> TransactionEnrichment:
        country = (
            transaction.billing_address.country
            if transaction.billing_address and transaction.billing_address.country
            else DEFAULT_COUNTRY
        )

        profile, geography = await asyncio.gather(
            self.customer_profiles.get_profile(transaction.customer_id),
            self.geo_risk.get_risk(country),
        )

        card_data = None
        payment = transaction.payment_method
        if payment is not None and payment.type == TransactionPaymentType.CREDIT_CARD:
            card_data = CardMetadata(card_type=payment.card_type, last_four=payment.last_four)

        return TransactionEnrichment(
            customer_risk_profile=profile,
            geographic_data=geography,
            fraud_indicators=self.detect_fraud_indicators(transaction),
            chargeback_probability=self.chargeback_probability(transaction),
            card_data=card_data,
        )

    # -------------------------------------------------------------------------
    # Risk Assessment
    # -------------------------------------------------------------------------

    @staticmethod
    def assess(transaction: TransactionRecord, enrichment: TransactionEnrichment) -> TransactionRiskAssessment:
        score = 0
        flags: List[str] = []

        if transaction.amount > 10000:
            score += 20
            flags.append("High transaction amount")
        elif transaction.amount > 5000:
            score += 10
            flags.append("Elevated transaction amount")

        if transaction.status == TransactionStatus.DECLINED:
            score += 30
            flags.append("Declined transaction")
        elif transaction.status == TransactionStatus.ERROR:
            score += 25
            flags.append("Transaction error")

        score += len(enrichment.fraud_indicators) * 15
        flags.extend(enrichment.fraud_indicators)

        profile = enrichment.customer_risk_profile
        if profile is not None and profile.risk_level == RiskLevel.HIGH:
            score += 25
            flags.append("High-risk customer")

        geography = enrichment.geographic_data
        if geography is not None and geography.risk_level == RiskLevel.HIGH:
            score += 15
            flags.append("High-risk geography")

        if enrichment.chargeback_probability > 0.7:
            score += 30
            flags.append("High chargeback probability")
        elif enrichment.chargeback_probability > 0.4:
            score += 15
            flags.append("Elevated chargeback probability")

        if score >= REJECT_THRESHOLD:
            recommendation = Recommendation.REJECT
        elif score >= REVIEW_THRESHOLD:
            recommendation = Recommendation.REVIEW
        else:
            recommendation = Recommendation.APPROVE

        return TransactionRiskAssessment(
            score=min(score, 100),
            flags=flags,
            recommendation=recommendation,
        )

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def process(self, transaction: TransactionRecord, as_of: Optional[datetime] = None) -> ProcessedTransaction:
        validation = self.validate(transaction, as_of)
        enrichment = await self.enrich(transaction)
        risk = self.assess(transaction, enrichment)

        if not validation.is_valid:
            status = ProcessingStatus.FAILED
        elif risk.score >= NEEDS_REVIEW_RISK or validation.warnings:
            status = ProcessingStatus.NEEDS_REVIEW
        else:
            status = ProcessingStatus.SUCCESS

        return ProcessedTransaction(
            transaction_id=transaction.transaction_id,
            processing_status=status,
            validation_errors=validation.errors,
            validation_warnings=validation.warnings,
            enrichment_data=enrichment,
            risk_assessment=risk,
            processed_at=utc_now(),
        )


# =============================================================================
# Reporting
# =============================================================================

def summarize_processed_transactions(results: Sequence[ProcessedTransaction]) -> Dict[str, Any]:
    """Status counts, high-risk count, average risk and risk band distribution."""
    risk_distribution = {band.value: 0 for band in RiskBand}

    if not results:
        return {
            "total_processed": 0,
            "successful": 0,
            "failed": 0,
            "needs_review": 0,
            "high_risk": 0,
            "average_risk_score": 0.0,
            "risk_distribution": risk_distribution,
        }

    df = pd.DataFrame([
        {"status": r.processing_status.value, "risk_score": r.risk_assessment.score}
        for r in results
    ])
    status_counts = df['status'].value_counts()
    risk_distribution.update(
        df['risk_score'].map(lambda s: risk_band(s).value).value_counts().astype(int).to_dict()
    )

    return {
        "total_processed": int(len(df)),
        "successful": int(status_counts.get(ProcessingStatus.SUCCESS.value, 0)),
        "failed": int(status_counts.get(ProcessingStatus.FAILED.value, 0)),
        "needs_review": int(status_counts.get(ProcessingStatus.NEEDS_REVIEW.value, 0)),
        "high_risk": int((df['risk_score'] >= HIGH_RISK_THRESHOLD).sum()),
        "average_risk_score": round(float(df['risk_score'].mean()), 2),
        "risk_distribution": {k: int(v) for k, v in risk_distribution.items()},
    }
