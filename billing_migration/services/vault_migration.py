"""
Vault Migration Engine

Migrates legacy gateway customer-vault entries to new vault tokens. Each record
goes through:

1. Payment method validation (masked number, MMYY expiry, card type)
2. Duplicate detection by email + last four fingerprint, scoped to one run
3. Risk assessment (chargebacks, account age, payment method, status,
   contact completeness, account note keywords, legacy risk level)
4. New vault id generation
5. Mapping status decision

One VaultMigrationEngine instance is created per batch run, so duplicate
detection is advisory and never spans batches.
"""

import hashlib
import logging
import re
import secrets
import string
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set

import pandas as pd

from billing_migration.core.config import Settings, get_settings
from billing_migration.core.timeutils import ensure_utc, months_since, utc_now
from billing_migration.models.enums import (
    MappingStatus,
    Recommendation,
    RiskLevel,
    ValidationMode,
    VaultStatus,
)
from billing_migration.models.schemas import (
    LegacyVaultRecord,
    TokenMapping,
    VaultRiskAssessment,
    VaultTokenValidation,
)


logger = logging.getLogger(__name__)


BASE36_ALPHABET = string.digits + string.ascii_lowercase
RANDOM_SUFFIX_LENGTH = 6

EXPIRY_PATTERN = re.compile(r"^(0[1-9]|1[0-2])(\d{2})$")

RISK_KEYWORDS = (
    "chargeback",
    "dispute",
    "fraud",
    "suspicious",
    "declined",
    "failed",
    "risk",
    "block",
    "hold",
    "investigation",
)

REJECT_THRESHOLD: int = 70
REVIEW_THRESHOLD: int = 40
HIGH_RISK_THRESHOLD: int = 70

DUPLICATE_RISK = VaultRiskAssessment(
    score=100,
    factors=["Duplicate record"],
    recommendation=Recommendation.REJECT,
)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def last_four_digits(masked_number: str) -> str:
    digits = re.sub(r"\D", "", masked_number or "")
    return digits[-4:]


def vault_fingerprint(email: str, masked_number: str) -> str:
    """sha256 of the lower-cased email and the last four card digits."""
    key = f"{(email or '').strip().lower()}|{last_four_digits(masked_number)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def is_card_expired(cc_exp: str, as_of: Optional[datetime] = None) -> bool:
    """True when the MMYY expiry month is before the reference month."""
    match = EXPIRY_PATTERN.match(cc_exp or "")
    if not match:
        return False
    month = int(match.group(1))
    year = 2000 + int(match.group(2))
    reference = ensure_utc(as_of) if as_of is not None else utc_now()
    return (year, month) < (reference.year, reference.month)


def validate_payment_method(record: LegacyVaultRecord, as_of: Optional[datetime] = None) -> List[str]:
    """Return validation error strings for the stored card; empty means valid."""
    errors: List[str] = []

    if len(last_four_digits(record.cc_number_masked)) < 4:
        errors.append("Invalid card number")

    if not EXPIRY_PATTERN.match(record.cc_exp or ""):
        errors.append("Invalid expiration date format")
    elif is_card_expired(record.cc_exp, as_of):
        errors.append("Card expired")

    if not record.cc_type:
        errors.append("Missing card type")

    return errors


def assess_vault_risk(
    record: LegacyVaultRecord,
    validation_errors: Sequence[str],
    as_of: Optional[datetime] = None,
) -> VaultRiskAssessment:
    """
    Score a vault record 0-100.

    The recommendation is taken from the raw total before clamping, so very
    risky records still read as REJECT even though the reported score is 100.
    """
    score = 0
    factors: List[str] = []

    if record.previous_chargebacks > 0:
        score += record.previous_chargebacks * 20
        factors.append(f"{record.previous_chargebacks} previous chargebacks")

    account_age_months = months_since(record.created_date, as_of)
    if account_age_months < 3:
        score += 25
        factors.append("New account (< 3 months)")
    elif account_age_months < 6:
        score += 15
        factors.append("Recent account (< 6 months)")

    if validation_errors:
        score += 30
        factors.append("Invalid or expired payment method")

    if record.status != VaultStatus.ACTIVE:
        score += 20
        factors.append(f"Account status: {record.status.value}")

    if not record.email or not record.phone:
        score += 10
        factors.append("Incomplete contact information")

    notes = (record.account_notes or "").lower()
    if notes and any(keyword in notes for keyword in RISK_KEYWORDS):
        score += 15
        factors.append("Risk keywords in account notes")

    if record.risk_level == RiskLevel.HIGH:
        score += 10
        factors.append("Legacy risk level: high")

    if score >= REJECT_THRESHOLD:
        recommendation = Recommendation.REJECT
    elif score >= REVIEW_THRESHOLD:
        recommendation = Recommendation.REVIEW
    else:
        recommendation = Recommendation.APPROVE

    return VaultRiskAssessment(
        score=min(score, 100),
        factors=factors,
        recommendation=recommendation,
    )


class VaultMigrationEngine:
    """
    Per-run vault migration engine.

    Holds the fingerprints seen so far in the run. The fingerprint check and
    registration happen without any await in between, so concurrent records in
    a chunk are deduplicated in submission order.
    """

    def __init__(
        self,
        validation_mode: ValidationMode = ValidationMode.STRICT,
        settings: Optional[Settings] = None,
    ):
        self.validation_mode = validation_mode
        self.settings = settings or get_settings()
        self._seen_fingerprints: Set[str] = set()

    def generate_vault_id(self, legacy_vault_id: Optional[str] = None) -> str:
        """Build '{prefix}_{base36 ms timestamp}_{6 random base36 chars}'."""
        while True:
            timestamp = to_base36(int(time.time() * 1000))
            suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(RANDOM_SUFFIX_LENGTH))
            vault_id = f"{self.settings.new_vault_id_prefix}_{timestamp}_{suffix}"
            if vault_id != legacy_vault_id:
                return vault_id

    def _register_fingerprint(self, record: LegacyVaultRecord) -> bool:
        """Return True if the fingerprint was already seen in this run."""
        fingerprint = vault_fingerprint(record.email, record.cc_number_masked)
        if fingerprint in self._seen_fingerprints:
            return True
        self._seen_fingerprints.add(fingerprint)
        return False

    async def process(self, record: LegacyVaultRecord, as_of: Optional[datetime] = None) -> TokenMapping:
        now = utc_now()
        customer_id = record.customer_id or record.customer_vault_id

        validation_errors = validate_payment_method(record, as_of)

        if self._register_fingerprint(record):
            logger.info("Duplicate vault record %s", record.customer_vault_id)
            return TokenMapping(
                legacy_vault_id=record.customer_vault_id,
                new_vault_id="",
                customer_id=customer_id,
                mapping_status=MappingStatus.DUPLICATE,
                validation_errors=["Duplicate vault record found"],
                risk_assessment=DUPLICATE_RISK,
                card_type=record.cc_type or None,
                created_at=now,
                updated_at=now,
            )

        risk = assess_vault_risk(record, validation_errors, as_of)

        if validation_errors:
            status = (
                MappingStatus.NEEDS_VALIDATION
                if self.validation_mode == ValidationMode.PERMISSIVE
                else MappingStatus.FAILED
            )
        elif risk.recommendation == Recommendation.REVIEW:
            status = MappingStatus.NEEDS_VALIDATION
        else:
            status = MappingStatus.MAPPED

        new_vault_id = "" if status == MappingStatus.FAILED else self.generate_vault_id(record.customer_vault_id)

        return TokenMapping(
            legacy_vault_id=record.customer_vault_id,
            new_vault_id=new_vault_id,
            customer_id=customer_id,
            mapping_status=status,
            validation_errors=validation_errors,
            risk_assessment=risk,
            card_type=record.cc_type or None,
            created_at=now,
            updated_at=now,
        )


# =============================================================================
# Reporting
# =============================================================================

def summarize_token_mappings(mappings: Sequence[TokenMapping]) -> Dict[str, Any]:
    """Counts per mapping status, high-risk count, average risk and card types."""
    if not mappings:
        return {
            "total_mappings": 0,
            "mapped": 0,
            "needs_validation": 0,
            "failed": 0,
            "duplicates": 0,
            "high_risk": 0,
            "average_risk_score": 0.0,
            "card_types": {},
        }

    df = pd.DataFrame([
        {
            "status": m.mapping_status.value,
            "risk_score": m.risk_assessment.score,
            "card_type": (m.card_type or "unknown").lower(),
        }
        for m in mappings
    ])
    status_counts = df['status'].value_counts()

    return {
        "total_mappings": int(len(df)),
        "mapped": int(status_counts.get(MappingStatus.MAPPED.value, 0)),
        "needs_validation": int(status_counts.get(MappingStatus.NEEDS_VALIDATION.value, 0)),
        "failed": int(status_counts.get(MappingStatus.FAILED.value, 0)),
        "duplicates": int(status_counts.get(MappingStatus.DUPLICATE.value, 0)),
        "high_risk": int((df['risk_score'] >= HIGH_RISK_THRESHOLD).sum()),
        "average_risk_score": round(float(df['risk_score'].mean()), 2),
        "card_types": {k: int(v) for k, v in df['card_type'].value_counts().items()},
    }


async def validate_vault_tokens(vault_ids: Sequence[str], repository) -> List[VaultTokenValidation]:
    """
    Check each id (new or legacy) against stored token mappings.

    A token is valid when a mapping exists for it in MAPPED or
    NEEDS_VALIDATION status.
    """
    usable = (MappingStatus.MAPPED, MappingStatus.NEEDS_VALIDATION)
    validations: List[VaultTokenValidation] = []

    for vault_id in vault_ids:
        mapping = await repository.find_token_mapping(vault_id)
        if mapping is None:
            validations.append(VaultTokenValidation(
                vault_id=vault_id,
                is_valid=False,
                validation_date=utc_now(),
                error_message="Vault token not found",
            ))
            continue

        is_valid = mapping.mapping_status in usable
        validations.append(VaultTokenValidation(
            vault_id=vault_id,
            is_valid=is_valid,
            mapping_status=mapping.mapping_status,
            validation_date=utc_now(),
            error_message=None if is_valid else f"Mapping status is {mapping.mapping_status.value}",
        ))

    return validations
