"""
Tests for the vault migration engine.

Test Coverage:
- Payment method validation and expiry handling
- Duplicate detection by email + last four within one run
- Strict vs permissive validation modes
- Risk assessment recommendations
- New vault id format
- Token mapping summaries and token validation against stored mappings
"""

import re
from datetime import timedelta

import pytest

from billing_migration.models.enums import (
    JobKind,
    MappingStatus,
    Recommendation,
    ValidationMode,
)
from billing_migration.models.schemas import LegacyVaultRecord
from billing_migration.services.vault_migration import (
    VaultMigrationEngine,
    assess_vault_risk,
    is_card_expired,
    last_four_digits,
    summarize_token_mappings,
    to_base36,
    validate_payment_method,
    validate_vault_tokens,
    vault_fingerprint,
)


VAULT_ID_PATTERN = re.compile(r"^WC_[0-9a-z]+_[0-9a-z]{6}$")


class TestHelpers:
    """Pure helper functions."""

    def test_to_base36(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"

    def test_last_four_digits_ignores_mask_characters(self):
        assert last_four_digits("****-****-****-1234") == "1234"
        assert last_four_digits("**12") == "12"

    def test_fingerprint_ignores_email_case(self):
        assert vault_fingerprint("Dana@Example.com", "****4242") == vault_fingerprint("dana@example.com", "xxxx4242")
        assert vault_fingerprint("dana@example.com", "****4242") != vault_fingerprint("dana@example.com", "****1111")

    def test_card_expiry_is_compared_by_month(self, as_of):
        # as_of is January 2026
        assert is_card_expired("1225", as_of) is True
        assert is_card_expired("0126", as_of) is False
        assert is_card_expired("0226", as_of) is False


class TestValidatePaymentMethod:
    """Tests for validate_payment_method()."""

    def test_valid_card_has_no_errors(self, vault_factory, as_of):
        record = LegacyVaultRecord.model_validate(vault_factory())

        assert validate_payment_method(record, as_of) == []

    def test_collects_every_problem(self, vault_factory, as_of):
        record = LegacyVaultRecord.model_validate(
            vault_factory(cc_number_masked="****12", cc_exp="13/30", cc_type="")
        )

        errors = validate_payment_method(record, as_of)

        assert errors == ["Invalid card number", "Invalid expiration date format", "Missing card type"]

    def test_expired_card(self, vault_factory, as_of):
        record = LegacyVaultRecord.model_validate(vault_factory(cc_exp="0624"))

        assert validate_payment_method(record, as_of) == ["Card expired"]


class TestAssessVaultRisk:
    """Tests for assess_vault_risk()."""

    def test_clean_record_is_approved(self, vault_factory, as_of):
        record = LegacyVaultRecord.model_validate(vault_factory())

        risk = assess_vault_risk(record, [], as_of)

        assert risk.score == 0
        assert risk.recommendation == Recommendation.APPROVE

    def test_moderate_risk_is_reviewed(self, vault_factory, as_of):
        record = LegacyVaultRecord.model_validate(vault_factory(
            previous_chargebacks=1,
            account_notes="Customer opened a dispute in 2023",
            risk_level="high",
        ))

        risk = assess_vault_risk(record, [], as_of)

        assert risk.score == 45
        assert risk.recommendation == Recommendation.REVIEW
        assert "Risk keywords in account notes" in risk.factors
        assert "Legacy risk level: high" in risk.factors

    def test_recommendation_uses_unclamped_total(self, vault_factory, as_of):
        record = LegacyVaultRecord.model_validate(vault_factory(
            previous_chargebacks=5,
            status="disabled",
        ))

        risk = assess_vault_risk(record, ["Card expired"], as_of)

        assert risk.score == 100
        assert risk.recommendation == Recommendation.REJECT
        assert "Account status: disabled" in risk.factors


@pytest.mark.asyncio
class TestVaultMigrationEngine:
    """Tests for VaultMigrationEngine.process()."""

    async def test_duplicate_is_detected_in_submission_order(self, vault_factory, fast_settings, as_of):
        # Arrange: records 1 and 3 share email and last four
        engine = VaultMigrationEngine(settings=fast_settings)
        records = [
            LegacyVaultRecord.model_validate(vault_factory(customer_vault_id="V1")),
            LegacyVaultRecord.model_validate(vault_factory(
                customer_vault_id="V2", email="other@example.com", cc_number_masked="************1111",
            )),
            LegacyVaultRecord.model_validate(vault_factory(customer_vault_id="V3")),
        ]

        # Act
        mappings = [await engine.process(record, as_of) for record in records]

        # Assert
        assert [m.mapping_status for m in mappings] == [
            MappingStatus.MAPPED, MappingStatus.MAPPED, MappingStatus.DUPLICATE,
        ]
        duplicate = mappings[2]
        assert duplicate.new_vault_id == ""
        assert duplicate.validation_errors == ["Duplicate vault record found"]
        assert duplicate.risk_assessment.score == 100
        assert duplicate.risk_assessment.recommendation == Recommendation.REJECT

    async def test_mapped_record_gets_new_vault_id(self, vault_factory, fast_settings, as_of):
        engine = VaultMigrationEngine(settings=fast_settings)

        mapping = await engine.process(LegacyVaultRecord.model_validate(vault_factory()), as_of)

        assert mapping.mapping_status == MappingStatus.MAPPED
        assert VAULT_ID_PATTERN.match(mapping.new_vault_id)
        assert mapping.new_vault_id != mapping.legacy_vault_id
        assert mapping.customer_id == "CUST-1001"
        assert mapping.card_type == "visa"

    async def test_customer_id_defaults_to_vault_id(self, vault_factory, fast_settings, as_of):
        engine = VaultMigrationEngine(settings=fast_settings)

        mapping = await engine.process(
            LegacyVaultRecord.model_validate(vault_factory(customer_id=None)), as_of
        )

        assert mapping.customer_id == "NMI-1001"

    async def test_expired_card_fails_in_strict_mode(self, vault_factory, fast_settings, as_of):
        engine = VaultMigrationEngine(ValidationMode.STRICT, settings=fast_settings)

        mapping = await engine.process(
            LegacyVaultRecord.model_validate(vault_factory(cc_exp="0624")), as_of
        )

        assert mapping.mapping_status == MappingStatus.FAILED
        assert mapping.new_vault_id == ""
        assert mapping.validation_errors == ["Card expired"]
        assert "Invalid or expired payment method" in mapping.risk_assessment.factors

    async def test_expired_card_needs_validation_in_permissive_mode(self, vault_factory, fast_settings, as_of):
        engine = VaultMigrationEngine(ValidationMode.PERMISSIVE, settings=fast_settings)

        mapping = await engine.process(
            LegacyVaultRecord.model_validate(vault_factory(cc_exp="0624")), as_of
        )

        assert mapping.mapping_status == MappingStatus.NEEDS_VALIDATION
        assert VAULT_ID_PATTERN.match(mapping.new_vault_id)

    async def test_review_risk_needs_validation(self, vault_factory, fast_settings, as_of):
        engine = VaultMigrationEngine(settings=fast_settings)
        record = LegacyVaultRecord.model_validate(vault_factory(
            created_date=(as_of - timedelta(days=30)).isoformat(),
            previous_chargebacks=1,
        ))

        mapping = await engine.process(record, as_of)

        assert mapping.risk_assessment.score == 45
        assert mapping.mapping_status == MappingStatus.NEEDS_VALIDATION

    async def test_duplicate_detection_is_scoped_to_one_engine(self, vault_factory, fast_settings, as_of):
        record = LegacyVaultRecord.model_validate(vault_factory())

        first = await VaultMigrationEngine(settings=fast_settings).process(record, as_of)
        second = await VaultMigrationEngine(settings=fast_settings).process(record, as_of)

        assert first.mapping_status == MappingStatus.MAPPED
        assert second.mapping_status == MappingStatus.MAPPED


class TestSummaries:
    """Tests for summarize_token_mappings()."""

    def test_empty(self):
        summary = summarize_token_mappings([])

        assert summary["total_mappings"] == 0
        assert summary["card_types"] == {}

    @pytest.mark.asyncio
    async def test_counts_statuses_and_card_types(self, vault_factory, fast_settings, as_of):
        engine = VaultMigrationEngine(settings=fast_settings)
        mappings = [
            await engine.process(LegacyVaultRecord.model_validate(vault_factory(customer_vault_id="V1")), as_of),
            await engine.process(LegacyVaultRecord.model_validate(vault_factory(customer_vault_id="V2")), as_of),
            await engine.process(LegacyVaultRecord.model_validate(vault_factory(
                customer_vault_id="V3", email="x@example.com", cc_exp="0624", cc_type="Mastercard",
            )), as_of),
        ]

        summary = summarize_token_mappings(mappings)

        assert summary["total_mappings"] == 3
        assert summary["mapped"] == 1
        assert summary["duplicates"] == 1
        assert summary["failed"] == 1
        assert summary["high_risk"] == 1
        assert summary["card_types"] == {"visa": 2, "mastercard": 1}


@pytest.mark.asyncio
class TestValidateVaultTokens:
    """Tests for validate_vault_tokens() against the in-memory repository."""

    async def test_lookup_by_new_and_legacy_id(self, repository, vault_factory, fast_settings, as_of):
        # Arrange
        engine = VaultMigrationEngine(settings=fast_settings)
        mapped = await engine.process(
            LegacyVaultRecord.model_validate(vault_factory(customer_vault_id="V1")), as_of
        )
        failed = await engine.process(
            LegacyVaultRecord.model_validate(vault_factory(
                customer_vault_id="V2", email="y@example.com", cc_exp="0624",
            )), as_of
        )
        await repository.append_results(
            JobKind.VAULT_MIGRATION,
            [mapped.model_dump(mode="json"), failed.model_dump(mode="json")],
            batch_id="VB-1",
        )

        # Act
        validations = await validate_vault_tokens(
            [mapped.new_vault_id, "V2", "UNKNOWN", ""], repository
        )

        # Assert
        assert validations[0].is_valid is True
        assert validations[0].mapping_status == MappingStatus.MAPPED
        assert validations[1].is_valid is False
        assert validations[1].error_message == "Mapping status is FAILED"
        assert validations[2].is_valid is False
        assert validations[2].error_message == "Vault token not found"
        assert validations[3].error_message == "Vault token not found"
