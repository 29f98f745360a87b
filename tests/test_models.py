"""
Tests for Household Ledger models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows against the in-memory store
3. No real database server in tests (SQLite in memory at most)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from household_ledger.models.contract import (
    ContractChanges,
    ContractInput,
    PriceTier,
    ValidationIssue,
    ValidationResult,
)
from household_ledger.models.obligation import (
    Category,
    InstallmentPlan,
    Obligation,
    ObligationStatus,
    PaymentRecord,
)
from household_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestContractModels:
    """Tests for contract-related Pydantic models."""

    def test_contract_input_creation(self):
        """Test ContractInput model creation with defaults."""
        contract = ContractInput(
            project_id=uuid4(),
            contract_name="Shop A",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            base_amount=Decimal("800.00"),
        )
        assert contract.has_buffer_period is False
        assert contract.buffer_included_in_term is True
        assert contract.contract_payment_day == 1

    def test_contract_name_strips_whitespace(self):
        """Test that whitespace is stripped from the contract name."""
        contract = ContractInput(
            project_id=uuid4(),
            contract_name="  Shop A  ",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            base_amount=Decimal("800"),
        )
        assert contract.contract_name == "Shop A"

    def test_contract_rejects_negative_base_amount(self):
        """Test that a negative base amount is rejected."""
        with pytest.raises(ValueError):
            ContractInput(
                project_id=uuid4(),
                contract_name="Shop A",
                start_date=date(2024, 1, 1),
                end_date=date(2024, 12, 31),
                base_amount=Decimal("-1"),
            )

    def test_inverted_interval_is_left_to_the_validator(self):
        """Test the model accepts end < start; the validator rejects it."""
        contract = ContractInput(
            project_id=uuid4(),
            contract_name="Shop A",
            start_date=date(2024, 6, 1),
            end_date=date(2024, 1, 1),
            base_amount=Decimal("800"),
        )
        assert contract.end_date < contract.start_date

    def test_price_tier_covers(self):
        """Test tier year ranges are inclusive at both ends."""
        tier = PriceTier(
            contract_id=uuid4(),
            year_start=3,
            year_end=5,
            monthly_amount=Decimal("1200"),
        )
        assert not tier.covers(2)
        assert tier.covers(3)
        assert tier.covers(5)
        assert not tier.covers(6)

    def test_contract_changes_provided(self):
        """Test only set fields count as provided."""
        changes = ContractChanges(contract_name="Shop B", buffer_months=0)
        assert changes.provided() == {"contract_name": "Shop B", "buffer_months": 0}


class TestObligationModels:
    """Tests for obligation-related Pydantic models."""

    def test_obligation_defaults(self):
        """Test a new obligation is pending and unpaid."""
        obligation = Obligation(
            category_id=uuid4(),
            item_name="2024-01-Shop A",
            total_amount=Decimal("800.00"),
            start_date=date(2024, 1, 31),
        )
        assert obligation.status == ObligationStatus.PENDING
        assert obligation.is_paid is False
        assert obligation.outstanding == Decimal("800.00")
        assert obligation.is_frozen is False

    def test_any_payment_freezes_obligation(self):
        """Test a partial payment marks the obligation as paid for generation."""
        obligation = Obligation(
            category_id=uuid4(),
            item_name="2024-01-Shop A",
            total_amount=Decimal("800.00"),
            paid_amount=Decimal("0.01"),
            start_date=date(2024, 1, 31),
        )
        assert obligation.is_paid is True
        assert obligation.outstanding == Decimal("799.99")
        assert obligation.is_frozen is True

    def test_replaced_obligation_is_frozen(self):
        """Test an obligation split into installments is frozen though unpaid."""
        obligation = Obligation(
            category_id=uuid4(),
            item_name="2024-01-Shop A",
            total_amount=Decimal("800.00"),
            status=ObligationStatus.REPLACED,
            start_date=date(2024, 1, 31),
        )
        assert obligation.is_paid is False
        assert obligation.is_frozen is True

    def test_obligation_rejects_bad_month_key(self):
        """Test month keys must be YYYY-MM."""
        with pytest.raises(ValueError):
            Obligation(
                category_id=uuid4(),
                month_key="2024-1",
                item_name="2024-01-Shop A",
                total_amount=Decimal("800.00"),
                start_date=date(2024, 1, 31),
            )

    def test_payment_record_requires_positive_amount(self):
        with pytest.raises(ValueError):
            PaymentRecord(
                obligation_id=uuid4(),
                amount_paid=Decimal("0"),
                payment_date=date(2024, 1, 31),
            )

    def test_category_type_is_restricted(self):
        with pytest.raises(ValueError):
            Category(category_name="租金", category_type="business")


class TestInstallmentPlanModel:
    """Tests for installment schedule validation."""

    def test_schedule_must_match_count(self):
        """Test the schedule length must equal installment_count."""
        with pytest.raises(ValueError, match="Expected 3 installment amounts"):
            InstallmentPlan(
                item_id=uuid4(),
                total_amount=Decimal("100.00"),
                installment_count=3,
                monthly_amount=Decimal("50.00"),
                amounts=[Decimal("50.00"), Decimal("50.00")],
                start_date=date(2024, 1, 31),
            )

    def test_schedule_must_add_up(self):
        """Test the schedule must sum to the plan total."""
        with pytest.raises(ValueError, match="must add up to the plan total"):
            InstallmentPlan(
                item_id=uuid4(),
                total_amount=Decimal("100.00"),
                installment_count=2,
                monthly_amount=Decimal("50.00"),
                amounts=[Decimal("50.00"), Decimal("40.00")],
                start_date=date(2024, 1, 31),
            )

    def test_fixed_plan_without_schedule(self):
        """Test a plan with no explicit schedule is accepted."""
        plan = InstallmentPlan(
            item_id=uuid4(),
            total_amount=Decimal("100.00"),
            installment_count=4,
            monthly_amount=Decimal("25.00"),
            start_date=date(2024, 1, 31),
        )
        assert plan.amounts == []


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.CONTRACT_CREATED,
            description="Contract created: Shop A",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO
        assert isinstance(event.timestamp, datetime)

    def test_audit_event_to_log_dict(self):
        """Test audit event conversion to log dict."""
        contract_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.OBLIGATIONS_GENERATED,
            entity_type="contract",
            entity_id=contract_id,
            description="Generated 12 obligations",
        )
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "obligations_generated"
        assert log_dict["entity_id"] == str(contract_id)
        assert log_dict["correlation_id"] is None

    def test_audit_event_builder_obligations_generated(self):
        """Test builder for generation events."""
        contract_id = uuid4()
        correlation_id = uuid4()
        event = AuditEventBuilder.obligations_generated(
            contract_id=contract_id,
            generated_count=2,
            month_keys=["2024-01", "2024-02"],
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.OBLIGATIONS_GENERATED
        assert event.entity_id == contract_id
        assert event.correlation_id == correlation_id
        assert event.details["month_keys"] == ["2024-01", "2024-02"]

    def test_audit_event_builder_contract_deleted(self):
        """Test deletions are logged as warnings."""
        event = AuditEventBuilder.contract_deleted(
            contract_id=uuid4(),
            contract_name="Shop A",
            purged_count=5,
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.details["purged_obligations"] == 5


class TestValidationResult:
    """Tests for validation result model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            subject="Shop A",
            schema_valid=True,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="price_tiers",
                    issue_type="tier_overlap",
                    message="Tier years 1-2 overlap tier years 2-3",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test result with only warnings."""
        result = ValidationResult(
            subject="Shop A",
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="buffer_months",
                    issue_type="empty_buffer",
                    message="Buffer period is enabled but has zero months",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
