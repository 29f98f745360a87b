"""
Tests for two-stage contract validation.

Test strategy:
1. Schema errors (intervals, tier shapes) block stage 2
2. Semantic errors (overlaps) block saving
3. Warnings and info issues never block saving
4. ensure_valid() maps issues to typed engine errors
"""

from datetime import date
from decimal import Decimal

import pytest

from household_ledger.engine.errors import InvalidIntervalError, TierConflictError
from household_ledger.models.contract import PriceTierInput
from household_ledger.validation import ContractValidator


def tier(year_start, year_end, amount="1000.00"):
    return PriceTierInput(
        year_start=year_start,
        year_end=year_end,
        monthly_amount=Decimal(amount),
    )


@pytest.fixture
def validator():
    return ContractValidator(max_billing_months=1200)


class TestSchemaValidation:
    """Tests for stage 1."""

    def test_valid_contract(self, validator, make_contract):
        """Test a plain contract passes both stages."""
        result = validator.validate(make_contract())

        assert result.is_valid
        assert result.schema_valid
        assert result.semantic_valid
        assert result.issues == []

    def test_end_before_start(self, validator, make_contract):
        """Test an inverted interval fails stage 1 and skips stage 2."""
        contract = make_contract(start_date=date(2024, 6, 1), end_date=date(2024, 1, 1))
        result = validator.validate(contract, [tier(1, 2), tier(2, 3)])

        assert not result.schema_valid
        assert not result.semantic_valid
        assert [i.issue_type for i in result.issues] == ["invalid_interval"]

    def test_window_over_limit(self, make_contract):
        """Test the billing window is bounded by max_billing_months."""
        validator = ContractValidator(max_billing_months=12)
        result = validator.validate(make_contract(end_date=date(2025, 1, 31)))

        assert not result.is_valid
        assert result.issues[0].field == "end_date"

    def test_malformed_tier(self, validator, make_contract):
        """Test an inverted tier range is a schema error."""
        result = validator.validate(make_contract(), [tier(3, 2)])

        assert not result.schema_valid
        assert result.issues[0].issue_type == "malformed_tier"


class TestSemanticValidation:
    """Tests for stage 2."""

    def test_overlapping_tiers(self, validator, make_contract):
        """Test overlapping tiers are an error."""
        result = validator.validate(make_contract(), [tier(1, 2), tier(2, 3)])

        assert result.schema_valid
        assert not result.semantic_valid
        assert result.has_errors
        assert result.issues[0].issue_type == "tier_overlap"

    def test_adjacent_tiers_are_valid(self, validator, make_contract):
        """Test {1,2} and {3,5} pass."""
        contract = make_contract(end_date=date(2028, 12, 31))
        result = validator.validate(contract, [tier(1, 2), tier(3, 5)])

        assert result.is_valid

    def test_empty_buffer_warns(self, validator, make_contract):
        """Test a buffer flag with zero months is a warning only."""
        result = validator.validate(make_contract(has_buffer_period=True, buffer_months=0))

        assert result.is_valid
        assert len(result.warnings) == 1

    def test_buffer_covering_term_warns(self, validator, make_contract):
        """Test an included buffer as long as the term is a warning."""
        contract = make_contract(has_buffer_period=True, buffer_months=12)
        result = validator.validate(contract)

        assert result.is_valid
        assert [i.issue_type for i in result.issues] == ["buffer_exceeds_term"]

    def test_tier_gap_is_info(self, validator, make_contract):
        """Test uncovered contract years are reported without blocking."""
        contract = make_contract(end_date=date(2026, 12, 31))
        result = validator.validate(contract, [tier(1, 1)])

        assert result.is_valid
        gap = result.issues[0]
        assert gap.issue_type == "tier_gap"
        assert gap.severity == "info"
        assert "[2, 3]" in gap.message


class TestEnsureValid:
    """Tests for ensure_valid()."""

    def test_interval_error(self, validator, make_contract):
        """Test interval issues raise InvalidIntervalError with the field."""
        contract = make_contract(start_date=date(2024, 6, 1), end_date=date(2024, 1, 1))

        with pytest.raises(InvalidIntervalError) as exc_info:
            validator.ensure_valid(contract)
        assert exc_info.value.field == "end_date"

    def test_overlap_error(self, validator, make_contract):
        """Test overlaps raise TierConflictError with every range."""
        with pytest.raises(TierConflictError) as exc_info:
            validator.ensure_valid(make_contract(), [tier(1, 3), tier(2, 4)])
        assert exc_info.value.year_ranges == [(1, 3), (2, 4)]

    def test_malformed_error(self, validator, make_contract):
        with pytest.raises(TierConflictError):
            validator.ensure_valid(make_contract(), [tier(4, 1)])

    def test_warnings_pass(self, validator, make_contract):
        """Test warnings do not raise."""
        result = validator.ensure_valid(make_contract(has_buffer_period=True))
        assert result.warnings


class TestSummary:
    """Tests for user-facing summaries."""

    def test_clean_summary(self, validator, make_contract):
        result = validator.validate(make_contract())
        assert validator.get_user_friendly_summary(result) == "All checks passed for Shop A."

    def test_error_summary_has_hint(self, validator, make_contract):
        """Test errors are listed with their suggested fix."""
        result = validator.validate(make_contract(), [tier(1, 2), tier(2, 3)])
        summary = validator.get_user_friendly_summary(result)

        assert summary.startswith("Shop A cannot be saved:")
        assert "hint: Make each contract year belong to one tier only" in summary
