"""
Two-Stage Contract Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Date interval (end on or after start)
- Buffer length and billing window bounds
- Tier year ranges well-formed
- This catches definitions the materializer cannot walk

STAGE 2 - SEMANTIC VALIDATION:
- Overlapping tier ranges
- Buffer flags that contradict each other
- Tiers that leave contract years on the base amount
- This catches definitions that would generate surprising obligations

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; ensure_valid() turns the first error into a typed
engine exception before any storage is touched.
"""

from typing import Any, Iterable, Optional

from household_ledger.config import get_settings
from household_ledger.engine.dates import effective_billing_start, months_between
from household_ledger.engine.errors import InvalidIntervalError, TierConflictError
from household_ledger.engine.tiers import find_malformed_tiers, find_tier_overlaps
from household_ledger.models.contract import ValidationIssue, ValidationResult


TIER_ISSUE_TYPES = {"malformed_tier", "tier_overlap"}


class ContractValidator:
    """
    Validates a contract definition and its price tiers.

    Works on anything shaped like a contract (ContractInput, RentalContract)
    and tiers shaped like PriceTierInput.
    """

    def __init__(self, max_billing_months: Optional[int] = None):
        self._max_billing_months = (
            max_billing_months or get_settings().engine.max_billing_months
        )

    def _validate_schema(
        self,
        contract: Any,
        tiers: list,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if contract.end_date < contract.start_date:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="invalid_interval",
                message=(
                    f"End date ({contract.end_date}) is before "
                    f"start date ({contract.start_date})"
                ),
                severity="error",
                suggested_fix="Check that the dates were not swapped",
            ))

        buffer_months = contract.buffer_months or 0
        if buffer_months < 0:
            issues.append(ValidationIssue(
                field="buffer_months",
                issue_type="invalid_interval",
                message=f"Buffer months cannot be negative ({buffer_months})",
                severity="error",
            ))

        if contract.base_amount < 0:
            issues.append(ValidationIssue(
                field="base_amount",
                issue_type="invalid_value",
                message="Base amount cannot be negative",
                severity="error",
            ))

        if not issues:
            span = months_between(effective_billing_start(contract), contract.end_date) + 1
            if span > self._max_billing_months:
                issues.append(ValidationIssue(
                    field="end_date",
                    issue_type="invalid_interval",
                    message=(
                        f"Billing window of {span} months exceeds the limit "
                        f"of {self._max_billing_months}"
                    ),
                    severity="error",
                    suggested_fix="Check the end date year",
                ))

        for year_start, year_end in find_malformed_tiers(tiers):
            issues.append(ValidationIssue(
                field="price_tiers",
                issue_type="malformed_tier",
                message=f"Tier years {year_start}-{year_end} are not a valid range",
                severity="error",
                suggested_fix="year_start must be at least 1 and not after year_end",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        contract: Any,
        tiers: list,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        for first, second in find_tier_overlaps(tiers):
            issues.append(ValidationIssue(
                field="price_tiers",
                issue_type="tier_overlap",
                message=(
                    f"Tier years {first[0]}-{first[1]} overlap "
                    f"tier years {second[0]}-{second[1]}"
                ),
                severity="error",
                suggested_fix="Make each contract year belong to one tier only",
            ))

        buffer_months = contract.buffer_months or 0
        if contract.has_buffer_period and buffer_months == 0:
            issues.append(ValidationIssue(
                field="buffer_months",
                issue_type="empty_buffer",
                message="Buffer period is enabled but has zero months",
                severity="warning",
            ))

        term_months = months_between(contract.start_date, contract.end_date) + 1
        if (
            contract.has_buffer_period
            and contract.buffer_included_in_term
            and buffer_months >= term_months
        ):
            issues.append(ValidationIssue(
                field="buffer_months",
                issue_type="buffer_exceeds_term",
                message=(
                    f"Buffer of {buffer_months} months covers the whole "
                    f"{term_months}-month term; no rent will be generated"
                ),
                severity="warning",
            ))

        if tiers:
            billing_months = (
                months_between(effective_billing_start(contract), contract.end_date) + 1
            )
            contract_years = (billing_months + 11) // 12
            uncovered = [
                year for year in range(1, contract_years + 1)
                if not any(t.year_start <= year <= t.year_end for t in tiers)
            ]
            if uncovered:
                issues.append(ValidationIssue(
                    field="price_tiers",
                    issue_type="tier_gap",
                    message=(
                        f"Contract years {uncovered} have no tier and use "
                        f"the base amount"
                    ),
                    severity="info",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def validate(
        self,
        contract: Any,
        tiers: Optional[Iterable] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            contract: The contract definition to validate
            tiers: Its price tiers, if any

        Returns:
            ValidationResult with all issues found
        """
        tier_list = list(tiers or [])
        all_issues = []

        # Stage 1: Schema validation
        schema_valid, schema_issues = self._validate_schema(contract, tier_list)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(contract, tier_list)
            all_issues.extend(semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            subject=contract.contract_name,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def ensure_valid(
        self,
        contract: Any,
        tiers: Optional[Iterable] = None,
    ) -> ValidationResult:
        """
        Validate and raise on the first error-level issue.

        Raises:
            TierConflictError: Malformed or overlapping tier ranges
            InvalidIntervalError: Any other error-level issue
        """
        tier_list = list(tiers or [])
        result = self.validate(contract, tier_list)

        for issue in result.issues:
            if issue.severity != "error":
                continue
            if issue.issue_type in TIER_ISSUE_TYPES:
                raise TierConflictError(
                    issue.message,
                    year_ranges=[(t.year_start, t.year_end) for t in tier_list],
                )
            raise InvalidIntervalError(issue.message, field=issue.field)

        return result

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a readable summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return f"All checks passed for {result.subject}."

        lines = []

        errors = [issue for issue in result.issues if issue.severity == "error"]
        if errors:
            lines.append(f"{result.subject} cannot be saved:")
            for issue in errors:
                lines.append(f"   - {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     hint: {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   - {warning}")

        return "\n".join(lines)
