"""
Contract Models for Household Ledger

A rental contract is the source of a recurring obligation: one payment
per billing month between its start and end dates, priced from its base
amount or from a time-tiered override.

These models define the strict schemas for contract data. They are
designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Interval rules (end date after start date, tier ranges
that do not overlap) are NOT enforced by the models themselves. They are
checked by the ContractValidator so that a rejected definition surfaces
as a typed engine error rather than a generic pydantic ValidationError.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


Money = Annotated[Decimal, Field(ge=0, decimal_places=2)]


# =============================================================================
# PRICE TIERS
# =============================================================================

class PriceTierInput(BaseModel):
    """
    A tier as supplied by a caller, before it is attached to a contract.

    Years are 1-based and inclusive: {year_start: 1, year_end: 2} covers
    the first 24 billing months.
    """

    year_start: int = Field(
        ...,
        ge=1,
        description="First contract year the tier applies to (1-based)"
    )
    year_end: int = Field(
        ...,
        ge=1,
        description="Last contract year the tier applies to (inclusive)"
    )
    monthly_amount: Money = Field(
        ...,
        description="Monthly rate while the tier applies"
    )


class PriceTier(PriceTierInput):
    """A persisted tier owned by a contract."""

    id: UUID = Field(default_factory=uuid4)
    contract_id: UUID
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def covers(self, contract_year: int) -> bool:
        """Check whether a contract year falls inside this tier."""
        return self.year_start <= contract_year <= self.year_end


# =============================================================================
# CONTRACTS
# =============================================================================

class ContractInput(BaseModel):
    """
    Data required to create a rental contract.

    total_years / total_months are derived from the dates and are not
    accepted from callers.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    project_id: UUID = Field(
        ...,
        description="Owning project"
    )
    contract_name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Contract name, shown in every generated item name"
    )
    start_date: date
    end_date: date
    base_amount: Money = Field(
        ...,
        description="Monthly rate used when no tier applies"
    )

    # Buffer period
    has_buffer_period: bool = False
    buffer_months: int = Field(
        default=0,
        ge=0,
        description="Length of the rent-free buffer in months"
    )
    buffer_included_in_term: bool = Field(
        default=True,
        description="True: buffer months are skipped inside the term. "
                    "False: billing starts after the buffer."
    )

    # Tenant
    tenant_name: Optional[str] = Field(default=None, max_length=255)
    tenant_phone: Optional[str] = Field(default=None, max_length=50)
    tenant_address: Optional[str] = None

    # Payee
    payee_name: Optional[str] = Field(default=None, max_length=255)
    payee_unit: Optional[str] = Field(default=None, max_length=255)
    bank_code: Optional[str] = Field(default=None, max_length=10)
    account_number: Optional[str] = Field(default=None, max_length=50)
    contract_payment_day: int = Field(default=1, ge=1, le=31)

    is_active: bool = True
    notes: Optional[str] = None


class RentalContract(ContractInput):
    """
    A persisted rental contract.

    CRITICAL: contract_name is part of every generated obligation's display
    name, but obligations are matched to their contract by contract_id.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique contract ID"
    )
    total_years: int = Field(
        default=0,
        ge=0,
        description="Contract length in started years"
    )
    total_months: int = Field(
        default=0,
        ge=0,
        description="Contract length in calendar months"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ContractChanges(BaseModel):
    """
    Partial update of a contract.

    A field left as None is "not provided" and keeps its stored value.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    project_id: Optional[UUID] = None
    contract_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    base_amount: Optional[Money] = None
    has_buffer_period: Optional[bool] = None
    buffer_months: Optional[int] = Field(default=None, ge=0)
    buffer_included_in_term: Optional[bool] = None
    tenant_name: Optional[str] = Field(default=None, max_length=255)
    tenant_phone: Optional[str] = Field(default=None, max_length=50)
    tenant_address: Optional[str] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None

    def provided(self) -> dict:
        """Fields the caller actually set."""
        return self.model_dump(exclude_none=True)


class PaymentInfoUpdate(BaseModel):
    """Payee and bank details of a contract. Never affects obligations."""
    model_config = ConfigDict(str_strip_whitespace=True)

    payee_name: Optional[str] = Field(default=None, max_length=255)
    payee_unit: Optional[str] = Field(default=None, max_length=255)
    bank_code: Optional[str] = Field(default=None, max_length=10)
    account_number: Optional[str] = Field(default=None, max_length=50)
    contract_payment_day: Optional[int] = Field(default=None, ge=1, le=31)


class ContractDocument(BaseModel):
    """
    Metadata of a document attached to a contract.

    Only the metadata is stored here; file bytes live elsewhere.
    """

    id: UUID = Field(default_factory=uuid4)
    contract_id: UUID
    file_name: str = Field(..., min_length=1, max_length=255)
    original_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1, max_length=500)
    file_size: int = Field(..., ge=0)
    mime_type: str = Field(..., max_length=100)
    version: str = Field(default="原始", max_length=50)
    is_latest: bool = False
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)
    uploaded_by: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'invalid_interval', 'tier_overlap')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage contract validation.

    Stage 1: Schema validation (intervals, tier shapes)
    Stage 2: Semantic validation (overlaps, coverage, buffer sanity)
    """

    subject: str = Field(
        ...,
        description="What was validated (usually the contract name)"
    )
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
