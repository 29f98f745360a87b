"""
Obligation Models for Household Ledger

An obligation (payment item) is a single amount owed on a due date.
Rental contracts and installment plans generate them; payment records
pay them down.

DESIGN DECISION: An obligation with any money paid against it is frozen
for generation purposes. Regeneration may create, patch or purge unpaid
obligations only.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from household_ledger.models.contract import ContractDocument, PriceTier, RentalContract


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ObligationStatus(str, Enum):
    """Lifecycle status of an obligation."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    REPLACED = "replaced"  # Superseded by an installment plan


class PaymentType(str, Enum):
    """How an obligation came to exist."""
    SINGLE = "single"
    RECURRING = "recurring"
    INSTALLMENT = "installment"


class ItemType(str, Enum):
    """Which ledger an obligation belongs to."""
    HOME = "home"
    PROJECT = "project"


class PaymentMethod(str, Enum):
    """Supported payment methods."""
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    MOBILE_PAY = "mobile_pay"


class InstallmentStartType(str, Enum):
    """Where the first installment falls relative to the plan start date."""
    CURRENT_MONTH = "current_month"
    NEXT_MONTH = "next_month"


# =============================================================================
# REFERENCE DATA
# =============================================================================

class Project(BaseModel):
    """A payment project that owns contracts and obligations."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    project_name: str = Field(..., min_length=1, max_length=255)
    project_type: str = Field(default="general", max_length=50)
    description: Optional[str] = None
    is_active: bool = True
    is_deleted: bool = False


class Category(BaseModel):
    """A debt/expense category, looked up by name and type."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category_name: str = Field(..., min_length=1, max_length=255)
    category_type: str = Field(
        default="project",
        pattern="^(project|household)$",
    )
    description: Optional[str] = None
    is_deleted: bool = False


# =============================================================================
# CORE OBLIGATION MODEL
# =============================================================================

class Obligation(BaseModel):
    """
    A single payment item.

    For rent, item_name reads "<YYYY-MM>-<contract name>" and start_date is
    the last calendar day of the billing month. contract_id + month_key is
    the identity used for reconciliation; item_name is for display.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique obligation ID"
    )
    category_id: UUID
    project_id: Optional[UUID] = None

    # Generation source
    contract_id: Optional[UUID] = Field(
        default=None,
        description="Contract that generated this obligation, if any"
    )
    month_key: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}-\d{2}$",
        description="Billing month (YYYY-MM) for contract-generated items"
    )

    item_name: str = Field(..., min_length=1, max_length=255)
    total_amount: Decimal = Field(..., ge=0, decimal_places=2)
    item_type: ItemType = ItemType.PROJECT
    payment_type: PaymentType = PaymentType.SINGLE
    start_date: date = Field(
        ...,
        description="Due date"
    )
    end_date: Optional[date] = None

    # Payment tracking
    paid_amount: Decimal = Field(default=Decimal("0.00"), ge=0, decimal_places=2)
    status: ObligationStatus = ObligationStatus.PENDING
    priority: int = Field(default=1, ge=1, le=5)
    notes: Optional[str] = None

    # Soft delete
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_paid(self) -> bool:
        """Any money paid against an obligation freezes it."""
        return self.paid_amount > 0

    @property
    def is_frozen(self) -> bool:
        """Paid or replaced by installments; regeneration never touches it."""
        return self.is_paid or self.status == ObligationStatus.REPLACED

    @property
    def outstanding(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, Decimal("0"))


class PaymentRecord(BaseModel):
    """A payment made against an obligation."""

    id: UUID = Field(default_factory=uuid4)
    obligation_id: UUID
    amount_paid: Decimal = Field(..., gt=0, decimal_places=2)
    payment_date: date
    payment_method: Optional[PaymentMethod] = None
    is_partial_payment: bool = False
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class InstallmentPlan(BaseModel):
    """
    Replaces one obligation with N monthly installments.

    `amounts` holds the amount of every installment in order. For a fixed
    plan they are all `monthly_amount`; for a variable plan they may differ
    but must add up to `total_amount`.
    """

    id: UUID = Field(default_factory=uuid4)
    item_id: UUID = Field(
        ...,
        description="Obligation being split"
    )
    total_amount: Decimal = Field(..., gt=0, decimal_places=2)
    installment_count: int = Field(..., ge=1, le=600)
    monthly_amount: Decimal = Field(..., gt=0, decimal_places=2)
    amounts: list[Decimal] = Field(default_factory=list)
    start_date: date
    start_type: InstallmentStartType = InstallmentStartType.CURRENT_MONTH
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_schedule(self) -> 'InstallmentPlan':
        """Validate the installment schedule against the plan total."""
        if not self.amounts:
            return self

        if len(self.amounts) != self.installment_count:
            raise ValueError(
                f"Expected {self.installment_count} installment amounts, "
                f"got {len(self.amounts)}"
            )
        if any(amount <= 0 for amount in self.amounts):
            raise ValueError("Installment amounts must be positive")
        if sum(self.amounts) != self.total_amount:
            raise ValueError("Installment amounts must add up to the plan total")

        return self


# =============================================================================
# ENGINE RESULT MODELS
# =============================================================================

class MaterializedObligation(BaseModel):
    """One billing month computed from a contract, before persistence."""
    model_config = ConfigDict(frozen=True)

    month_key: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    due_date: date
    amount: Decimal
    contract_year: int = Field(..., ge=1)


class ObligationPatch(BaseModel):
    """An amount change to apply to an existing unpaid obligation."""

    obligation_id: UUID
    month_key: str
    previous_amount: Decimal
    total_amount: Decimal
    notes: str


class ReconciliationResult(BaseModel):
    """
    Outcome of diffing materialized months against stored obligations.

    generated_count counts created obligations only; patched obligations
    are reported separately.
    """

    created: list[Obligation] = Field(default_factory=list)
    patched: list[ObligationPatch] = Field(default_factory=list)

    @property
    def generated_count(self) -> int:
        return len(self.created)

    @property
    def is_noop(self) -> bool:
        return not self.created and not self.patched


class GenerationResult(BaseModel):
    """What a generate/regenerate call reports back to its caller."""

    generated_count: int = Field(default=0, ge=0)
    patched_count: int = Field(default=0, ge=0)


# =============================================================================
# QUERY MODELS
# =============================================================================

class PaymentStats(BaseModel):
    """Aggregate payment figures for one contract."""

    total_payments: int = 0
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    unpaid_amount: Decimal = Decimal("0")
    paid_count: int = 0
    unpaid_count: int = 0
    overdue_count: int = 0


class ContractProgress(BaseModel):
    """How far through its term a contract is."""

    percentage: float = Field(..., ge=0.0, le=100.0)
    remaining_months: int = Field(..., ge=0)
    is_expired: bool


class ContractDetails(BaseModel):
    """Everything a contract detail view needs, in one object."""

    contract: RentalContract
    price_tiers: list[PriceTier] = Field(default_factory=list)
    payment_stats: PaymentStats
    recent_payments: list[PaymentRecord] = Field(default_factory=list)
    documents: list[ContractDocument] = Field(default_factory=list)
    progress: ContractProgress
