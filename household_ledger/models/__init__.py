"""
Data Models Package

This package contains all Pydantic models used in the Household Ledger.
All data flowing through the engine must conform to these schemas.
"""

from household_ledger.models.contract import (
    ContractChanges,
    ContractDocument,
    ContractInput,
    PaymentInfoUpdate,
    PriceTier,
    PriceTierInput,
    RentalContract,
    ValidationIssue,
    ValidationResult,
)
from household_ledger.models.obligation import (
    Category,
    ContractDetails,
    ContractProgress,
    GenerationResult,
    InstallmentPlan,
    InstallmentStartType,
    ItemType,
    MaterializedObligation,
    Obligation,
    ObligationPatch,
    ObligationStatus,
    PaymentMethod,
    PaymentRecord,
    PaymentStats,
    PaymentType,
    Project,
    ReconciliationResult,
)
from household_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Contract models
    "ContractChanges",
    "ContractDocument",
    "ContractInput",
    "PaymentInfoUpdate",
    "PriceTier",
    "PriceTierInput",
    "RentalContract",
    "ValidationIssue",
    "ValidationResult",
    # Obligation models
    "Category",
    "ContractDetails",
    "ContractProgress",
    "GenerationResult",
    "InstallmentPlan",
    "InstallmentStartType",
    "ItemType",
    "MaterializedObligation",
    "Obligation",
    "ObligationPatch",
    "ObligationStatus",
    "PaymentMethod",
    "PaymentRecord",
    "PaymentStats",
    "PaymentType",
    "Project",
    "ReconciliationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
