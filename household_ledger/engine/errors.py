"""
Engine Exceptions

Every failure the engine raises on purpose is typed, so callers catch by
class rather than by message. Storage-layer errors (StorageError and its
subclasses) are not wrapped and propagate unchanged.
"""

from typing import Optional
from uuid import UUID


class LedgerError(Exception):
    """Base exception for engine operations."""
    pass


class PreconditionError(LedgerError):
    """A record the operation depends on is missing or in the wrong state."""
    pass


class ContractNotFoundError(PreconditionError):
    """The referenced rental contract does not exist."""

    def __init__(self, contract_id: UUID):
        self.contract_id = contract_id
        super().__init__(f"Rental contract not found: {contract_id}")


class ProjectNotFoundError(PreconditionError):
    """The referenced project does not exist."""

    def __init__(self, project_id: UUID):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class CategoryNotFoundError(PreconditionError):
    """The well-known rent category is missing."""

    def __init__(self, category_name: str, category_type: str):
        self.category_name = category_name
        self.category_type = category_type
        super().__init__(
            f"Category not found: {category_name} ({category_type})"
        )


class ObligationNotFoundError(PreconditionError):
    """The referenced obligation does not exist."""

    def __init__(self, obligation_id: UUID):
        self.obligation_id = obligation_id
        super().__init__(f"Obligation not found: {obligation_id}")


class InstallmentPlanNotFoundError(PreconditionError):
    """The referenced installment plan does not exist."""

    def __init__(self, plan_id: UUID):
        self.plan_id = plan_id
        super().__init__(f"Installment plan not found: {plan_id}")


class InvalidIntervalError(LedgerError):
    """A contract's dates or buffer cannot be materialized."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class TierConflictError(LedgerError):
    """Tier ranges overlap or are malformed."""

    def __init__(self, message: str, year_ranges: Optional[list[tuple[int, int]]] = None):
        self.year_ranges = year_ranges or []
        super().__init__(message)


class RegenerationConflictError(LedgerError):
    """
    Another regeneration wrote the same billing month first.

    Nothing from the failed pass was persisted; the call can be retried.
    """

    def __init__(self, contract_id: UUID, detail: str = ""):
        self.contract_id = contract_id
        message = f"Concurrent regeneration for contract {contract_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
