"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the engine against a relational database in production
2. Use in-memory storage for testing
3. Keep engine logic decoupled from the storage implementation

The interface is intentionally narrow - just the operations the
obligation engine and its coordinator need.

CRITICAL: Every method must honour the caller's transaction() scope.
Reads of obligations exclude soft-deleted rows unless explicitly asked.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Optional
from uuid import UUID

from household_ledger.models.audit import AuditEvent
from household_ledger.models.contract import (
    ContractDocument,
    PriceTier,
    RentalContract,
)
from household_ledger.models.obligation import (
    Category,
    InstallmentPlan,
    Obligation,
    PaymentRecord,
    Project,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (SQL database, in-memory, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager:
        """
        Open a transaction scope.

        Usage:
            async with storage.transaction():
                ...

        Everything inside commits together or not at all. Nested scopes
        join the outermost one.
        """
        pass

    # -------------------------------------------------------------------------
    # Projects and categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_project(self, project_id: UUID) -> Optional[Project]:
        """Retrieve a live (not deleted) project by ID."""
        pass

    @abstractmethod
    async def insert_project(self, project: Project) -> Project:
        pass

    @abstractmethod
    async def find_category(
        self,
        category_name: str,
        category_type: str,
    ) -> Optional[Category]:
        """
        Find a live category by exact name and type.

        Returns:
            The category if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert_category(self, category: Category) -> Category:
        pass

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_contract(self, contract_id: UUID) -> Optional[RentalContract]:
        """
        Retrieve a contract by its ID.

        Returns:
            The contract if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_contracts(
        self,
        project_id: Optional[UUID] = None,
        is_active: Optional[bool] = None,
    ) -> list[RentalContract]:
        """List contracts, newest first."""
        pass

    @abstractmethod
    async def insert_contract(self, contract: RentalContract) -> RentalContract:
        """
        Save a new contract.

        Raises:
            DuplicateError: If a contract with the same ID exists
        """
        pass

    @abstractmethod
    async def update_contract(self, contract: RentalContract) -> RentalContract:
        """
        Replace a stored contract with the given version.

        Raises:
            NotFoundError: If the contract doesn't exist
        """
        pass

    @abstractmethod
    async def delete_contract(self, contract_id: UUID) -> bool:
        """
        Delete a contract row.

        Obligations that still reference it are detached (contract_id
        set to None). Tiers and documents must be removed first.
        """
        pass

    # -------------------------------------------------------------------------
    # Price tiers
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_tiers(self, contract_id: UUID) -> list[PriceTier]:
        """All tiers of a contract, ascending by year_start."""
        pass

    @abstractmethod
    async def insert_tiers(self, tiers: list[PriceTier]) -> None:
        pass

    @abstractmethod
    async def delete_tiers(self, contract_id: UUID) -> int:
        """Delete every tier of a contract. Returns the number deleted."""
        pass

    # -------------------------------------------------------------------------
    # Obligations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_contract_obligations(
        self,
        contract: RentalContract,
        include_deleted: bool = False,
    ) -> list[Obligation]:
        """
        Obligations generated for a contract, ordered by due date.

        Args:
            contract: The contract whose obligations to load
            include_deleted: Also return soft-deleted obligations

        Returns:
            Obligations carrying the contract's ID, whatever their project
        """
        pass

    @abstractmethod
    async def get_obligation(self, obligation_id: UUID) -> Optional[Obligation]:
        pass

    @abstractmethod
    async def insert_obligations(self, obligations: list[Obligation]) -> None:
        """
        Bulk insert obligations.

        Raises:
            DuplicateError: If a live obligation already exists for the
                same (contract_id, month_key)
        """
        pass

    @abstractmethod
    async def update_obligation(
        self,
        obligation_id: UUID,
        patch: dict[str, Any],
    ) -> Obligation:
        """
        Update only the given fields of an obligation.

        Raises:
            NotFoundError: If the obligation doesn't exist
        """
        pass

    @abstractmethod
    async def delete_obligations(self, obligation_ids: list[UUID]) -> int:
        """Hard-delete obligations. Returns the number deleted."""
        pass

    # -------------------------------------------------------------------------
    # Payment records
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_payment_record(self, record: PaymentRecord) -> PaymentRecord:
        pass

    @abstractmethod
    async def find_payment_records(
        self,
        obligation_ids: list[UUID],
    ) -> list[PaymentRecord]:
        """Payment records of the given obligations, newest payment first."""
        pass

    @abstractmethod
    async def delete_payment_records(self, obligation_ids: list[UUID]) -> int:
        """Delete every payment record of the given obligations."""
        pass

    # -------------------------------------------------------------------------
    # Contract documents
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_documents(self, contract_id: UUID) -> list[ContractDocument]:
        """Documents of a contract, newest upload first."""
        pass

    @abstractmethod
    async def insert_document(self, document: ContractDocument) -> ContractDocument:
        pass

    @abstractmethod
    async def delete_documents(self, contract_id: UUID) -> int:
        pass

    # -------------------------------------------------------------------------
    # Installment plans
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_installment_plan(self, plan: InstallmentPlan) -> InstallmentPlan:
        pass

    @abstractmethod
    async def get_installment_plan(self, plan_id: UUID) -> Optional[InstallmentPlan]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one service call, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """All events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent audit events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
