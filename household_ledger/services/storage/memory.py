"""
In-Memory Storage Implementation

Dict-backed implementation of the storage interfaces. Used by the test
suite and as the fallback when no database is configured.

Transactions snapshot every table on entry and restore the snapshot if
the block raises. Only one transaction runs at a time; nested scopes
join the outer one. Stored models are never mutated in place, so a
shallow copy of each table is a complete snapshot.
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
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
from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


_TABLES = (
    "projects",
    "categories",
    "contracts",
    "tiers",
    "obligations",
    "payment_records",
    "documents",
    "installment_plans",
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    In-memory ledger storage.

    Enforces the same uniqueness rule as the relational schema: at most
    one live obligation per (contract_id, month_key).
    """

    def __init__(self):
        self._tables: dict[str, dict[UUID, Any]] = {name: {} for name in _TABLES}
        self._in_transaction: ContextVar[bool] = ContextVar(
            f"ledger_tx_{id(self)}", default=False
        )
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @asynccontextmanager
    async def transaction(self):
        if self._in_transaction.get():
            yield
            return

        async with self._get_lock():
            snapshot = {name: dict(table) for name, table in self._tables.items()}
            token = self._in_transaction.set(True)
            try:
                yield
            except BaseException:
                self._tables = snapshot
                raise
            finally:
                self._in_transaction.reset(token)

    # -------------------------------------------------------------------------
    # Projects and categories
    # -------------------------------------------------------------------------

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        project = self._tables["projects"].get(project_id)
        if project is None or project.is_deleted:
            return None
        return project.model_copy()

    async def insert_project(self, project: Project) -> Project:
        async with self.transaction():
            self._insert("projects", project)
        return project.model_copy()

    async def find_category(
        self,
        category_name: str,
        category_type: str,
    ) -> Optional[Category]:
        for category in self._tables["categories"].values():
            if (
                category.category_name == category_name
                and category.category_type == category_type
                and not category.is_deleted
            ):
                return category.model_copy()
        return None

    async def insert_category(self, category: Category) -> Category:
        async with self.transaction():
            self._insert("categories", category)
        return category.model_copy()

    # -------------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------------

    async def get_contract(self, contract_id: UUID) -> Optional[RentalContract]:
        contract = self._tables["contracts"].get(contract_id)
        return contract.model_copy() if contract else None

    async def list_contracts(
        self,
        project_id: Optional[UUID] = None,
        is_active: Optional[bool] = None,
    ) -> list[RentalContract]:
        contracts = [
            contract.model_copy()
            for contract in self._tables["contracts"].values()
            if (project_id is None or contract.project_id == project_id)
            and (is_active is None or contract.is_active == is_active)
        ]
        contracts.sort(key=lambda c: c.created_at, reverse=True)
        return contracts

    async def insert_contract(self, contract: RentalContract) -> RentalContract:
        async with self.transaction():
            self._insert("contracts", contract)
        return contract.model_copy()

    async def update_contract(self, contract: RentalContract) -> RentalContract:
        async with self.transaction():
            if contract.id not in self._tables["contracts"]:
                raise NotFoundError(f"Contract not found: {contract.id}")
            self._tables["contracts"][contract.id] = contract.model_copy()
        return contract.model_copy()

    async def delete_contract(self, contract_id: UUID) -> bool:
        async with self.transaction():
            removed = self._tables["contracts"].pop(contract_id, None)
            if removed is None:
                return False
            obligations = self._tables["obligations"]
            for obligation_id, obligation in list(obligations.items()):
                if obligation.contract_id == contract_id:
                    obligations[obligation_id] = obligation.model_copy(
                        update={"contract_id": None}
                    )
        return True

    # -------------------------------------------------------------------------
    # Price tiers
    # -------------------------------------------------------------------------

    async def find_tiers(self, contract_id: UUID) -> list[PriceTier]:
        tiers = [
            tier.model_copy()
            for tier in self._tables["tiers"].values()
            if tier.contract_id == contract_id
        ]
        tiers.sort(key=lambda t: t.year_start)
        return tiers

    async def insert_tiers(self, tiers: list[PriceTier]) -> None:
        async with self.transaction():
            for tier in tiers:
                self._insert("tiers", tier)

    async def delete_tiers(self, contract_id: UUID) -> int:
        async with self.transaction():
            return self._delete_where("tiers", lambda t: t.contract_id == contract_id)

    # -------------------------------------------------------------------------
    # Obligations
    # -------------------------------------------------------------------------

    async def find_contract_obligations(
        self,
        contract: RentalContract,
        include_deleted: bool = False,
    ) -> list[Obligation]:
        obligations = [
            obligation.model_copy()
            for obligation in self._tables["obligations"].values()
            if obligation.contract_id == contract.id
            and (include_deleted or not obligation.is_deleted)
        ]
        obligations.sort(key=lambda o: (o.start_date, o.item_name))
        return obligations

    async def get_obligation(self, obligation_id: UUID) -> Optional[Obligation]:
        obligation = self._tables["obligations"].get(obligation_id)
        return obligation.model_copy() if obligation else None

    async def insert_obligations(self, obligations: list[Obligation]) -> None:
        async with self.transaction():
            taken = {
                (o.contract_id, o.month_key)
                for o in self._tables["obligations"].values()
                if o.contract_id is not None and o.month_key and not o.is_deleted
            }
            for obligation in obligations:
                key = (obligation.contract_id, obligation.month_key)
                if obligation.contract_id is not None and obligation.month_key:
                    if key in taken:
                        raise DuplicateError(
                            f"Obligation already exists for contract "
                            f"{obligation.contract_id} month {obligation.month_key}"
                        )
                    taken.add(key)
                self._insert("obligations", obligation)

    async def update_obligation(
        self,
        obligation_id: UUID,
        patch: dict[str, Any],
    ) -> Obligation:
        async with self.transaction():
            current = self._tables["obligations"].get(obligation_id)
            if current is None:
                raise NotFoundError(f"Obligation not found: {obligation_id}")
            updated = current.model_copy(update=patch)
            self._tables["obligations"][obligation_id] = updated
        return updated.model_copy()

    async def delete_obligations(self, obligation_ids: list[UUID]) -> int:
        ids = set(obligation_ids)
        async with self.transaction():
            return self._delete_where("obligations", lambda o: o.id in ids)

    # -------------------------------------------------------------------------
    # Payment records
    # -------------------------------------------------------------------------

    async def insert_payment_record(self, record: PaymentRecord) -> PaymentRecord:
        async with self.transaction():
            if record.obligation_id not in self._tables["obligations"]:
                raise NotFoundError(f"Obligation not found: {record.obligation_id}")
            self._insert("payment_records", record)
        return record.model_copy()

    async def find_payment_records(
        self,
        obligation_ids: list[UUID],
    ) -> list[PaymentRecord]:
        ids = set(obligation_ids)
        records = [
            record.model_copy()
            for record in self._tables["payment_records"].values()
            if record.obligation_id in ids
        ]
        records.sort(key=lambda r: (r.payment_date, r.created_at), reverse=True)
        return records

    async def delete_payment_records(self, obligation_ids: list[UUID]) -> int:
        ids = set(obligation_ids)
        async with self.transaction():
            return self._delete_where(
                "payment_records", lambda r: r.obligation_id in ids
            )

    # -------------------------------------------------------------------------
    # Contract documents
    # -------------------------------------------------------------------------

    async def find_documents(self, contract_id: UUID) -> list[ContractDocument]:
        documents = [
            document.model_copy()
            for document in self._tables["documents"].values()
            if document.contract_id == contract_id
        ]
        documents.sort(key=lambda d: d.uploaded_at, reverse=True)
        return documents

    async def insert_document(self, document: ContractDocument) -> ContractDocument:
        async with self.transaction():
            self._insert("documents", document)
        return document.model_copy()

    async def delete_documents(self, contract_id: UUID) -> int:
        async with self.transaction():
            return self._delete_where(
                "documents", lambda d: d.contract_id == contract_id
            )

    # -------------------------------------------------------------------------
    # Installment plans
    # -------------------------------------------------------------------------

    async def insert_installment_plan(self, plan: InstallmentPlan) -> InstallmentPlan:
        async with self.transaction():
            self._insert("installment_plans", plan)
        return plan.model_copy()

    async def get_installment_plan(self, plan_id: UUID) -> Optional[InstallmentPlan]:
        plan = self._tables["installment_plans"].get(plan_id)
        return plan.model_copy() if plan else None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _insert(self, table: str, item) -> None:
        rows = self._tables[table]
        if item.id in rows:
            raise DuplicateError(f"Duplicate {table} id: {item.id}")
        rows[item.id] = item.model_copy()

    def _delete_where(self, table: str, predicate) -> int:
        rows = self._tables[table]
        doomed = [key for key, row in rows.items() if predicate(row)]
        for key in doomed:
            del rows[key]
        return len(doomed)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy())
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
