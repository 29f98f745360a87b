"""
Main Orchestrator for Household Ledger

This module ties together the engine, storage, validation and audit
components and defines the end-to-end contract flows:
1. Create (validate -> insert contract + tiers)
2. Update (validate -> apply changes -> replace tiers -> purge unpaid ->
   regenerate)
3. Generate (materialize -> reconcile -> apply)
4. Delete (cascade children before parents)
5. Record payments and split obligations into installments

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every mutation runs inside ONE storage transaction (all or nothing)
- Regenerations of the same contract are serialized by a per-contract lock
- Obligations with money paid against them, or replaced by installments,
  are never purged or patched
- Every step is audited, after its transaction has finished

This is the "glue" that keeps the stored obligations consistent with
the contract definitions even as those definitions change.
"""

import asyncio
from contextlib import nullcontext
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from household_ledger.audit import AuditLogger, create_correlation_id
from household_ledger.config import get_settings
from household_ledger.config.settings import EngineSettings
from household_ledger.engine.dates import contract_span
from household_ledger.engine.errors import (
    CategoryNotFoundError,
    ContractNotFoundError,
    InstallmentPlanNotFoundError,
    InvalidIntervalError,
    ObligationNotFoundError,
    PreconditionError,
    ProjectNotFoundError,
    RegenerationConflictError,
    TierConflictError,
)
from household_ledger.engine.installments import (
    build_installments,
    replacement_note,
    split_evenly,
)
from household_ledger.engine.materializer import materialize
from household_ledger.engine.reconciliation import apply_reconciliation, reconcile
from household_ledger.models.contract import (
    ContractChanges,
    ContractInput,
    PaymentInfoUpdate,
    PriceTier,
    PriceTierInput,
    RentalContract,
)
from household_ledger.models.obligation import (
    Category,
    GenerationResult,
    InstallmentPlan,
    InstallmentStartType,
    Obligation,
    ObligationStatus,
    PaymentMethod,
    PaymentRecord,
    ReconciliationResult,
)
from household_ledger.queries import ContractQueries
from household_ledger.services.storage import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    SqlAuditStorage,
    SqlLedgerStorage,
    build_engine,
)
from household_ledger.validation import ContractValidator


logger = structlog.get_logger("household_ledger.orchestrator")

# Contract fields whose change invalidates already generated obligations
REGENERATION_TRIGGERS = ("contract_name", "start_date")


class RentalContractService:
    """
    Contract Mutation Coordinator.

    Owns every write to contracts, tiers and generated obligations.

    Flow of update_rental_contract():
    1. Load the prior contract
    2. Apply the provided changes
    3. Decide whether regeneration is needed (name, start date, new tiers)
    4. Replace tiers if new ones were given
    5. Purge the contract's unpaid obligations, then materialize and
       reconcile against what is left

    Steps 1-5 run in one transaction. A failure anywhere leaves the
    contract, its tiers and its obligations exactly as they were.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[ContractValidator] = None,
        engine_settings: Optional[EngineSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = engine_settings or get_settings().engine
        self._validator = validator or ContractValidator(self._settings.max_billing_months)
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._locks_loop: Optional[asyncio.AbstractEventLoop] = None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _contract_lock(self, contract_id: UUID) -> asyncio.Lock:
        """Per-contract lock, bound to the running event loop."""
        loop = asyncio.get_running_loop()
        if self._locks_loop is not loop:
            self._locks = {}
            self._locks_loop = loop
        lock = self._locks.get(contract_id)
        if lock is None:
            lock = self._locks[contract_id] = asyncio.Lock()
        return lock

    async def _require_contract(self, contract_id: UUID) -> RentalContract:
        contract = await self._storage.get_contract(contract_id)
        if contract is None:
            raise ContractNotFoundError(contract_id)
        return contract

    async def _require_project(self, project_id: UUID) -> None:
        if await self._storage.get_project(project_id) is None:
            raise ProjectNotFoundError(project_id)

    async def _rent_category(self) -> Category:
        category = await self._storage.find_category(
            self._settings.rent_category_name,
            self._settings.rent_category_type,
        )
        if category is None:
            raise CategoryNotFoundError(
                self._settings.rent_category_name,
                self._settings.rent_category_type,
            )
        return category

    async def _log_rejection(
        self,
        subject: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                subject=subject,
                issues=[{
                    "field": getattr(error, "field", None) or "price_tiers",
                    "issue_type": type(error).__name__,
                    "message": str(error),
                }],
                correlation_id=correlation_id,
            )

    async def _purge_unpaid(self, contract: RentalContract) -> int:
        """
        Hard-delete the contract's unpaid obligations and their payment records.

        Soft-deleted leftovers go too. Frozen obligations (any payment, or
        replaced by an installment plan) stay.
        """
        obligations = await self._storage.find_contract_obligations(
            contract,
            include_deleted=True,
        )
        unpaid_ids = [o.id for o in obligations if not o.is_frozen]
        if not unpaid_ids:
            return 0

        await self._storage.delete_payment_records(unpaid_ids)
        return await self._storage.delete_obligations(unpaid_ids)

    async def _regenerate(
        self,
        contract: RentalContract,
        tiers: list[PriceTier],
        category: Category,
    ) -> ReconciliationResult:
        """
        Materialize the contract and persist the minimal diff.

        Must run inside the caller's transaction.

        Raises:
            RegenerationConflictError: A live obligation for one of the
                months appeared underneath us
        """
        materialized = materialize(contract, tiers, self._settings.max_billing_months)
        existing = await self._storage.find_contract_obligations(contract)
        result = reconcile(
            contract,
            materialized,
            existing,
            category.id,
            self._settings.updated_marker,
        )

        try:
            await apply_reconciliation(self._storage, result)
        except DuplicateError as e:
            raise RegenerationConflictError(contract.id, str(e)) from e

        return result

    async def _log_regeneration(
        self,
        contract_id: UUID,
        result: ReconciliationResult,
        correlation_id: UUID,
    ) -> None:
        if not self._audit_logger:
            return
        if result.created:
            await self._audit_logger.log_obligations_generated(
                contract_id=contract_id,
                month_keys=[o.month_key for o in result.created],
                correlation_id=correlation_id,
            )
        if result.patched:
            await self._audit_logger.log_obligations_patched(
                contract_id=contract_id,
                patches=[
                    {
                        "month_key": patch.month_key,
                        "previous_amount": str(patch.previous_amount),
                        "total_amount": str(patch.total_amount),
                    }
                    for patch in result.patched
                ],
                correlation_id=correlation_id,
            )

    async def _log_conflict(
        self,
        contract_id: UUID,
        error: RegenerationConflictError,
        correlation_id: UUID,
    ) -> None:
        logger.warning(
            "regeneration_conflict",
            contract_id=str(contract_id),
            error=str(error),
        )
        if self._audit_logger:
            await self._audit_logger.log_regeneration_conflict(
                contract_id=contract_id,
                error_message=str(error),
                correlation_id=correlation_id,
            )

    # -------------------------------------------------------------------------
    # Contract lifecycle
    # -------------------------------------------------------------------------

    async def create_rental_contract(
        self,
        data: ContractInput,
        tiers: Optional[list[PriceTierInput]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> RentalContract:
        """
        Create a contract and its price tiers.

        No obligations are generated here; call generate_rental_payments().

        Raises:
            InvalidIntervalError: Bad dates or buffer
            TierConflictError: Overlapping or malformed tiers
            ProjectNotFoundError: The owning project does not exist
        """
        correlation_id = correlation_id or create_correlation_id()
        tiers = list(tiers or [])

        try:
            self._validator.ensure_valid(data, tiers)
        except (InvalidIntervalError, TierConflictError) as e:
            await self._log_rejection(data.contract_name, e, correlation_id)
            raise

        total_years, total_months = contract_span(data.start_date, data.end_date)
        contract = RentalContract(
            **data.model_dump(),
            total_years=total_years,
            total_months=total_months,
        )

        async with self._storage.transaction():
            await self._require_project(contract.project_id)
            await self._storage.insert_contract(contract)
            if tiers:
                await self._storage.insert_tiers([
                    PriceTier(contract_id=contract.id, **tier.model_dump())
                    for tier in tiers
                ])

        if self._audit_logger:
            await self._audit_logger.log_contract_created(
                contract_id=contract.id,
                contract_name=contract.contract_name,
                tier_count=len(tiers),
                correlation_id=correlation_id,
            )

        return contract

    async def update_rental_contract(
        self,
        contract_id: UUID,
        changes: ContractChanges,
        tiers: Optional[list[PriceTierInput]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> RentalContract:
        """
        Update a contract, regenerating obligations when needed.

        Regeneration happens when the name changes, the start date changes,
        or a non-empty tier list is supplied. It purges only the contract's
        unpaid obligations before rebuilding; paid months are kept as-is.

        Args:
            contract_id: Contract to update
            changes: Fields to change; None means "leave as is"
            tiers: Replacement tiers. None or [] keeps the stored tiers.

        Returns:
            The updated contract
        """
        correlation_id = correlation_id or create_correlation_id()
        provided = changes.provided()
        new_tiers = list(tiers or [])

        purged_count = 0
        result = ReconciliationResult()

        async with self._contract_lock(contract_id):
            try:
                async with self._storage.transaction():
                    prior = await self._require_contract(contract_id)

                    if "project_id" in provided and provided["project_id"] != prior.project_id:
                        await self._require_project(provided["project_id"])

                    updated = prior.model_copy(update={
                        **provided,
                        "updated_at": datetime.utcnow(),
                    })
                    if "start_date" in provided or "end_date" in provided:
                        total_years, total_months = contract_span(
                            updated.start_date,
                            updated.end_date,
                        )
                        updated = updated.model_copy(update={
                            "total_years": total_years,
                            "total_months": total_months,
                        })

                    effective_tiers = (
                        new_tiers if new_tiers
                        else await self._storage.find_tiers(contract_id)
                    )
                    self._validator.ensure_valid(updated, effective_tiers)

                    need_regenerate = bool(new_tiers) or any(
                        field in provided and provided[field] != getattr(prior, field)
                        for field in REGENERATION_TRIGGERS
                    )
                    # Checked before any write so a missing category mutates nothing
                    category = await self._rent_category() if need_regenerate else None

                    await self._storage.update_contract(updated)

                    if new_tiers:
                        await self._storage.delete_tiers(contract_id)
                        await self._storage.insert_tiers([
                            PriceTier(contract_id=contract_id, **tier.model_dump())
                            for tier in new_tiers
                        ])

                    if need_regenerate:
                        purged_count = await self._purge_unpaid(prior)
                        stored_tiers = await self._storage.find_tiers(contract_id)
                        result = await self._regenerate(updated, stored_tiers, category)
            except RegenerationConflictError as e:
                await self._log_conflict(contract_id, e, correlation_id)
                raise
            except (InvalidIntervalError, TierConflictError) as e:
                await self._log_rejection(str(contract_id), e, correlation_id)
                raise

        logger.info(
            "contract_updated",
            contract_id=str(contract_id),
            changed_fields=sorted(provided),
            regenerated=need_regenerate,
            purged=purged_count,
            generated=result.generated_count,
        )

        if self._audit_logger:
            await self._audit_logger.log_contract_updated(
                contract_id=contract_id,
                changed_fields=sorted(provided),
                regenerated=need_regenerate,
                correlation_id=correlation_id,
            )
            if new_tiers:
                await self._audit_logger.log_tiers_replaced(
                    contract_id=contract_id,
                    tier_count=len(new_tiers),
                    correlation_id=correlation_id,
                )
            if purged_count:
                await self._audit_logger.log_obligations_purged(
                    contract_id=contract_id,
                    purged_count=purged_count,
                    reason="contract definition changed",
                    correlation_id=correlation_id,
                )
        await self._log_regeneration(contract_id, result, correlation_id)

        return updated

    async def delete_rental_contract(
        self,
        contract_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a contract and everything that depends on it.

        Order: payment records of unpaid obligations, unpaid obligations,
        documents, tiers, then the contract row. Paid obligations and those
        replaced by installments survive, detached from the contract.
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._contract_lock(contract_id):
            async with self._storage.transaction():
                contract = await self._require_contract(contract_id)
                purged_count = await self._purge_unpaid(contract)
                await self._storage.delete_documents(contract_id)
                await self._storage.delete_tiers(contract_id)
                await self._storage.delete_contract(contract_id)

        if self._audit_logger:
            await self._audit_logger.log_contract_deleted(
                contract_id=contract_id,
                contract_name=contract.contract_name,
                purged_count=purged_count,
                correlation_id=correlation_id,
            )

    async def generate_rental_payments(
        self,
        contract_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> GenerationResult:
        """
        Create missing monthly obligations and patch changed unpaid amounts.

        Safe to call repeatedly: a second call with nothing changed
        reports generated_count == 0.

        Raises:
            ContractNotFoundError: Unknown contract
            CategoryNotFoundError: The rent category is missing
            RegenerationConflictError: Lost a race with another writer;
                nothing was written and the call may be retried
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._contract_lock(contract_id):
            try:
                async with self._storage.transaction():
                    contract = await self._require_contract(contract_id)
                    category = await self._rent_category()
                    tiers = await self._storage.find_tiers(contract_id)
                    result = await self._regenerate(contract, tiers, category)
            except RegenerationConflictError as e:
                await self._log_conflict(contract_id, e, correlation_id)
                raise

        logger.info(
            "rental_payments_generated",
            contract_id=str(contract_id),
            generated=result.generated_count,
            patched=len(result.patched),
        )
        await self._log_regeneration(contract_id, result, correlation_id)

        return GenerationResult(
            generated_count=result.generated_count,
            patched_count=len(result.patched),
        )

    async def update_contract_payment_info(
        self,
        contract_id: UUID,
        info: PaymentInfoUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> RentalContract:
        """Update payee, bank and payment-day fields. Never regenerates."""
        correlation_id = correlation_id or create_correlation_id()
        fields = info.model_dump(exclude_none=True)

        async with self._storage.transaction():
            contract = await self._require_contract(contract_id)
            updated = contract.model_copy(update={
                **fields,
                "updated_at": datetime.utcnow(),
            })
            await self._storage.update_contract(updated)

        if self._audit_logger:
            await self._audit_logger.log_payment_info_updated(
                contract_id=contract_id,
                changed_fields=sorted(fields),
                correlation_id=correlation_id,
            )

        return updated

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    async def record_payment(
        self,
        obligation_id: UUID,
        amount: Decimal,
        payment_date: date,
        payment_method: Optional[PaymentMethod] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Obligation:
        """
        Record a payment and raise the obligation's paid amount.

        Once anything is paid the obligation is frozen against regeneration.
        Status becomes paid when the total is covered, partial otherwise.

        Raises:
            ObligationNotFoundError: No live obligation with that ID
            PreconditionError: The amount is not positive, exceeds what is
                still owed, or the obligation was replaced by installments
        """
        correlation_id = correlation_id or create_correlation_id()

        target = await self._storage.get_obligation(obligation_id)
        if target is None or target.is_deleted:
            raise ObligationNotFoundError(obligation_id)

        lock = self._contract_lock(target.contract_id) if target.contract_id else nullcontext()
        async with lock:
            async with self._storage.transaction():
                obligation = await self._storage.get_obligation(obligation_id)
                if obligation is None or obligation.is_deleted:
                    raise ObligationNotFoundError(obligation_id)
                if obligation.status == ObligationStatus.REPLACED:
                    raise PreconditionError(
                        f"Obligation {obligation_id} was replaced by installments; "
                        "pay the installments instead"
                    )
                if amount <= 0 or amount > obligation.outstanding:
                    raise PreconditionError(
                        f"Payment of {amount} is outside 0 < amount <= "
                        f"{obligation.outstanding} for obligation {obligation_id}"
                    )

                paid_amount = obligation.paid_amount + amount
                fully_paid = paid_amount >= obligation.total_amount
                await self._storage.insert_payment_record(PaymentRecord(
                    obligation_id=obligation_id,
                    amount_paid=amount,
                    payment_date=payment_date,
                    payment_method=payment_method,
                    is_partial_payment=not fully_paid,
                    notes=notes,
                ))
                updated = await self._storage.update_obligation(obligation_id, {
                    "paid_amount": paid_amount,
                    "status": ObligationStatus.PAID if fully_paid else ObligationStatus.PARTIAL,
                    "updated_at": datetime.utcnow(),
                })

        if self._audit_logger:
            await self._audit_logger.log_payment_recorded(
                obligation_id=obligation_id,
                amount=str(amount),
                status=updated.status.value,
                correlation_id=correlation_id,
            )

        return updated

    # -------------------------------------------------------------------------
    # Installments
    # -------------------------------------------------------------------------

    async def create_installment_plan(
        self,
        item_id: UUID,
        installment_count: int,
        start_date: date,
        start_type: InstallmentStartType = InstallmentStartType.CURRENT_MONTH,
        amounts: Optional[list[Decimal]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> InstallmentPlan:
        """
        Plan to split an unpaid obligation into monthly installments.

        Without `amounts` the obligation's total is split evenly to the
        cent, the last installment taking the remainder. With `amounts`
        the schedule must have installment_count entries summing to the
        obligation's total.
        """
        original = await self._storage.get_obligation(item_id)
        if original is None or original.is_deleted:
            raise ObligationNotFoundError(item_id)
        if original.is_frozen:
            raise PreconditionError(
                f"Obligation {item_id} is paid or already split into installments"
            )

        schedule = list(amounts) if amounts else split_evenly(
            original.total_amount,
            installment_count,
        )
        plan = InstallmentPlan(
            item_id=item_id,
            total_amount=original.total_amount,
            installment_count=installment_count,
            monthly_amount=schedule[0],
            amounts=schedule,
            start_date=start_date,
            start_type=start_type,
        )
        await self._storage.insert_installment_plan(plan)

        logger.info(
            "installment_plan_created",
            plan_id=str(plan.id),
            item_id=str(item_id),
            installment_count=installment_count,
            correlation_id=str(correlation_id) if correlation_id else None,
        )

        return plan

    async def generate_installment_payments(
        self,
        plan_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> GenerationResult:
        """
        Create the plan's installment obligations and retire the original.

        The original obligation is kept with status replaced.
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._storage.transaction():
            plan = await self._storage.get_installment_plan(plan_id)
            if plan is None:
                raise InstallmentPlanNotFoundError(plan_id)

            original = await self._storage.get_obligation(plan.item_id)
            if original is None or original.is_deleted:
                raise ObligationNotFoundError(plan.item_id)
            if original.is_frozen:
                raise PreconditionError(
                    f"Obligation {plan.item_id} is paid or already split into installments"
                )

            installments = build_installments(plan, original)
            await self._storage.insert_obligations(installments)
            await self._storage.update_obligation(plan.item_id, {
                "status": ObligationStatus.REPLACED,
                "notes": replacement_note(plan),
                "updated_at": datetime.utcnow(),
            })

        if self._audit_logger:
            await self._audit_logger.log_installments_generated(
                plan_id=plan_id,
                item_id=plan.item_id,
                installment_count=len(installments),
                correlation_id=correlation_id,
            )

        return GenerationResult(generated_count=len(installments))


def create_app_components(
    use_database: bool = True,
) -> tuple[RentalContractService, ContractQueries, LedgerStorageInterface]:
    """
    Factory function to create all application components.

    Args:
        use_database: Whether to use the configured SQL database.
                    Set to False for in-memory storage.

    Returns:
        (contract_service, contract_queries, ledger_storage)
    """
    settings = get_settings()
    ledger_storage: LedgerStorageInterface
    audit_logger: AuditLogger

    if use_database:
        try:
            engine = build_engine(settings.database)
            sql_storage = SqlLedgerStorage(engine)
            sql_storage.initialize(settings.database.connect_retries)
            ledger_storage = sql_storage
            audit_logger = AuditLogger(SqlAuditStorage(engine))
        except Exception as e:
            # Database not reachable - continue in memory
            logger.warning("database_unavailable", error=str(e))
            ledger_storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        ledger_storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    service = RentalContractService(
        storage=ledger_storage,
        audit_logger=audit_logger,
        engine_settings=settings.engine,
    )
    queries = ContractQueries(ledger_storage)

    return service, queries, ledger_storage
