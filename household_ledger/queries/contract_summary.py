"""
Contract Queries

DESIGN DECISION: Queries are read-only and DETERMINISTIC.
Every figure is computed from stored obligations and payment records;
nothing is estimated. Only live (not soft-deleted) obligations of the
contract count, and obligations replaced by an installment plan are left
out since their debt lives on in the installments.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from household_ledger.engine.dates import months_between
from household_ledger.engine.errors import ContractNotFoundError
from household_ledger.models.contract import RentalContract
from household_ledger.models.obligation import (
    ContractDetails,
    ContractProgress,
    Obligation,
    ObligationStatus,
    PaymentStats,
)
from household_ledger.services.storage import LedgerStorageInterface


RECENT_PAYMENT_LIMIT = 10


def billable(obligations: list[Obligation]) -> list[Obligation]:
    """Drop obligations superseded by an installment plan."""
    return [o for o in obligations if o.status != ObligationStatus.REPLACED]


def compute_payment_stats(obligations: list[Obligation], today: date) -> PaymentStats:
    """
    Aggregate payment figures.

    An obligation counts as overdue when its due date has passed and
    nothing has been paid against it.
    """
    stats = PaymentStats()
    for obligation in billable(obligations):
        stats.total_payments += 1
        stats.total_amount += obligation.total_amount
        stats.paid_amount += obligation.paid_amount
        stats.unpaid_amount += obligation.total_amount - obligation.paid_amount
        if obligation.is_paid:
            stats.paid_count += 1
        else:
            stats.unpaid_count += 1
            if obligation.start_date < today:
                stats.overdue_count += 1
    return stats


def compute_progress(contract: RentalContract, today: date) -> ContractProgress:
    """
    Share of the term elapsed, months left, and whether the term is over.

    Percentage is by days and clamped to 0-100. Remaining months are
    whole calendar months, plus one for a started partial month.
    """
    total_days = (contract.end_date - contract.start_date).days
    elapsed_days = (today - contract.start_date).days

    if total_days <= 0:
        percentage = 100.0 if elapsed_days >= 0 else 0.0
    else:
        percentage = min(max(elapsed_days / total_days * 100, 0.0), 100.0)

    remaining = months_between(today, contract.end_date)
    if contract.end_date.day > today.day:
        remaining += 1

    return ContractProgress(
        percentage=round(percentage, 2),
        remaining_months=max(remaining, 0),
        is_expired=today > contract.end_date,
    )


class ContractQueries:
    """
    Read-side views over a rental contract.

    GUARANTEES:
    - Only returns real data from storage
    - Soft-deleted obligations never appear in listings or totals
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def _require_contract(self, contract_id: UUID) -> RentalContract:
        contract = await self._storage.get_contract(contract_id)
        if contract is None:
            raise ContractNotFoundError(contract_id)
        return contract

    async def list_contract_payments(self, contract_id: UUID) -> list[Obligation]:
        """
        Obligations generated for a contract, ordered by due date.

        Raises:
            ContractNotFoundError: If the contract does not exist
        """
        contract = await self._require_contract(contract_id)
        obligations = await self._storage.find_contract_obligations(contract)
        return sorted(obligations, key=lambda o: (o.start_date, o.item_name))

    async def get_contract_details(
        self,
        contract_id: UUID,
        today: Optional[date] = None,
    ) -> ContractDetails:
        """
        Everything a contract detail view shows, in one call.

        Args:
            contract_id: The contract to describe
            today: Reference date for overdue and progress figures

        Raises:
            ContractNotFoundError: If the contract does not exist
        """
        today = today or date.today()
        contract = await self._require_contract(contract_id)

        tiers = await self._storage.find_tiers(contract_id)
        obligations = await self._storage.find_contract_obligations(contract)
        records = await self._storage.find_payment_records(
            [obligation.id for obligation in obligations]
        )
        documents = await self._storage.find_documents(contract_id)

        return ContractDetails(
            contract=contract,
            price_tiers=tiers,
            payment_stats=compute_payment_stats(obligations, today),
            recent_payments=records[:RECENT_PAYMENT_LIMIT],
            documents=documents,
            progress=compute_progress(contract, today),
        )

    async def get_outstanding_total(self, contract_id: UUID) -> Decimal:
        """Amount still owed across the contract's live obligations."""
        contract = await self._require_contract(contract_id)
        obligations = await self._storage.find_contract_obligations(contract)
        return sum((o.outstanding for o in billable(obligations)), Decimal("0"))
