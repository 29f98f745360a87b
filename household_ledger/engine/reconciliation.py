"""
Reconciliation Engine

Diffs the materialized month list of a contract against the obligations
already stored for it, and applies only the minimal set of writes:

- month missing             -> create a new pending obligation
- month present, unpaid,
  not replaced by installments,
  resolved amount differs   -> patch total_amount and notes only
- anything else             -> leave untouched

CRITICAL: This engine never deletes. Purging unpaid obligations is the
coordinator's job and only happens on specific contract changes.
"""

import re
from datetime import datetime
from typing import Iterable, Optional

from household_ledger.models.contract import RentalContract
from household_ledger.models.obligation import (
    ItemType,
    MaterializedObligation,
    Obligation,
    ObligationPatch,
    ObligationStatus,
    PaymentType,
    ReconciliationResult,
)


MONTH_KEY_PATTERN = re.compile(r"(\d{4})-(\d{2})-")

RENT_NOTE_TEMPLATE = "{contract_name} 第{contract_year}年租金"
DEFAULT_UPDATED_MARKER = "(已更新)"


def extract_month_key(item_name: str) -> Optional[str]:
    """Pull the leading YYYY-MM out of a generated item name."""
    match = MONTH_KEY_PATTERN.search(item_name)
    if not match:
        return None
    return f"{match.group(1)}-{match.group(2)}"


def rent_item_name(key: str, contract_name: str) -> str:
    return f"{key}-{contract_name}"


def rent_note(contract_name: str, contract_year: int) -> str:
    return RENT_NOTE_TEMPLATE.format(
        contract_name=contract_name,
        contract_year=contract_year,
    )


def index_existing(
    contract: RentalContract,
    existing: Iterable[Obligation],
) -> dict[str, Obligation]:
    """
    Map month key -> stored obligation for one contract.

    Only live obligations carrying the contract's ID are considered; a
    contract moved to another project keeps its obligations. The first
    obligation seen for a month wins.
    """
    by_month: dict[str, Obligation] = {}
    for obligation in existing:
        if obligation.is_deleted:
            continue
        if obligation.contract_id != contract.id:
            continue

        key = obligation.month_key or extract_month_key(obligation.item_name)
        if key is None:
            continue
        by_month.setdefault(key, obligation)
    return by_month


def build_rent_obligation(
    contract: RentalContract,
    entry: MaterializedObligation,
    category_id,
) -> Obligation:
    """A fresh pending obligation for one billing month."""
    return Obligation(
        category_id=category_id,
        project_id=contract.project_id,
        contract_id=contract.id,
        month_key=entry.month_key,
        item_name=rent_item_name(entry.month_key, contract.contract_name),
        total_amount=entry.amount,
        item_type=ItemType.PROJECT,
        payment_type=PaymentType.SINGLE,
        start_date=entry.due_date,
        status=ObligationStatus.PENDING,
        priority=1,
        notes=rent_note(contract.contract_name, entry.contract_year),
    )


def reconcile(
    contract: RentalContract,
    materialized: Iterable[MaterializedObligation],
    existing: Iterable[Obligation],
    category_id,
    updated_marker: str = DEFAULT_UPDATED_MARKER,
) -> ReconciliationResult:
    """
    Work out which obligations to create and which to patch.

    Pure: nothing is written here. Use apply_reconciliation() to persist.

    Args:
        contract: The (already updated) contract
        materialized: Output of materialize()
        existing: Obligations currently stored for the contract
        category_id: ID of the rent category new obligations are filed under
        updated_marker: Suffix added to notes of patched obligations

    Returns:
        ReconciliationResult with created obligations and amount patches
    """
    by_month = index_existing(contract, existing)
    result = ReconciliationResult()

    for entry in materialized:
        current = by_month.get(entry.month_key)

        if current is None:
            created = build_rent_obligation(contract, entry, category_id)
            result.created.append(created)
            by_month[entry.month_key] = created
            continue

        if current.is_frozen:
            continue

        # Decimal comparison: 1000 == 1000.00
        if current.total_amount != entry.amount:
            result.patched.append(ObligationPatch(
                obligation_id=current.id,
                month_key=entry.month_key,
                previous_amount=current.total_amount,
                total_amount=entry.amount,
                notes=f"{rent_note(contract.contract_name, entry.contract_year)} {updated_marker}",
            ))

    return result


async def apply_reconciliation(
    storage,
    result: ReconciliationResult,
    now: Optional[datetime] = None,
) -> None:
    """
    Persist a reconciliation result.

    Created obligations go in as one bulk insert; each patch is a
    separate row update touching total_amount, notes and updated_at only.
    Run inside the caller's storage transaction.
    """
    if result.created:
        await storage.insert_obligations(result.created)

    timestamp = now or datetime.utcnow()
    for patch in result.patched:
        await storage.update_obligation(
            patch.obligation_id,
            {
                "total_amount": patch.total_amount,
                "notes": patch.notes,
                "updated_at": timestamp,
            },
        )
