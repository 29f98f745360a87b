"""
Obligation Materializer

Walks a contract's billing window month by month and produces the
canonical, in-memory list of obligations it should have.

FLOW (per billing-month slot):
1. Skip the slot if it falls inside an included-in-term buffer
2. contract_year = billing_month_index // 12 + 1
3. amount = first matching tier, else the base amount
4. due date = last calendar day of the month

CRITICAL: billing_month_index advances on EVERY slot, including skipped
buffer slots. Buffer months therefore count against the year-1 tier
window. Existing generated data depends on this alignment.
"""

from decimal import Decimal
from typing import Iterable

from household_ledger.engine.dates import (
    add_months,
    effective_billing_start,
    last_day_of_month,
    month_key,
    months_between,
)
from household_ledger.engine.errors import InvalidIntervalError
from household_ledger.engine.tiers import (
    contract_year_for_index,
    resolve_monthly_amount,
    sort_tiers,
)
from household_ledger.models.contract import PriceTier, RentalContract
from household_ledger.models.obligation import MaterializedObligation


DEFAULT_MAX_BILLING_MONTHS = 1200


def ensure_materializable(
    contract: RentalContract,
    max_months: int = DEFAULT_MAX_BILLING_MONTHS,
) -> None:
    """
    Reject contracts whose billing loop would be empty-by-error or unbounded.

    Raises:
        InvalidIntervalError: end before start, negative buffer, or a
            window longer than max_months
    """
    if contract.end_date < contract.start_date:
        raise InvalidIntervalError(
            f"End date {contract.end_date} is before start date {contract.start_date}",
            field="end_date",
        )

    buffer_months = contract.buffer_months or 0
    if buffer_months < 0:
        raise InvalidIntervalError(
            f"Buffer months cannot be negative ({buffer_months})",
            field="buffer_months",
        )

    span = months_between(effective_billing_start(contract), contract.end_date) + 1
    if span > max_months:
        raise InvalidIntervalError(
            f"Billing window of {span} months exceeds the limit of {max_months}",
            field="end_date",
        )


def materialize(
    contract: RentalContract,
    tiers: Iterable[PriceTier],
    max_months: int = DEFAULT_MAX_BILLING_MONTHS,
) -> list[MaterializedObligation]:
    """
    Compute every billing month a contract should have, in order.

    Args:
        contract: The contract definition
        tiers: Its price tiers, in any order
        max_months: Hard cap on loop iterations

    Returns:
        One MaterializedObligation per billable month

    Raises:
        InvalidIntervalError: If the contract cannot be materialized
    """
    ensure_materializable(contract, max_months)

    ordered_tiers = sort_tiers(tiers)
    billing_start = effective_billing_start(contract)
    skip_included_buffer = bool(contract.has_buffer_period and contract.buffer_included_in_term)
    buffer_months = contract.buffer_months or 0
    base_amount = Decimal(contract.base_amount)

    entries: list[MaterializedObligation] = []
    billing_month_index = 0
    cursor = billing_start

    while cursor <= contract.end_date:
        if billing_month_index >= max_months:
            raise InvalidIntervalError(
                f"Billing loop exceeded {max_months} months",
                field="end_date",
            )

        in_buffer = (
            skip_included_buffer
            and months_between(contract.start_date, cursor) < buffer_months
        )
        if not in_buffer:
            contract_year = contract_year_for_index(billing_month_index)
            entries.append(MaterializedObligation(
                month_key=month_key(cursor),
                due_date=last_day_of_month(cursor.year, cursor.month),
                amount=resolve_monthly_amount(ordered_tiers, contract_year, base_amount),
                contract_year=contract_year,
            ))

        billing_month_index += 1
        # Always step from the anchor so month-end clamping does not drift
        cursor = add_months(billing_start, billing_month_index)

    return entries
