"""
Installment Generator

Splits one obligation into N monthly installment obligations. The
original obligation is kept and marked as replaced.
"""

from decimal import ROUND_DOWN, Decimal

from household_ledger.engine.dates import add_months
from household_ledger.models.obligation import (
    InstallmentPlan,
    InstallmentStartType,
    Obligation,
    ObligationStatus,
    PaymentType,
)


CENT = Decimal("0.01")


def split_evenly(total: Decimal, count: int) -> list[Decimal]:
    """
    Split a total into `count` cent-exact parts.

    Every part is the rounded-down share; the last part absorbs the
    remainder, so the parts always add up to the total.
    """
    if count < 1:
        raise ValueError("Installment count must be at least 1")

    share = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    parts = [share] * (count - 1)
    parts.append(total - share * (count - 1))
    return parts


def installment_amounts(plan: InstallmentPlan) -> list[Decimal]:
    """Amount of each installment, honouring a variable schedule if present."""
    if plan.amounts:
        return list(plan.amounts)
    return [plan.monthly_amount] * plan.installment_count


def build_installments(plan: InstallmentPlan, original: Obligation) -> list[Obligation]:
    """
    Installment obligations for a plan, in due-date order.

    The i-th installment (0-based) is due start_date + i months, or
    start_date + i + 1 months when the plan starts next month.
    """
    offset = 1 if plan.start_type == InstallmentStartType.NEXT_MONTH else 0
    count = plan.installment_count

    installments = []
    for index, amount in enumerate(installment_amounts(plan)):
        number = index + 1
        installments.append(Obligation(
            category_id=original.category_id,
            project_id=original.project_id,
            item_name=f"{original.item_name} (分期 {number}/{count})",
            total_amount=amount,
            item_type=original.item_type,
            payment_type=PaymentType.INSTALLMENT,
            start_date=add_months(plan.start_date, index + offset),
            status=ObligationStatus.PENDING,
            priority=original.priority,
            notes=f"{original.item_name} 的分期付款 {number}/{count}",
        ))
    return installments


def replacement_note(plan: InstallmentPlan) -> str:
    """Note stored on the original obligation once it is replaced."""
    return f"已轉為{plan.installment_count}期分期付款"
