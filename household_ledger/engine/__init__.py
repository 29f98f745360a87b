"""
Obligation Engine Package

Pure functions that turn contract definitions into obligations and diff
them against stored state. Only apply_reconciliation() touches storage.
"""

from household_ledger.engine.dates import (
    add_months,
    contract_span,
    effective_billing_start,
    last_day_of_month,
    month_key,
    months_between,
)
from household_ledger.engine.errors import (
    CategoryNotFoundError,
    ContractNotFoundError,
    InstallmentPlanNotFoundError,
    InvalidIntervalError,
    LedgerError,
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
from household_ledger.engine.materializer import (
    DEFAULT_MAX_BILLING_MONTHS,
    ensure_materializable,
    materialize,
)
from household_ledger.engine.reconciliation import (
    apply_reconciliation,
    extract_month_key,
    reconcile,
)
from household_ledger.engine.tiers import (
    contract_year_for_index,
    find_malformed_tiers,
    find_tier_overlaps,
    resolve_monthly_amount,
    sort_tiers,
)

__all__ = [
    # Calendar
    "add_months",
    "contract_span",
    "effective_billing_start",
    "last_day_of_month",
    "month_key",
    "months_between",
    # Errors
    "CategoryNotFoundError",
    "ContractNotFoundError",
    "InstallmentPlanNotFoundError",
    "InvalidIntervalError",
    "LedgerError",
    "ObligationNotFoundError",
    "PreconditionError",
    "ProjectNotFoundError",
    "RegenerationConflictError",
    "TierConflictError",
    # Installments
    "build_installments",
    "replacement_note",
    "split_evenly",
    # Materializer
    "DEFAULT_MAX_BILLING_MONTHS",
    "ensure_materializable",
    "materialize",
    # Reconciliation
    "apply_reconciliation",
    "extract_month_key",
    "reconcile",
    # Tiers
    "contract_year_for_index",
    "find_malformed_tiers",
    "find_tier_overlaps",
    "resolve_monthly_amount",
    "sort_tiers",
]
