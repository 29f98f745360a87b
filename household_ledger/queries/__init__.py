"""Contract query package."""

from household_ledger.queries.contract_summary import (
    ContractQueries,
    compute_payment_stats,
    compute_progress,
)

__all__ = ["ContractQueries", "compute_payment_stats", "compute_progress"]
