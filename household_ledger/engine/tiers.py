"""
Tier Resolver

Selects the monthly rate for a contract year from an ordered list of
year-range tiers.

DESIGN DECISION: Resolution is a linear first-match scan over the list
exactly as given. Callers pass tiers sorted by ascending year_start
(sort_tiers), which makes "first match wins" deterministic even when
legacy data contains overlapping ranges.
"""

from decimal import Decimal
from typing import Iterable, Protocol, Sequence


class TierLike(Protocol):
    year_start: int
    year_end: int
    monthly_amount: Decimal


def contract_year_for_index(billing_month_index: int) -> int:
    """1-based contract year of a zero-based billing month index."""
    return billing_month_index // 12 + 1


def resolve_monthly_amount(
    tiers: Iterable[TierLike],
    contract_year: int,
    base_amount: Decimal,
) -> Decimal:
    """
    Monthly amount for a contract year.

    Returns the amount of the first tier whose [year_start, year_end]
    range contains contract_year, or base_amount when none does.
    """
    for tier in tiers:
        if tier.year_start <= contract_year <= tier.year_end:
            return tier.monthly_amount
    return base_amount


def sort_tiers(tiers: Iterable[TierLike]) -> list:
    """Tiers in ascending year_start order (stable for equal starts)."""
    return sorted(tiers, key=lambda tier: tier.year_start)


def find_malformed_tiers(tiers: Iterable[TierLike]) -> list[tuple[int, int]]:
    """Year ranges that are empty or start before year 1."""
    return [
        (tier.year_start, tier.year_end)
        for tier in tiers
        if tier.year_start < 1 or tier.year_end < tier.year_start
    ]


def find_tier_overlaps(tiers: Sequence[TierLike]) -> list[tuple[tuple[int, int], tuple[int, int]]]:
    """
    Pairs of overlapping year ranges.

    Adjacent ranges ({1, 2} and {3, 5}) do not overlap.
    """
    ordered = sort_tiers(tiers)
    overlaps = []
    for index, current in enumerate(ordered):
        for other in ordered[index + 1:]:
            if other.year_start > current.year_end:
                break
            overlaps.append((
                (current.year_start, current.year_end),
                (other.year_start, other.year_end),
            ))
    return overlaps
