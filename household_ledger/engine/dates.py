"""
Calendar helpers for billing-month arithmetic.

Pure functions, no I/O. Month rollover clamps to the end of the target
month (Jan 31 + 1 month = Feb 28/29), which keeps a contract starting on
the 31st billing every month instead of skipping short ones.
"""

import calendar
from datetime import date

from dateutil.relativedelta import relativedelta


def month_key(value: date) -> str:
    """Format a date as its billing month key, YYYY-MM."""
    return f"{value.year:04d}-{value.month:02d}"


def last_day_of_month(year: int, month: int) -> date:
    """Last calendar day of the given month (month is 1-12)."""
    return date(year, month, calendar.monthrange(year, month)[1])


def add_months(value: date, months: int) -> date:
    """Calendar-correct month arithmetic."""
    return value + relativedelta(months=months)


def months_between(start: date, end: date) -> int:
    """
    Whole calendar months from start's month to end's month.

    Days are ignored: 2024-01-31 -> 2024-02-01 is one month.
    Negative when end's month is before start's.
    """
    return (end.year - start.year) * 12 + (end.month - start.month)


def effective_billing_start(contract) -> date:
    """
    First day billing may begin.

    A buffer that is NOT included in the term pushes billing back by
    buffer_months. An included buffer leaves the start unchanged; those
    months are skipped inside the materializer loop instead.
    """
    if contract.has_buffer_period and not contract.buffer_included_in_term:
        return add_months(contract.start_date, contract.buffer_months or 0)
    return contract.start_date


def contract_span(start: date, end: date) -> tuple[int, int]:
    """
    (total_years, total_months) for an inclusive date range.

    total_years counts started years, so a 13-month contract is 2 years.
    """
    total_months = months_between(start, end) + 1
    total_years = (total_months + 11) // 12
    return total_years, total_months
