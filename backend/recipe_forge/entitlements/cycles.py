"""Billing-cycle date arithmetic."""

import calendar
from datetime import datetime

from recipe_forge.models.subscription import MONTHLY, YEARLY


def add_months(moment: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def cycle_months(billing_cycle: str) -> int:
    if billing_cycle == MONTHLY:
        return 1
    if billing_cycle == YEARLY:
        return 12
    raise ValueError(f"Unknown billing cycle: {billing_cycle!r}")


def next_billing_date(anchor: datetime, billing_cycle: str, cycles: int = 1) -> datetime:
    """Date of the ``cycles``-th boundary after ``anchor``.

    Always computed from the anchor so month-end clamping does not drift
    (Jan 31 -> Feb 28 -> Mar 31).
    """
    return add_months(anchor, cycle_months(billing_cycle) * cycles)


def current_cycle(anchor: datetime, billing_cycle: str, now: datetime) -> tuple[datetime, datetime]:
    """Return ``(cycle_start, next_boundary)`` for the cycle containing ``now``."""
    if now < anchor:
        return anchor, next_billing_date(anchor, billing_cycle)
    cycles = 0
    boundary = next_billing_date(anchor, billing_cycle, 1)
    while boundary <= now:
        cycles += 1
        boundary = next_billing_date(anchor, billing_cycle, cycles + 1)
    return next_billing_date(anchor, billing_cycle, cycles), boundary
