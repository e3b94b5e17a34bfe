"""
Equal-payment amortization math.

Pure functions, no I/O. Amounts are floats here; the group manager
quantizes the per-period payment to cents before it is stored.

    payment = P * r * (1 + r)^n / ((1 + r)^n - 1),  r = annual% / 100 / 12
"""

from decimal import Decimal
from typing import Union

from ledger.models.transaction import ScheduleEntry


Number = Union[int, float, Decimal]


def monthly_rate(annual_rate_percent: Number) -> float:
    return float(annual_rate_percent) / 100.0 / 12.0


def monthly_payment(
    principal: Number,
    annual_rate_percent: Number,
    period_count: int,
) -> float:
    """
    Fixed per-period payment.

    period_count <= 0 returns the principal unchanged; a zero rate divides
    the principal evenly.
    """
    principal = float(principal)
    if period_count <= 0:
        return principal
    if float(annual_rate_percent) == 0:
        return principal / period_count

    r = monthly_rate(annual_rate_percent)
    growth = (1 + r) ** period_count
    return principal * r * growth / (growth - 1)


def total_interest(
    principal: Number,
    annual_rate_percent: Number,
    period_count: int,
) -> float:
    """Interest paid over the whole schedule."""
    payment = monthly_payment(principal, annual_rate_percent, period_count)
    return payment * period_count - float(principal)


def schedule_detail(
    principal: Number,
    annual_rate_percent: Number,
    period_count: int,
) -> list[ScheduleEntry]:
    """
    Per-period breakdown of the schedule.

    The final entry's remaining principal is forced to exactly 0 to absorb
    floating-point drift. Returns an empty list when period_count <= 0.
    """
    if period_count <= 0:
        return []

    payment = monthly_payment(principal, annual_rate_percent, period_count)
    zero_rate = float(annual_rate_percent) == 0
    r = monthly_rate(annual_rate_percent)

    entries = []
    remaining = float(principal)
    for period in range(1, period_count + 1):
        if zero_rate:
            interest = 0.0
            principal_part = payment
        else:
            interest = remaining * r
            principal_part = payment - interest

        remaining -= principal_part
        if period == period_count:
            remaining = 0.0

        entries.append(ScheduleEntry(
            period=period,
            payment=payment,
            interest=interest,
            principal=principal_part,
            remaining_principal=max(0.0, remaining),
        ))

    return entries
