"""
Debt amortisation helpers.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

CENT = Decimal("0.01")
MAX_SCHEDULE_MONTHS = 1200


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def monthly_rate(annual_rate_pct) -> Decimal:
    return Decimal(str(annual_rate_pct or 0)) / 12 / 100


def split_payment(payment, balance, annual_rate_pct) -> Tuple[Decimal, Decimal]:
    """
    Split a payment into (principal, interest).

    Interest accrues on the current balance for one month. The principal
    part never exceeds the balance.
    """
    payment = Decimal(str(payment))
    balance = Decimal(str(balance))
    interest = _money(min(payment, balance * monthly_rate(annual_rate_pct)))
    principal = _money(min(balance, payment - interest))
    return principal, interest


@dataclass
class PayoffSchedule:
    months: int
    total_interest: Decimal
    total_paid: Decimal


def payoff_schedule(balance, annual_rate_pct, payment) -> Optional[PayoffSchedule]:
    """
    Months and total interest until balance reaches zero at a fixed payment.

    Returns None when the payment does not cover the first month's interest.
    """
    balance = Decimal(str(balance))
    payment = Decimal(str(payment))
    if balance <= 0:
        return PayoffSchedule(months=0, total_interest=Decimal("0.00"), total_paid=Decimal("0.00"))
    if payment <= 0:
        return None
    first_interest = _money(balance * monthly_rate(annual_rate_pct))
    if first_interest > 0 and payment <= first_interest:
        return None

    months = 0
    total_interest = Decimal("0")
    total_paid = Decimal("0")
    while balance > 0 and months < MAX_SCHEDULE_MONTHS:
        interest = _money(balance * monthly_rate(annual_rate_pct))
        principal = min(balance, payment - interest)
        balance -= principal
        total_interest += interest
        total_paid += principal + interest
        months += 1

    if balance > 0:
        return None
    return PayoffSchedule(
        months=months,
        total_interest=_money(total_interest),
        total_paid=_money(total_paid),
    )
