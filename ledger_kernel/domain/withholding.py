"""
Withholding arithmetic -- pure functions, no I/O.

Responsibility:
    Derives the withheld amount, net amount, return quarter and the two
    statutory due dates from gross amount, rate and payment date.  The
    WithholdingPoster calls ``derive_withholding`` exactly once per record.

Invariants enforced:
    - tds_amount = gross * rate / 100, rounded half-up to two places.
    - net_amount = gross - tds_amount, so the two always add back to gross.
    - deposit due = 7th of the month after payment.
    - return due = last day of the month after the calendar quarter that
      contains the payment date.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ledger_kernel.db.types import round_money
from ledger_kernel.models.withholding import ReturnQuarter

DEPOSIT_DUE_DAY = 7
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class WithholdingFigures:
    """Everything derived from (gross, rate, payment date)."""

    gross_amount: Decimal
    tds_rate: Decimal
    tds_amount: Decimal
    net_amount: Decimal
    deposit_due_date: date
    return_due_date: date
    return_quarter: ReturnQuarter
    return_year: int

    @property
    def return_period(self) -> str:
        return f"{self.return_year}-{self.return_quarter.value}"


def _next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def compute_tds_amount(gross_amount: Decimal, tds_rate: Decimal) -> Decimal:
    """
    Withheld amount for a gross amount at a percentage rate.

    Raises:
        ValueError: If gross is negative or rate is outside 0..100.
    """
    if gross_amount < 0:
        raise ValueError(f"Gross amount must be non-negative, got {gross_amount}")
    if not (Decimal("0") <= tds_rate <= HUNDRED):
        raise ValueError(f"Withholding rate must be between 0 and 100, got {tds_rate}")
    return round_money(gross_amount * tds_rate / HUNDRED)


def deposit_due_date(payment_date: date) -> date:
    """7th of the month following payment; December rolls into January."""
    year, month = _next_month(payment_date.year, payment_date.month)
    return date(year, month, DEPOSIT_DUE_DAY)


def quarter_of(payment_date: date) -> ReturnQuarter:
    return ReturnQuarter(f"Q{(payment_date.month - 1) // 3 + 1}")


def return_due_date(payment_date: date) -> date:
    """Last day of the month following the payment's calendar quarter."""
    quarter_end_month = ((payment_date.month - 1) // 3 + 1) * 3
    year, month = _next_month(payment_date.year, quarter_end_month)
    return date(year, month, calendar.monthrange(year, month)[1])


def derive_withholding(
    gross_amount: Decimal,
    tds_rate: Decimal,
    payment_date: date,
) -> WithholdingFigures:
    gross = round_money(gross_amount)
    tds_amount = compute_tds_amount(gross, tds_rate)
    return WithholdingFigures(
        gross_amount=gross,
        tds_rate=tds_rate,
        tds_amount=tds_amount,
        net_amount=gross - tds_amount,
        deposit_due_date=deposit_due_date(payment_date),
        return_due_date=return_due_date(payment_date),
        return_quarter=quarter_of(payment_date),
        return_year=payment_date.year,
    )
