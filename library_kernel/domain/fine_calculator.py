"""
Fine calculator -- overdue fine arithmetic.

Responsibility:
    Pure functions that turn a due date, a cutoff date and a daily rate into
    a fine amount.  Used by the Borrowing Ledger on return and by the
    overdue sweep.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A fine is never negative: elapsed days are clamped at zero.
    - Results are rounded half-up to whole cents.
    - Repeated accrual against a watermark never charges a day twice.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from library_kernel.domain.money import ZERO, round_money, to_money
from library_kernel.exceptions import InvalidAmountError


def overdue_days(due_date: date, as_of: date) -> int:
    """Whole days between ``due_date`` and ``as_of``, never negative."""
    return max(0, (as_of - due_date).days)


def _validated_rate(daily_rate: Decimal | int | str) -> Decimal:
    rate = to_money(daily_rate)
    if rate < 0:
        raise InvalidAmountError(rate, "daily rate must not be negative")
    return rate


def calculate_overdue_fine(
    due_date: date,
    as_of: date,
    daily_rate: Decimal | int | str,
) -> Decimal:
    """
    Fine owed for a loan due on ``due_date`` as of ``as_of``.

    ``daily_rate * max(0, days_between(due_date, as_of))``, rounded to cents.
    Returns 0.00 when the loan is not overdue.

    Raises:
        InvalidAmountError: if ``daily_rate`` is negative.
        TypeError: if ``daily_rate`` is a float.
    """
    rate = _validated_rate(daily_rate)
    days = overdue_days(due_date, as_of)
    if days == 0:
        return ZERO
    return round_money(rate * days)


@dataclass(frozen=True)
class OverdueAccrual:
    """Fine for the days between a loan's watermark and a cutoff date."""

    start: date
    end: date
    days: int
    amount: Decimal

    @property
    def is_empty(self) -> bool:
        return self.days == 0 or self.amount <= 0


def incremental_overdue_fine(
    due_date: date,
    fined_through: date | None,
    as_of: date,
    daily_rate: Decimal | int | str,
) -> OverdueAccrual:
    """
    Fine for overdue days not yet charged.

    Charging starts from ``max(due_date, fined_through)``; everything up to
    the watermark has already been fined.  The returned ``end`` is the new
    watermark once the fine is issued.
    """
    start = due_date if fined_through is None else max(due_date, fined_through)
    amount = calculate_overdue_fine(start, as_of, daily_rate)
    return OverdueAccrual(
        start=start,
        end=max(start, as_of),
        days=overdue_days(start, as_of),
        amount=amount,
    )
