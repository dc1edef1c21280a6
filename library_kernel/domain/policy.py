"""
CirculationPolicy -- the tunable rules of the circulation kernel.

Responsibility:
    Immutable bundle of loan periods, fine rates, borrowing limits and
    paging bounds.  Services read every business constant from here; the
    values themselves come from ``library_config`` via ``to_policy()``.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  MUST NOT import library_config.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from types import MappingProxyType


def _default_role_limits() -> Mapping[str, int]:
    return MappingProxyType({"MEMBER": 5, "LIBRARIAN": 10, "ADMIN": 10})


@dataclass(frozen=True)
class CirculationPolicy:
    """
    Business constants for lending and fines.

    Guarantees:
        - All day counts are positive; rates and costs are non-negative.
        - ``max_page_size`` bounds every paginated query.
    """

    loan_period_days: int = 14
    fine_payment_days: int = 30
    daily_fine_rate: Decimal = Decimal("0.50")
    lost_book_replacement_cost: Decimal = Decimal("25.00")
    max_books_by_role: Mapping[str, int] = field(default_factory=_default_role_limits)
    default_max_books: int = 5
    default_page_size: int = 20
    max_page_size: int = 1000

    def __post_init__(self) -> None:
        if self.loan_period_days <= 0:
            raise ValueError("loan_period_days must be positive")
        if self.fine_payment_days <= 0:
            raise ValueError("fine_payment_days must be positive")
        if self.daily_fine_rate < 0:
            raise ValueError("daily_fine_rate must not be negative")
        if self.lost_book_replacement_cost <= 0:
            raise ValueError("lost_book_replacement_cost must be positive")
        if self.default_max_books < 1:
            raise ValueError("default_max_books must be at least 1")
        for role, limit in self.max_books_by_role.items():
            if limit < 1:
                raise ValueError(f"borrowing limit for {role} must be at least 1")
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be within [1, max_page_size]")

    def max_books_for(self, role: str) -> int:
        """Default borrowing limit for a new patron with ``role``."""
        key = getattr(role, "value", role)
        return self.max_books_by_role.get(key, self.default_max_books)

    def loan_due_date(self, borrow_date: date) -> date:
        return borrow_date + timedelta(days=self.loan_period_days)

    def fine_due_date(self, issue_date: date) -> date:
        return issue_date + timedelta(days=self.fine_payment_days)

    def clamp_page_size(self, size: int | None) -> int:
        if size is None or size < 1:
            return self.default_page_size
        return min(size, self.max_page_size)
