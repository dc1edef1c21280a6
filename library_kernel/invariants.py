"""
Kernel Invariants Contract.

These invariants are structural law for circulation.  They are enforced by
the ledgers, row locks and database constraints; no configuration may
override them.

This module exists solely to declare them explicitly.  Enforcement is
distributed across CatalogStore, BorrowingLedger, FineLedger and the model
CHECK constraints.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Configuration may tune loan periods, rates and limits, but never
    *whether* these rules apply.
    """

    COPY_BOUNDS = "copy_bounds"
    """0 <= available_copies <= total_copies for every book.  Enforced by
    CatalogStore under a row lock and by ck_book_copies_in_range."""

    BORROWING_LIMIT = "borrowing_limit"
    """A patron's ACTIVE loans never exceed max_books_allowed.  Enforced by
    BorrowingLedger.checkout under the patron row lock."""

    ATOMIC_CIRCULATION = "atomic_circulation"
    """Book counter, loan and fine writes of one operation commit together.
    Enforced by flush-only services inside one orchestrator unit of work."""

    FINE_TOTALS = "fine_totals"
    """A loan's fine_amount equals the sum of its non-cancelled fines.
    Enforced by FineLedger."""

    NO_DOUBLE_CHARGE = "no_double_charge"
    """An overdue day is fined at most once per loan.  Enforced by the
    fined_through watermark in BorrowingLedger."""

    NO_FUTURE_ACCRUAL = "no_future_accrual"
    """Overdue fines are never charged past today, so fined_through never
    runs ahead of the clock.  Enforced by BorrowingLedger and the
    orchestrator sweep."""

    NO_OVERPAYMENT = "no_overpayment"
    """paid_amount never exceeds amount.  Enforced by FineLedger.pay_fine
    and ck_fine_paid_in_range."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "library_services",
    "library_config",
)
