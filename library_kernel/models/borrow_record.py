"""
Module: library_kernel.models.borrow_record
Responsibility: ORM persistence for loans.  One BorrowRecord is one copy of
    one book lent to one patron.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - user_id and book_id never change after creation.
    - fine_amount >= 0 and equals the sum of the fines attached to the record
      (maintained by the Fine Ledger).
    - ``fined_through`` is the last date for which overdue fines have been
      issued.  It only moves forward.
    - RETURNED, LOST and CANCELLED are terminal.

Failure modes:
    - StaleDataError when two transactions write the same record.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.audit import AuditFields, audit_composite
from library_kernel.db.base import UUID, Base, UUIDString


class BorrowStatus(str, Enum):
    """Loan status.

    ACTIVE -> RETURNED | LOST | CANCELLED.  OVERDUE and EXTENDED are
    recognised values but no operation produces them; overdue-ness is
    computed from ``due_date``.
    """

    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"
    LOST = "LOST"
    CANCELLED = "CANCELLED"
    EXTENDED = "EXTENDED"


class BorrowRecord(Base):
    """A single loan of a book to a patron."""

    __tablename__ = "borrow_records"

    __table_args__ = (
        CheckConstraint("fine_amount >= 0", name="ck_borrow_fine_nonnegative"),
        Index("idx_borrow_user_status", "user_id", "status"),
        Index("idx_borrow_status_due", "status", "due_date"),
        Index("idx_borrow_book", "book_id"),
    )

    user_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("patrons.user_id"),
        nullable=False,
    )

    book_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("books.id"),
        nullable=False,
    )

    borrow_date: Mapped[date] = mapped_column(nullable=False)

    due_date: Mapped[date] = mapped_column(nullable=False)

    return_date: Mapped[date | None] = mapped_column(nullable=True)

    status: Mapped[BorrowStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BorrowStatus.ACTIVE.value,
    )

    fine_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0.00"),
    )

    is_fine_paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    checked_out_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    checked_in_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    return_condition_notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    # Overdue fines have been issued up to and including this date
    fined_through: Mapped[date | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    audit: Mapped[AuditFields] = audit_composite()

    __mapper_args__ = {"version_id_col": version}

    def is_overdue(self, today: date) -> bool:
        return (
            self.status == BorrowStatus.ACTIVE
            and self.return_date is None
            and self.due_date < today
        )

    def __repr__(self) -> str:
        return f"<BorrowRecord {self.id} {self.user_id} {self.status}>"
