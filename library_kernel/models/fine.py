"""
Module: library_kernel.models.fine
Responsibility: ORM persistence for fines and the payments made against them.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - amount > 0 (ck_fine_amount_positive).
    - 0 <= paid_amount <= amount (ck_fine_paid_in_range).
    - status == PAID iff paid_amount == amount (maintained by the Fine Ledger).
    - Every accepted payment is one FinePayment row; rows are never edited.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.audit import AuditFields, audit_composite
from library_kernel.db.base import UUID, Base, UUIDString


class FineType(str, Enum):
    OVERDUE = "OVERDUE"
    LOST_BOOK = "LOST_BOOK"
    DAMAGE = "DAMAGE"
    OTHER = "OTHER"


class FineStatus(str, Enum):
    """Fine lifecycle.  PENDING is the only open state."""

    PENDING = "PENDING"
    PAID = "PAID"
    WAIVED = "WAIVED"
    CANCELLED = "CANCELLED"


class Fine(Base):
    """A monetary charge against a patron, optionally tied to a loan."""

    __tablename__ = "fines"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_fine_amount_positive"),
        CheckConstraint(
            "paid_amount >= 0 AND paid_amount <= amount",
            name="ck_fine_paid_in_range",
        ),
        Index("idx_fine_user_status", "user_id", "status"),
        Index("idx_fine_record", "borrow_record_id"),
        Index("idx_fine_status_due", "status", "due_date"),
    )

    user_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("patrons.user_id"),
        nullable=False,
    )

    borrow_record_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("borrow_records.id"),
        nullable=True,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    fine_type: Mapped[FineType] = mapped_column(
        "type",
        String(20),
        nullable=False,
    )

    status: Mapped[FineStatus] = mapped_column(
        String(20),
        nullable=False,
        default=FineStatus.PENDING.value,
    )

    reason: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    issue_date: Mapped[date] = mapped_column(nullable=False)

    due_date: Mapped[date | None] = mapped_column(nullable=True)

    paid_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0.00"),
    )

    paid_date: Mapped[date | None] = mapped_column(nullable=True)

    processed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    audit: Mapped[AuditFields] = audit_composite()

    __mapper_args__ = {"version_id_col": version}

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - (self.paid_amount or Decimal("0.00"))

    @property
    def is_fully_paid(self) -> bool:
        return (self.paid_amount or Decimal("0.00")) >= self.amount

    def is_overdue(self, today: date) -> bool:
        return (
            self.status == FineStatus.PENDING
            and self.due_date is not None
            and self.due_date < today
        )

    def __repr__(self) -> str:
        return f"<Fine {self.id} {self.fine_type} {self.amount} {self.status}>"


class FinePayment(Base):
    """One accepted payment against a fine.  Append-only."""

    __tablename__ = "fine_payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_fine_payment_positive"),
        Index("idx_fine_payment_fine", "fine_id"),
    )

    fine_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fines.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    paid_on: Mapped[date] = mapped_column(nullable=False)

    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    processed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    audit: Mapped[AuditFields] = audit_composite()

    def __repr__(self) -> str:
        return f"<FinePayment {self.fine_id} {self.amount}>"
