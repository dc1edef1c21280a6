"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable snapshots of books, patrons, loans and fines returned by the
    kernel services and selectors, plus the pagination request/response
    pair.  Derived fields (``is_available``, ``is_overdue``,
    ``remaining_amount``, ``display_name``) are computed on read and never
    stored.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked only from
    the service and selector layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import UUID

if TYPE_CHECKING:
    from library_kernel.models.book import Book
    from library_kernel.models.borrow_record import BorrowRecord
    from library_kernel.models.fine import Fine, FinePayment
    from library_kernel.models.patron import Patron

T = TypeVar("T")


def _value(member) -> str:
    """Enum member or raw column string -> plain string value."""
    return getattr(member, "value", member)


@dataclass(frozen=True)
class BookAvailability:
    """Catalog Store view of one title's lendability."""

    book_id: UUID
    status: str
    total_copies: int
    available_copies: int
    replacement_cost: Decimal | None = None

    @property
    def is_available(self) -> bool:
        return self.status == "AVAILABLE" and self.available_copies > 0

    @classmethod
    def from_model(cls, model: Book) -> BookAvailability:
        return cls(
            book_id=model.id,
            status=_value(model.status),
            total_copies=model.total_copies,
            available_copies=model.available_copies,
            replacement_cost=model.replacement_cost,
        )


@dataclass(frozen=True)
class PatronInfo:
    user_id: str
    first_name: str
    last_name: str
    email: str | None
    role: str
    max_books_allowed: int

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_model(cls, model: Patron) -> PatronInfo:
        return cls(
            user_id=model.user_id,
            first_name=model.first_name,
            last_name=model.last_name,
            email=model.email,
            role=_value(model.role),
            max_books_allowed=model.max_books_allowed,
        )


@dataclass(frozen=True)
class BorrowRecordInfo:
    """
    Immutable snapshot of a loan.

    Guarantees:
        - ``is_overdue(today)`` is derived: ACTIVE, not returned, and past due.
        - ``fine_amount`` is the cached total of fines attached to the loan.
    """

    id: UUID
    user_id: str
    book_id: UUID
    borrow_date: date
    due_date: date
    return_date: date | None
    status: str
    fine_amount: Decimal
    is_fine_paid: bool
    checked_out_by: str | None = None
    checked_in_by: str | None = None
    notes: str | None = None
    return_condition_notes: str | None = None
    fined_through: date | None = None
    version: int = 1

    def is_overdue(self, today: date) -> bool:
        return (
            self.status == "ACTIVE"
            and self.return_date is None
            and self.due_date < today
        )

    @classmethod
    def from_model(cls, model: BorrowRecord) -> BorrowRecordInfo:
        return cls(
            id=model.id,
            user_id=model.user_id,
            book_id=model.book_id,
            borrow_date=model.borrow_date,
            due_date=model.due_date,
            return_date=model.return_date,
            status=_value(model.status),
            fine_amount=model.fine_amount,
            is_fine_paid=model.is_fine_paid,
            checked_out_by=model.checked_out_by,
            checked_in_by=model.checked_in_by,
            notes=model.notes,
            return_condition_notes=model.return_condition_notes,
            fined_through=model.fined_through,
            version=model.version,
        )


@dataclass(frozen=True)
class FineInfo:
    """
    Immutable snapshot of a fine.

    Guarantees:
        - ``remaining_amount = amount - paid_amount``.
        - ``is_fully_paid`` iff ``paid_amount >= amount``.
        - ``is_overdue(today)`` iff PENDING and past its payment due date.
    """

    id: UUID
    user_id: str
    borrow_record_id: UUID | None
    amount: Decimal
    fine_type: str
    status: str
    reason: str
    issue_date: date
    due_date: date | None
    paid_amount: Decimal
    paid_date: date | None = None
    description: str | None = None
    processed_by: str | None = None

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.paid_amount

    @property
    def is_fully_paid(self) -> bool:
        return self.paid_amount >= self.amount

    def is_overdue(self, today: date) -> bool:
        return (
            self.status == "PENDING"
            and self.due_date is not None
            and self.due_date < today
        )

    @classmethod
    def from_model(cls, model: Fine) -> FineInfo:
        return cls(
            id=model.id,
            user_id=model.user_id,
            borrow_record_id=model.borrow_record_id,
            amount=model.amount,
            fine_type=_value(model.fine_type),
            status=_value(model.status),
            reason=model.reason,
            issue_date=model.issue_date,
            due_date=model.due_date,
            paid_amount=model.paid_amount,
            paid_date=model.paid_date,
            description=model.description,
            processed_by=model.processed_by,
        )


@dataclass(frozen=True)
class FinePaymentInfo:
    id: UUID
    fine_id: UUID
    amount: Decimal
    paid_on: date
    payment_method: str | None
    payment_reference: str | None
    processed_by: str | None
    recorded_at: datetime | None = None

    @classmethod
    def from_model(cls, model: FinePayment) -> FinePaymentInfo:
        return cls(
            id=model.id,
            fine_id=model.fine_id,
            amount=model.amount,
            paid_on=model.paid_on,
            payment_method=model.payment_method,
            payment_reference=model.payment_reference,
            processed_by=model.processed_by,
            recorded_at=model.audit.created_at if model.audit else None,
        )


@dataclass(frozen=True)
class PageRequest:
    """Zero-based page index and page size.  Size is clamped by the policy."""

    page: int = 0
    size: int = 20

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("page must not be negative")

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    page: int
    size: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages
