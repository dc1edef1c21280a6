"""
Module: library_kernel.models.book
Responsibility: ORM persistence for catalog titles and their copy counters.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - 0 <= available_copies <= total_copies (ck_book_copies_in_range).
    - isbn is unique (uq_book_isbn).
    - Every write bumps ``version``; a stale writer gets StaleDataError.

Failure modes:
    - IntegrityError when a counter leaves its range or an isbn repeats.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.audit import AuditFields, audit_composite
from library_kernel.db.base import Base


class BookStatus(str, Enum):
    """Circulation status of a title."""

    AVAILABLE = "AVAILABLE"
    BORROWED = "BORROWED"  # Every copy is out
    LOST = "LOST"  # Every copy written off
    MAINTENANCE = "MAINTENANCE"


class Book(Base):
    """
    A catalog title with a number of physical copies.

    Only the circulation fields live here; authors, categories and other
    bibliographic detail belong to the wider catalog.
    """

    __tablename__ = "books"

    __table_args__ = (
        UniqueConstraint("isbn", name="uq_book_isbn"),
        CheckConstraint("total_copies >= 0", name="ck_book_total_copies"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_book_copies_in_range",
        ),
        Index("idx_book_status", "status"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    isbn: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[BookStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookStatus.AVAILABLE.value,
    )

    total_copies: Mapped[int] = mapped_column(nullable=False, default=1)

    available_copies: Mapped[int] = mapped_column(nullable=False, default=1)

    # Charged as the LOST_BOOK fine when a copy is written off
    replacement_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    audit: Mapped[AuditFields] = audit_composite()

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_available(self) -> bool:
        return self.status == BookStatus.AVAILABLE and self.available_copies > 0

    def __repr__(self) -> str:
        return (
            f"<Book {self.isbn}: {self.available_copies}/{self.total_copies} "
            f"{self.status}>"
        )
