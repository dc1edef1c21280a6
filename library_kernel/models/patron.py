"""
Module: library_kernel.models.patron
Responsibility: ORM persistence for borrowing accounts.  A Patron links an
    external identity (``user_id``) to a role and a borrowing limit.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - user_id is unique (uq_patron_user_id).
    - max_books_allowed >= 1 (ck_patron_max_books).
    - Checkout touches ``last_checkout_at`` so two concurrent checkouts by the
      same patron collide on ``version`` even if they lock different books.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.audit import AuditFields, audit_composite
from library_kernel.db.base import Base


class PatronRole(str, Enum):
    MEMBER = "MEMBER"
    LIBRARIAN = "LIBRARIAN"
    ADMIN = "ADMIN"

    @property
    def is_staff(self) -> bool:
        return self in (PatronRole.LIBRARIAN, PatronRole.ADMIN)


class Patron(Base):
    """Borrowing account for one external user."""

    __tablename__ = "patrons"

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_patron_user_id"),
        CheckConstraint("max_books_allowed >= 1", name="ck_patron_max_books"),
    )

    user_id: Mapped[str] = mapped_column(String(100), nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)

    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    role: Mapped[PatronRole] = mapped_column(
        String(20),
        nullable=False,
        default=PatronRole.MEMBER.value,
    )

    max_books_allowed: Mapped[int] = mapped_column(nullable=False, default=5)

    last_checkout_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    audit: Mapped[AuditFields] = audit_composite()

    __mapper_args__ = {"version_id_col": version}

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Patron {self.user_id} ({self.role})>"
