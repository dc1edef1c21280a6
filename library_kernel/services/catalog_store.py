"""
CatalogStore -- copy counters and circulation status of catalog titles.

Responsibility:
    The catalog collaborator the ledgers lend against.  Reports whether a
    title can be lent, and moves its ``available_copies`` counter inside the
    caller's transaction, so the availability check, the decrement and the
    loan insert commit (or roll back) as one unit.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - 0 <= available_copies <= total_copies after every adjustment.
    - A title goes BORROWED only when its last copy goes out, and back to
      AVAILABLE when a copy comes back.  LOST and MAINTENANCE are never
      overwritten by counter moves.
    - ``for_update=True`` reads take a row lock so concurrent checkouts of
      the same title serialize.

Failure modes:
    - BookNotFoundError: unknown book id.
    - BookUnavailableError: decrement past zero.
    - CatalogIntegrityError: increment past total, or write-off of a copy
      that was never lent.
"""

from decimal import Decimal
from uuid import UUID


from library_kernel.domain.dtos import BookAvailability
from library_kernel.domain.money import to_money
from library_kernel.exceptions import (
    BookNotFoundError,
    BookUnavailableError,
    CatalogIntegrityError,
)
from library_kernel.logging_config import get_logger
from library_kernel.models.book import Book, BookStatus
from library_kernel.services.base import BaseService

logger = get_logger("services.catalog_store")


class CatalogStore(BaseService[Book]):
    """
    Availability bookkeeping for books.

    Non-goals:
        - Authors, categories, search and the rest of catalog CRUD.
    """

    def _get_book(self, book_id: UUID, for_update: bool = False) -> Book:
        if for_update:
            book = self._load_for_update(Book, Book.id == book_id)
        else:
            book = self.session.get(Book, book_id)
        if book is None:
            raise BookNotFoundError(str(book_id))
        return book

    def get_availability(self, book_id: UUID, for_update: bool = False) -> BookAvailability:
        return BookAvailability.from_model(self._get_book(book_id, for_update))

    def adjust_availability(
        self,
        book_id: UUID,
        delta: int,
        new_status: BookStatus | None = None,
    ) -> BookAvailability:
        """
        Move ``available_copies`` by ``delta`` under a row lock.

        Args:
            book_id: Title to adjust.
            delta: -1 on checkout, +1 on return or cancellation.
            new_status: Explicit status to set; when omitted the status
                follows the counter (see module invariants).

        Raises:
            BookUnavailableError: the counter would drop below zero.
            CatalogIntegrityError: the counter would exceed total_copies.
        """
        book = self._get_book(book_id, for_update=True)
        target = book.available_copies + delta

        if target < 0:
            logger.warning(
                "availability_exhausted",
                extra={"book_id": str(book_id), "available_copies": book.available_copies},
            )
            raise BookUnavailableError(
                str(book_id), BookStatus(book.status).value, book.available_copies
            )
        if target > book.total_copies:
            raise CatalogIntegrityError(
                str(book_id),
                f"available_copies {target} would exceed total_copies {book.total_copies}",
            )

        previous_status = BookStatus(book.status)
        book.available_copies = target

        if new_status is not None:
            book.status = BookStatus(new_status).value
        elif target == 0 and previous_status == BookStatus.AVAILABLE:
            book.status = BookStatus.BORROWED.value
        elif target > 0 and previous_status == BookStatus.BORROWED:
            book.status = BookStatus.AVAILABLE.value

        self.session.flush()

        logger.info(
            "availability_adjusted",
            extra={
                "book_id": str(book_id),
                "delta": delta,
                "available_copies": target,
                "total_copies": book.total_copies,
                "status": book.status,
            },
        )
        return BookAvailability.from_model(book)

    def write_off_copy(self, book_id: UUID) -> BookAvailability:
        """
        Remove one lent-out copy from the collection permanently.

        The copy is already counted out of ``available_copies`` by its
        checkout, so only ``total_copies`` shrinks.  A title with no copies
        left becomes LOST.
        """
        book = self._get_book(book_id, for_update=True)

        if book.total_copies <= book.available_copies:
            raise CatalogIntegrityError(
                str(book_id), "no lent-out copy to write off"
            )

        book.total_copies -= 1
        if book.total_copies == 0:
            book.status = BookStatus.LOST.value

        self.session.flush()

        logger.info(
            "copy_written_off",
            extra={
                "book_id": str(book_id),
                "total_copies": book.total_copies,
                "available_copies": book.available_copies,
                "status": book.status,
            },
        )
        return BookAvailability.from_model(book)

    def register_book(
        self,
        title: str,
        isbn: str,
        total_copies: int = 1,
        replacement_cost: Decimal | str | None = None,
    ) -> BookAvailability:
        """Add a title with all of its copies on the shelf."""
        if total_copies < 0:
            raise ValueError("total_copies must not be negative")

        book = Book(
            title=title,
            isbn=isbn,
            total_copies=total_copies,
            available_copies=total_copies,
            status=BookStatus.AVAILABLE.value,
            replacement_cost=(
                to_money(replacement_cost) if replacement_cost is not None else None
            ),
        )
        self.session.add(book)
        self.session.flush()

        logger.info(
            "book_registered",
            extra={"book_id": str(book.id), "isbn": isbn, "total_copies": total_copies},
        )
        return BookAvailability.from_model(book)

    def set_status(self, book_id: UUID, status: BookStatus) -> BookAvailability:
        """Force a status, e.g. send a title to MAINTENANCE and back."""
        book = self._get_book(book_id, for_update=True)
        book.status = BookStatus(status).value
        self.session.flush()
        logger.info(
            "book_status_set",
            extra={"book_id": str(book_id), "status": book.status},
        )
        return BookAvailability.from_model(book)
