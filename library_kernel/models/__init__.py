"""ORM models for the circulation kernel."""

from library_kernel.models.book import Book, BookStatus
from library_kernel.models.borrow_record import BorrowRecord, BorrowStatus
from library_kernel.models.fine import Fine, FinePayment, FineStatus, FineType
from library_kernel.models.patron import Patron, PatronRole

__all__ = [
    "Book",
    "BookStatus",
    "BorrowRecord",
    "BorrowStatus",
    "Fine",
    "FinePayment",
    "FineStatus",
    "FineType",
    "Patron",
    "PatronRole",
]
