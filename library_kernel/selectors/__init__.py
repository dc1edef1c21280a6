"""Read-only selectors for the circulation kernel."""

from library_kernel.selectors.borrow_record_selector import BorrowRecordSelector
from library_kernel.selectors.fine_selector import FineSelector

__all__ = ["BorrowRecordSelector", "FineSelector"]
