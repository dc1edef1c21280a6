"""Flush-only kernel services."""

from library_kernel.services.borrowing_ledger import BorrowingLedger
from library_kernel.services.catalog_store import CatalogStore
from library_kernel.services.fine_ledger import FineLedger
from library_kernel.services.patron_service import PatronService

__all__ = ["BorrowingLedger", "CatalogStore", "FineLedger", "PatronService"]
