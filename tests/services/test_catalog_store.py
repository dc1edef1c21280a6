"""
Tests for CatalogStore availability bookkeeping.

Tests cover:
1. Registration and lookup
2. Counter movement and the 0 <= available <= total bound
3. Status following the counter
4. Copy write-off for lost books
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from library_kernel.exceptions import (
    BookNotFoundError,
    BookUnavailableError,
    CatalogIntegrityError,
)
from library_kernel.models.book import Book, BookStatus


class TestRegisterBook:
    def test_all_copies_on_shelf(self, catalog):
        availability = catalog.register_book("Dune", "978-0441013593", total_copies=3)
        assert availability.total_copies == 3
        assert availability.available_copies == 3
        assert availability.status == BookStatus.AVAILABLE.value
        assert availability.is_available

    def test_replacement_cost_stored(self, catalog):
        availability = catalog.register_book(
            "Dune", "978-0441013594", replacement_cost="18.99"
        )
        assert availability.replacement_cost == Decimal("18.99")

    def test_negative_copies_rejected(self, catalog):
        with pytest.raises(ValueError):
            catalog.register_book("Dune", "978-0441013595", total_copies=-1)


class TestGetAvailability:
    def test_unknown_book(self, catalog):
        with pytest.raises(BookNotFoundError):
            catalog.get_availability(uuid4())


class TestAdjustAvailability:
    def test_checkout_and_return_move_counter(self, catalog, make_book):
        book_id = make_book(total_copies=2)
        assert catalog.adjust_availability(book_id, -1).available_copies == 1
        assert catalog.adjust_availability(book_id, +1).available_copies == 2

    def test_last_copy_out_marks_borrowed(self, catalog, make_book):
        book_id = make_book(total_copies=1)
        availability = catalog.adjust_availability(book_id, -1)
        assert availability.available_copies == 0
        assert availability.status == BookStatus.BORROWED.value
        assert not availability.is_available

    def test_copy_back_marks_available(self, catalog, make_book):
        book_id = make_book(total_copies=1)
        catalog.adjust_availability(book_id, -1)
        availability = catalog.adjust_availability(book_id, +1)
        assert availability.status == BookStatus.AVAILABLE.value

    def test_cannot_go_below_zero(self, catalog, make_book):
        book_id = make_book(total_copies=1)
        catalog.adjust_availability(book_id, -1)
        with pytest.raises(BookUnavailableError) as exc_info:
            catalog.adjust_availability(book_id, -1)
        assert exc_info.value.available_copies == 0

    def test_cannot_exceed_total(self, catalog, make_book):
        book_id = make_book(total_copies=1)
        with pytest.raises(CatalogIntegrityError):
            catalog.adjust_availability(book_id, +1)

    def test_maintenance_status_not_overridden(self, catalog, make_book):
        book_id = make_book(total_copies=2)
        catalog.set_status(book_id, BookStatus.MAINTENANCE)
        availability = catalog.adjust_availability(book_id, -1)
        assert availability.status == BookStatus.MAINTENANCE.value

    def test_explicit_status(self, catalog, make_book):
        book_id = make_book(total_copies=2)
        availability = catalog.adjust_availability(book_id, -1, new_status=BookStatus.MAINTENANCE)
        assert availability.status == BookStatus.MAINTENANCE.value

    def test_adjustment_is_flushed(self, session, catalog, make_book):
        book_id = make_book(total_copies=2)
        catalog.adjust_availability(book_id, -1)
        session.expire_all()
        assert session.get(Book, book_id).available_copies == 1


class TestWriteOffCopy:
    def test_total_shrinks_available_unchanged(self, catalog, make_book):
        book_id = make_book(total_copies=2)
        catalog.adjust_availability(book_id, -1)
        availability = catalog.write_off_copy(book_id)
        assert availability.total_copies == 1
        assert availability.available_copies == 1
        assert availability.status == BookStatus.AVAILABLE.value

    def test_last_copy_marks_lost(self, catalog, make_book):
        book_id = make_book(total_copies=1)
        catalog.adjust_availability(book_id, -1)
        availability = catalog.write_off_copy(book_id)
        assert availability.total_copies == 0
        assert availability.status == BookStatus.LOST.value

    def test_requires_a_lent_copy(self, catalog, make_book):
        book_id = make_book(total_copies=1)
        with pytest.raises(CatalogIntegrityError):
            catalog.write_off_copy(book_id)
