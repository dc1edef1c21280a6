"""Tests for derived fields on the frozen DTOs."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from library_kernel.domain.dtos import (
    BookAvailability,
    BorrowRecordInfo,
    FineInfo,
    Page,
    PageRequest,
    PatronInfo,
)


def _record(**overrides) -> BorrowRecordInfo:
    values = dict(
        id=uuid4(),
        user_id="user-1",
        book_id=uuid4(),
        borrow_date=date(2023, 12, 18),
        due_date=date(2024, 1, 1),
        return_date=None,
        status="ACTIVE",
        fine_amount=Decimal("0.00"),
        is_fine_paid=False,
    )
    values.update(overrides)
    return BorrowRecordInfo(**values)


def _fine(**overrides) -> FineInfo:
    values = dict(
        id=uuid4(),
        user_id="user-1",
        borrow_record_id=None,
        amount=Decimal("5.00"),
        fine_type="OVERDUE",
        status="PENDING",
        reason="Overdue",
        issue_date=date(2024, 1, 11),
        due_date=date(2024, 2, 10),
        paid_amount=Decimal("0.00"),
    )
    values.update(overrides)
    return FineInfo(**values)


class TestBookAvailability:
    def test_available_needs_status_and_copies(self):
        assert BookAvailability(uuid4(), "AVAILABLE", 2, 1).is_available
        assert not BookAvailability(uuid4(), "AVAILABLE", 2, 0).is_available
        assert not BookAvailability(uuid4(), "MAINTENANCE", 2, 2).is_available


class TestPatronInfo:
    def test_display_name(self):
        info = PatronInfo("u", "Ada", "Lovelace", None, "MEMBER", 5)
        assert info.display_name == "Ada Lovelace"


class TestBorrowRecordOverdue:
    """Overdue is derived, never stored."""

    def test_active_past_due_is_overdue(self):
        assert _record().is_overdue(date(2024, 1, 2))

    def test_on_due_date_is_not_overdue(self):
        assert not _record().is_overdue(date(2024, 1, 1))

    def test_returned_is_not_overdue(self):
        record = _record(status="RETURNED", return_date=date(2024, 1, 11))
        assert not record.is_overdue(date(2024, 2, 1))


class TestFineInfo:
    def test_remaining_amount(self):
        assert _fine(paid_amount=Decimal("2.00")).remaining_amount == Decimal("3.00")

    def test_fully_paid(self):
        assert _fine(paid_amount=Decimal("5.00")).is_fully_paid
        assert not _fine(paid_amount=Decimal("4.99")).is_fully_paid

    def test_overdue_only_while_pending(self):
        assert _fine().is_overdue(date(2024, 2, 11))
        assert not _fine().is_overdue(date(2024, 2, 10))
        assert not _fine(status="PAID").is_overdue(date(2024, 3, 1))

    def test_no_due_date_never_overdue(self):
        assert not _fine(due_date=None).is_overdue(date(2030, 1, 1))


class TestPaging:
    def test_page_request_offset(self):
        assert PageRequest(page=3, size=10).offset == 30

    def test_negative_page_rejected(self):
        with pytest.raises(ValueError):
            PageRequest(page=-1)

    def test_total_pages_and_has_next(self):
        page = Page(items=(), page=0, size=10, total=25)
        assert page.total_pages == 3
        assert page.has_next
        assert not Page(items=(), page=2, size=10, total=25).has_next
