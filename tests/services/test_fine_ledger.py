"""
Tests for FineLedger issuance, payment and closure.

Tests cover:
1. Amount validation
2. Payment checks in order: paid, closed, amount, balance
3. Partial then full payment, with the loan's cached totals
4. Waive vs cancel effect on the loan total
5. Outstanding balance per patron
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from library_kernel.exceptions import (
    FineAlreadyPaidError,
    FineNotFoundError,
    FineNotPayableError,
    FineRecordMismatchError,
    InvalidAmountError,
    OverPaymentError,
    PatronNotFoundError,
)
from library_kernel.models.fine import FineStatus, FineType
from library_kernel.selectors.borrow_record_selector import BorrowRecordSelector
from library_kernel.selectors.fine_selector import FineSelector
from library_kernel.services.fine_ledger import FineLedger
from library_kernel.services.patron_service import PatronService

STAFF_ID = "staff-0001"


@pytest.fixture
def loan(borrowing_ledger, make_book, make_patron):
    """An ACTIVE loan checked out 2024-01-01, due 2024-01-15."""
    return borrowing_ledger.checkout(make_patron(), make_book(), STAFF_ID)


@pytest.fixture
def record_of(session):
    def _get(record_id):
        return BorrowRecordSelector(session).get(record_id)

    return _get


def _damage(fine_ledger, loan, amount="10.00"):
    return fine_ledger.issue_fine(
        loan.user_id,
        amount,
        FineType.DAMAGE,
        "Water damage",
        borrow_record_id=loan.id,
        issued_by=STAFF_ID,
    )


class TestIssueFine:
    def test_pending_fine_added_to_loan_total(self, fine_ledger, loan, record_of):
        fine = _damage(fine_ledger, loan)

        assert fine.status == FineStatus.PENDING.value
        assert fine.paid_amount == Decimal("0.00")
        assert fine.issue_date == date(2024, 1, 1)
        assert record_of(loan.id).fine_amount == Decimal("10.00")
        assert record_of(loan.id).is_fine_paid is False

    def test_fine_without_loan(self, fine_ledger, make_patron):
        fine = fine_ledger.issue_fine(make_patron(), "3.00", FineType.OTHER, "Lost card")
        assert fine.borrow_record_id is None
        assert fine.due_date is None

    def test_overdue_fine_gets_payment_due_date(self, fine_ledger, make_patron):
        fine = fine_ledger.issue_fine(make_patron(), "1.00", FineType.OVERDUE, "Late")
        assert fine.due_date == date(2024, 1, 31)

    @pytest.mark.parametrize("amount", ["0", "-1.00", "0.005", "abc"])
    def test_invalid_amount(self, fine_ledger, make_patron, amount):
        with pytest.raises(InvalidAmountError):
            fine_ledger.issue_fine(make_patron(), amount, FineType.OTHER, "x")

    def test_unknown_patron(self, fine_ledger):
        with pytest.raises(PatronNotFoundError):
            fine_ledger.issue_fine("ghost", "1.00", FineType.OTHER, "x")

    def test_loan_of_other_patron(self, fine_ledger, loan, make_patron):
        with pytest.raises(FineRecordMismatchError):
            fine_ledger.issue_fine(
                make_patron(), "1.00", FineType.DAMAGE, "x", borrow_record_id=loan.id
            )


class TestPayFine:
    def test_partial_then_full(
        self, session, fine_ledger, deterministic_clock, loan, record_of
    ):
        fine = _damage(fine_ledger, loan)

        partial = fine_ledger.pay_fine(fine.id, "4.00", processed_by=STAFF_ID)
        assert partial.status == FineStatus.PENDING.value
        assert partial.paid_amount == Decimal("4.00")
        assert partial.remaining_amount == Decimal("6.00")
        assert partial.paid_date is None
        assert record_of(loan.id).is_fine_paid is False

        deterministic_clock.set_date(date(2024, 1, 5))
        full = fine_ledger.pay_fine(fine.id, "6.00", payment_method="cash")
        assert full.status == FineStatus.PAID.value
        assert full.paid_date == date(2024, 1, 5)
        assert full.is_fully_paid
        assert record_of(loan.id).is_fine_paid is True

        payments = FineSelector(session).payments_for_fine(fine.id)
        assert [p.amount for p in payments] == [Decimal("4.00"), Decimal("6.00")]
        assert payments[1].payment_method == "cash"

    def test_overpayment_rejected(self, fine_ledger, loan):
        fine = _damage(fine_ledger, loan)
        fine_ledger.pay_fine(fine.id, "8.00")
        with pytest.raises(OverPaymentError) as exc_info:
            fine_ledger.pay_fine(fine.id, "2.01")
        assert exc_info.value.remaining == "2.00"

    def test_paid_fine_rejected_before_amount_check(self, fine_ledger, loan):
        fine = _damage(fine_ledger, loan)
        fine_ledger.pay_fine(fine.id, "10.00")
        with pytest.raises(FineAlreadyPaidError):
            fine_ledger.pay_fine(fine.id, "0")

    def test_waived_fine_not_payable(self, fine_ledger, loan):
        fine = _damage(fine_ledger, loan)
        fine_ledger.waive_fine(fine.id, STAFF_ID)
        with pytest.raises(FineNotPayableError):
            fine_ledger.pay_fine(fine.id, "1.00")

    @pytest.mark.parametrize("amount", ["0", "-5.00", "1.001"])
    def test_invalid_payment(self, fine_ledger, loan, amount):
        fine = _damage(fine_ledger, loan)
        with pytest.raises(InvalidAmountError):
            fine_ledger.pay_fine(fine.id, amount)

    def test_unknown_fine(self, fine_ledger):
        with pytest.raises(FineNotFoundError):
            fine_ledger.pay_fine(uuid4(), "1.00")


class TestCloseFine:
    def test_waive_keeps_loan_total(self, fine_ledger, loan, record_of):
        fine = _damage(fine_ledger, loan)
        waived = fine_ledger.waive_fine(fine.id, STAFF_ID, "first offence")

        assert waived.status == FineStatus.WAIVED.value
        assert waived.processed_by == STAFF_ID
        assert record_of(loan.id).fine_amount == Decimal("10.00")
        assert record_of(loan.id).is_fine_paid is True

    def test_cancel_removes_from_loan_total(self, fine_ledger, loan, record_of):
        keep = _damage(fine_ledger, loan, "4.00")
        drop = _damage(fine_ledger, loan, "6.00")

        fine_ledger.cancel_fine(drop.id, STAFF_ID, "issued in error")

        assert record_of(loan.id).fine_amount == Decimal("4.00")
        assert record_of(loan.id).is_fine_paid is False
        fine_ledger.pay_fine(keep.id, "4.00")
        assert record_of(loan.id).is_fine_paid is True

    def test_cancel_only_fine_leaves_loan_unpaid_flag_false(self, fine_ledger, loan, record_of):
        fine = _damage(fine_ledger, loan)
        fine_ledger.cancel_fine(fine.id, STAFF_ID)
        assert record_of(loan.id).fine_amount == Decimal("0.00")
        assert record_of(loan.id).is_fine_paid is False

    def test_closed_fine_cannot_be_closed_again(self, fine_ledger, loan):
        fine = _damage(fine_ledger, loan)
        fine_ledger.cancel_fine(fine.id, STAFF_ID)
        with pytest.raises(FineNotPayableError):
            fine_ledger.waive_fine(fine.id, STAFF_ID)

    def test_paid_fine_cannot_be_waived(self, fine_ledger, loan):
        fine = _damage(fine_ledger, loan)
        fine_ledger.pay_fine(fine.id, "10.00")
        with pytest.raises(FineNotPayableError):
            fine_ledger.waive_fine(fine.id, STAFF_ID)


class TestTotalUnpaid:
    def test_sums_remaining_of_pending_fines(self, fine_ledger, loan, make_patron):
        first = _damage(fine_ledger, loan, "10.00")
        _damage(fine_ledger, loan, "2.50")
        waived = _damage(fine_ledger, loan, "7.00")
        fine_ledger.pay_fine(first.id, "3.00")
        fine_ledger.waive_fine(waived.id, STAFF_ID)

        assert fine_ledger.total_unpaid_by_user(loan.user_id) == Decimal("9.50")
        assert fine_ledger.total_unpaid_by_user(make_patron()) == Decimal("0.00")


class TestPaymentAfterCommittedPayment:
    """A session holding an older copy of the fine must pay against the locked row."""

    def _unit(self, session_factory, clock):
        sess = session_factory()
        sess.info["clock"] = clock
        return sess

    def test_locked_read_sees_committed_balance(self, session_factory, deterministic_clock, policy):
        with self._unit(session_factory, deterministic_clock) as setup:
            PatronService(setup, policy).register_patron("payer", "Ada", "Lovelace")
            fine = FineLedger(setup, deterministic_clock, policy).issue_fine(
                "payer", "20.00", FineType.OTHER, "Replacement card"
            )
            setup.commit()

        waiting = self._unit(session_factory, deterministic_clock)
        try:
            # caches the fine with nothing paid; expire_on_commit=False keeps it
            assert FineSelector(waiting, policy).get(fine.id).paid_amount == Decimal("0.00")
            waiting.commit()

            with self._unit(session_factory, deterministic_clock) as first:
                FineLedger(first, deterministic_clock, policy).pay_fine(fine.id, "12.00")
                first.commit()

            paid = FineLedger(waiting, deterministic_clock, policy).pay_fine(fine.id, "8.00")
            waiting.commit()
        finally:
            waiting.close()

        assert paid.status == FineStatus.PAID.value
        assert paid.paid_amount == Decimal("20.00")

    def test_overpayment_checked_against_locked_balance(
        self, session_factory, deterministic_clock, policy
    ):
        with self._unit(session_factory, deterministic_clock) as setup:
            PatronService(setup, policy).register_patron("payer", "Ada", "Lovelace")
            fine = FineLedger(setup, deterministic_clock, policy).issue_fine(
                "payer", "20.00", FineType.OTHER, "Replacement card"
            )
            setup.commit()

        waiting = self._unit(session_factory, deterministic_clock)
        try:
            FineSelector(waiting, policy).get(fine.id)
            waiting.commit()

            with self._unit(session_factory, deterministic_clock) as first:
                FineLedger(first, deterministic_clock, policy).pay_fine(fine.id, "12.00")
                first.commit()

            with pytest.raises(OverPaymentError) as exc_info:
                FineLedger(waiting, deterministic_clock, policy).pay_fine(fine.id, "10.00")
            assert exc_info.value.remaining == "8.00"
            waiting.rollback()
        finally:
            waiting.close()
