"""
BorrowingLedger -- the loan lifecycle and borrowing-limit policy.

Responsibility:
    Checks books out, takes them back, writes them off as lost, cancels
    loans, and accrues overdue fines against a per-loan watermark.  Every
    method runs inside the caller's transaction and touches the catalog and
    the Fine Ledger through their services, so one commit covers the book
    counter, the loan and any fine.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - A patron never holds more ACTIVE loans than ``max_books_allowed``.
      The patron row is locked before counting, and every checkout bumps
      the patron's version, so two concurrent checkouts by one patron
      cannot both pass the count.
    - ``available_copies`` moves exactly once per checkout, return and
      cancellation.  A lost copy is written off instead of restored.
    - Only ACTIVE loans transition; RETURNED, LOST and CANCELLED are final.
    - Overdue fines are charged from ``max(due_date, fined_through)`` and
      the watermark advances with every charge, so no day is charged twice.

Lock order:
    checkout: patron -> book.  return/lost/cancel/accrual: loan -> book.

Failure modes:
    - PatronNotFoundError, BookNotFoundError, BorrowRecordNotFoundError.
    - BookUnavailableError, LimitExceededError, LoanNotActiveError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.domain.dtos import BorrowRecordInfo, FineInfo
from library_kernel.domain.fine_calculator import incremental_overdue_fine
from library_kernel.domain.money import ZERO
from library_kernel.domain.policy import CirculationPolicy
from library_kernel.exceptions import (
    BookUnavailableError,
    BorrowRecordNotFoundError,
    FutureAccrualDateError,
    InvalidDueDateError,
    LimitExceededError,
    LoanNotActiveError,
    PatronNotFoundError,
)
from library_kernel.logging_config import get_logger
from library_kernel.models.borrow_record import BorrowRecord, BorrowStatus
from library_kernel.models.fine import FineType
from library_kernel.models.patron import Patron
from library_kernel.selectors.borrow_record_selector import BorrowRecordSelector
from library_kernel.services.base import BaseService
from library_kernel.services.catalog_store import CatalogStore
from library_kernel.services.fine_ledger import FineLedger

logger = get_logger("services.borrowing_ledger")


class BorrowingLedger(BaseService[BorrowRecord]):
    """
    Owner of the BorrowRecord lifecycle.

    Contract:
        Public methods return frozen DTOs and never commit.  ``catalog`` and
        ``fines`` default to instances bound to the same session.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: CirculationPolicy | None = None,
        catalog: CatalogStore | None = None,
        fines: FineLedger | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy or CirculationPolicy()
        self._catalog = catalog or CatalogStore(session)
        self._fines = fines or FineLedger(session, self._clock, self._policy)
        self._records = BorrowRecordSelector(session, self._policy)

    def _get_record_for_update(self, record_id: UUID) -> BorrowRecord:
        record = self._load_for_update(BorrowRecord, BorrowRecord.id == record_id)
        if record is None:
            raise BorrowRecordNotFoundError(str(record_id))
        return record

    def _get_active_record_for_update(self, record_id: UUID) -> BorrowRecord:
        record = self._get_record_for_update(record_id)
        if record.status != BorrowStatus.ACTIVE.value:
            raise LoanNotActiveError(str(record_id), BorrowStatus(record.status).value)
        return record

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def checkout(
        self,
        user_id: str,
        book_id: UUID,
        acting_staff_id: str,
        due_date: date | None = None,
        notes: str | None = None,
    ) -> BorrowRecordInfo:
        """
        Lend one copy of ``book_id`` to ``user_id``.

        The book's availability is checked before the patron's limit.  On
        success the loan is ACTIVE, due ``loan_period_days`` from today
        unless ``due_date`` is given, and the book's counter is down by one.

        Raises:
            PatronNotFoundError: no account for ``user_id``.
            BookNotFoundError: unknown ``book_id``.
            BookUnavailableError: book not AVAILABLE or no free copy.
            LimitExceededError: patron already at ``max_books_allowed``.
        """
        patron = self._load_for_update(Patron, Patron.user_id == user_id)
        if patron is None:
            raise PatronNotFoundError(user_id)

        availability = self._catalog.get_availability(book_id, for_update=True)
        if not availability.is_available:
            logger.info(
                "checkout_rejected_unavailable",
                extra={"user_id": user_id, "book_id": str(book_id)},
            )
            raise BookUnavailableError(
                str(book_id), availability.status, availability.available_copies
            )

        active_count = self._records.active_count_by_user(user_id)
        if active_count >= patron.max_books_allowed:
            logger.info(
                "checkout_rejected_limit",
                extra={
                    "user_id": user_id,
                    "active_count": active_count,
                    "max_allowed": patron.max_books_allowed,
                },
            )
            raise LimitExceededError(user_id, active_count, patron.max_books_allowed)

        today = self._clock.today()
        loan_due = due_date or self._policy.loan_due_date(today)
        if loan_due < today:
            raise InvalidDueDateError(loan_due, today)

        self._catalog.adjust_availability(book_id, -1)

        record = BorrowRecord(
            user_id=user_id,
            book_id=book_id,
            borrow_date=today,
            due_date=loan_due,
            status=BorrowStatus.ACTIVE.value,
            fine_amount=ZERO,
            is_fine_paid=False,
            checked_out_by=acting_staff_id,
            notes=notes,
        )
        self.session.add(record)
        patron.last_checkout_at = self._clock.now()
        self.session.flush()

        logger.info(
            "checkout_recorded",
            extra={
                "record_id": str(record.id),
                "user_id": user_id,
                "book_id": str(book_id),
                "due_date": loan_due,
                "active_count": active_count + 1,
            },
        )
        return BorrowRecordInfo.from_model(record)

    # ------------------------------------------------------------------
    # Return / loss / cancellation
    # ------------------------------------------------------------------

    def return_loan(
        self,
        record_id: UUID,
        acting_staff_id: str,
        condition_notes: str | None = None,
        daily_rate: Decimal | str | None = None,
    ) -> BorrowRecordInfo:
        """
        Close an ACTIVE loan as RETURNED and put the copy back.

        A late return is fined for every overdue day up to the return date
        not already charged by an earlier sweep.
        """
        record = self._get_active_record_for_update(record_id)
        today = self._clock.today()

        fine = self._accrue(record, today, daily_rate, issued_by=acting_staff_id)

        record.status = BorrowStatus.RETURNED.value
        record.return_date = today
        record.checked_in_by = acting_staff_id
        record.return_condition_notes = condition_notes

        self._catalog.adjust_availability(record.book_id, +1)
        self.session.flush()

        logger.info(
            "return_recorded",
            extra={
                "record_id": str(record.id),
                "user_id": record.user_id,
                "book_id": str(record.book_id),
                "days_late": max(0, (today - record.due_date).days),
                "fine_id": str(fine.id) if fine else None,
            },
        )
        return BorrowRecordInfo.from_model(record)

    def mark_lost(
        self,
        record_id: UUID,
        acting_staff_id: str | None = None,
    ) -> BorrowRecordInfo:
        """
        Close an ACTIVE loan as LOST.

        The copy is written off rather than restored, and a LOST_BOOK fine
        for the book's replacement cost (or the policy default) is issued.
        """
        record = self._get_active_record_for_update(record_id)

        record.status = BorrowStatus.LOST.value
        self.session.flush()

        availability = self._catalog.write_off_copy(record.book_id)
        cost = availability.replacement_cost or self._policy.lost_book_replacement_cost

        fine = self._fines.issue_fine(
            user_id=record.user_id,
            amount=cost,
            fine_type=FineType.LOST_BOOK,
            reason="Lost book replacement",
            borrow_record_id=record.id,
            description=f"Replacement cost for book {record.book_id}",
            issued_by=acting_staff_id,
        )

        logger.info(
            "loss_recorded",
            extra={
                "record_id": str(record.id),
                "user_id": record.user_id,
                "book_id": str(record.book_id),
                "fine_id": str(fine.id),
                "amount": str(cost),
            },
        )
        return BorrowRecordInfo.from_model(record)

    def cancel_loan(
        self,
        record_id: UUID,
        acting_staff_id: str,
        reason: str | None = None,
    ) -> BorrowRecordInfo:
        """Void an ACTIVE loan recorded in error: copy restored, no fine."""
        record = self._get_active_record_for_update(record_id)

        record.status = BorrowStatus.CANCELLED.value
        record.checked_in_by = acting_staff_id
        if reason:
            record.notes = f"{record.notes}\n{reason}" if record.notes else reason

        self._catalog.adjust_availability(record.book_id, +1)
        self.session.flush()

        logger.info(
            "loan_cancelled",
            extra={"record_id": str(record.id), "user_id": record.user_id},
        )
        return BorrowRecordInfo.from_model(record)

    # ------------------------------------------------------------------
    # Overdue accrual
    # ------------------------------------------------------------------

    def accrue_overdue_fine(
        self,
        record_id: UUID,
        as_of: date,
        daily_rate: Decimal | str | None = None,
    ) -> FineInfo | None:
        """
        Charge the overdue days of one loan not yet fined, up to ``as_of``.

        The loan is locked and re-read first; a loan that is no longer
        ACTIVE (returned since it was scanned) is skipped.

        Returns:
            The issued fine, or None when nothing new accrued.

        Raises:
            FutureAccrualDateError: if ``as_of`` is later than today.
        """
        self._reject_future_cutoff(as_of)
        record = self._get_record_for_update(record_id)
        if record.status != BorrowStatus.ACTIVE.value:
            logger.info(
                "overdue_accrual_skipped",
                extra={"record_id": str(record_id), "status": record.status},
            )
            return None
        return self._accrue(record, as_of, daily_rate)

    def sweep_overdue(self, as_of: date, daily_rate: Decimal | str | None = None) -> int:
        """
        Accrue overdue fines on every overdue loan in this session.

        Record status is left ACTIVE.  Running the sweep again for the same
        ``as_of`` issues nothing.

        Returns:
            Number of fines issued.
        """
        self._reject_future_cutoff(as_of)
        issued = 0
        for record_id in self._records.overdue_record_ids(as_of):
            if self.accrue_overdue_fine(record_id, as_of, daily_rate) is not None:
                issued += 1
        logger.info(
            "overdue_sweep_applied",
            extra={"as_of": as_of, "fines_issued": issued},
        )
        return issued

    def _reject_future_cutoff(self, as_of: date) -> None:
        today = self._clock.today()
        if as_of > today:
            raise FutureAccrualDateError(as_of, today)

    def _accrue(
        self,
        record: BorrowRecord,
        as_of: date,
        daily_rate: Decimal | str | None,
        issued_by: str | None = None,
    ) -> FineInfo | None:
        if record.due_date >= as_of:
            return None

        rate = self._policy.daily_fine_rate if daily_rate is None else daily_rate
        accrual = incremental_overdue_fine(
            record.due_date, record.fined_through, as_of, rate
        )
        if accrual.is_empty:
            return None

        fine = self._fines.issue_fine(
            user_id=record.user_id,
            amount=accrual.amount,
            fine_type=FineType.OVERDUE,
            reason=f"Overdue {accrual.days} day(s) through {accrual.end.isoformat()}",
            borrow_record_id=record.id,
            description=f"Overdue from {accrual.start.isoformat()} to {accrual.end.isoformat()}",
            issued_by=issued_by,
        )
        record.fined_through = accrual.end
        self.session.flush()

        logger.info(
            "overdue_fine_accrued",
            extra={
                "record_id": str(record.id),
                "fine_id": str(fine.id),
                "days": accrual.days,
                "amount": str(accrual.amount),
                "fined_through": accrual.end,
            },
        )
        return fine
