"""
FineLedger -- fine issuance and payment reconciliation.

Responsibility:
    Creates fines, applies (partial) payments, waives or cancels open fines,
    and keeps the owning loan's cached ``fine_amount`` / ``is_fine_paid`` in
    step with the fines attached to it.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    Called by the Borrowing Ledger (overdue and lost-book fines) and by the
    Lifecycle Orchestrator (manual fines, payments, waivers).

Invariants enforced:
    - amount > 0 with no sub-cent digits, for fines and for payments.
    - 0 <= paid_amount <= amount; status flips to PAID (and paid_date is
      set) only on the payment that completes the fine.
    - A loan's ``fine_amount`` is the sum of its non-cancelled fines.
    - A loan's ``is_fine_paid`` is true iff it has at least one
      non-cancelled fine and none of them is PENDING.
    - Fines and loans are locked (SELECT ... FOR UPDATE) before mutation.

Failure modes:
    - InvalidAmountError, OverPaymentError, FineAlreadyPaidError,
      FineNotPayableError, FineRecordMismatchError, FineNotFoundError,
      PatronNotFoundError, BorrowRecordNotFoundError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.domain.dtos import FineInfo
from library_kernel.domain.money import ZERO, has_sub_cent_precision, to_money
from library_kernel.domain.policy import CirculationPolicy
from library_kernel.exceptions import (
    BorrowRecordNotFoundError,
    FineAlreadyPaidError,
    FineNotFoundError,
    FineNotPayableError,
    FineRecordMismatchError,
    InvalidAmountError,
    OverPaymentError,
    PatronNotFoundError,
)
from library_kernel.logging_config import get_logger
from library_kernel.models.borrow_record import BorrowRecord
from library_kernel.models.fine import Fine, FinePayment, FineStatus, FineType
from library_kernel.models.patron import Patron
from library_kernel.services.base import BaseService

logger = get_logger("services.fine_ledger")


def _validated_amount(value: Decimal | int | str) -> Decimal:
    """Positive, whole-cent Decimal or InvalidAmountError."""
    try:
        amount = to_money(value)
    except (TypeError, ValueError) as exc:
        raise InvalidAmountError(str(value), str(exc)) from exc
    if amount <= 0:
        raise InvalidAmountError(amount)
    if has_sub_cent_precision(amount):
        raise InvalidAmountError(amount, "amount has more than two decimal places")
    return amount


class FineLedger(BaseService[Fine]):
    """
    Owner of Fine creation, payment and closure.

    Contract:
        Every public method returns a frozen ``FineInfo``; none commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: CirculationPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy or CirculationPolicy()

    def _get_fine_for_update(self, fine_id: UUID) -> Fine:
        fine = self._load_for_update(Fine, Fine.id == fine_id)
        if fine is None:
            raise FineNotFoundError(str(fine_id))
        return fine

    def _get_record_for_update(self, record_id: UUID) -> BorrowRecord:
        record = self._load_for_update(BorrowRecord, BorrowRecord.id == record_id)
        if record is None:
            raise BorrowRecordNotFoundError(str(record_id))
        return record

    def _require_patron(self, user_id: str) -> None:
        found = self.session.execute(
            select(Patron.id).where(Patron.user_id == user_id)
        ).scalar_one_or_none()
        if found is None:
            raise PatronNotFoundError(user_id)

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_fine(
        self,
        user_id: str,
        amount: Decimal | int | str,
        fine_type: FineType,
        reason: str,
        borrow_record_id: UUID | None = None,
        due_date: date | None = None,
        description: str | None = None,
        issued_by: str | None = None,
    ) -> FineInfo:
        """
        Create a PENDING fine.

        OVERDUE fines without an explicit ``due_date`` are payable within
        ``fine_payment_days`` of issue.  When the fine is tied to a loan,
        the loan must belong to ``user_id`` and its cached totals are
        updated in the same flush.

        Raises:
            InvalidAmountError: amount <= 0 or finer than a cent.
            FineRecordMismatchError: the loan belongs to someone else.
        """
        value = _validated_amount(amount)
        fine_type = FineType(fine_type)
        self._require_patron(user_id)

        record = None
        if borrow_record_id is not None:
            record = self._get_record_for_update(borrow_record_id)
            if record.user_id != user_id:
                raise FineRecordMismatchError(
                    str(borrow_record_id), user_id, record.user_id
                )

        issue_date = self._clock.today()
        if due_date is None and fine_type == FineType.OVERDUE:
            due_date = self._policy.fine_due_date(issue_date)

        fine = Fine(
            user_id=user_id,
            borrow_record_id=borrow_record_id,
            amount=value,
            fine_type=fine_type.value,
            status=FineStatus.PENDING.value,
            reason=reason,
            description=description,
            issue_date=issue_date,
            due_date=due_date,
            paid_amount=ZERO,
        )
        self.session.add(fine)

        if record is not None:
            record.fine_amount = record.fine_amount + value
            record.is_fine_paid = False

        self.session.flush()

        logger.info(
            "fine_issued",
            extra={
                "fine_id": str(fine.id),
                "user_id": user_id,
                "record_id": str(borrow_record_id) if borrow_record_id else None,
                "amount": str(value),
                "fine_type": fine_type.value,
                "issued_by": issued_by,
            },
        )
        return FineInfo.from_model(fine)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def pay_fine(
        self,
        fine_id: UUID,
        payment_amount: Decimal | int | str,
        processed_by: str | None = None,
        payment_method: str | None = None,
        payment_reference: str | None = None,
    ) -> FineInfo:
        """
        Apply a full or partial payment.

        Checks run in this order: already paid, closed, amount valid,
        amount within the remaining balance.

        Raises:
            FineAlreadyPaidError: the fine is PAID.
            FineNotPayableError: the fine is WAIVED or CANCELLED.
            InvalidAmountError: payment <= 0 or finer than a cent.
            OverPaymentError: payment exceeds the remaining amount.
        """
        fine = self._get_fine_for_update(fine_id)
        status = FineStatus(fine.status)

        if status == FineStatus.PAID:
            raise FineAlreadyPaidError(str(fine_id))
        if status != FineStatus.PENDING:
            raise FineNotPayableError(str(fine_id), status.value)

        payment = _validated_amount(payment_amount)
        remaining = fine.remaining_amount
        if payment > remaining:
            logger.warning(
                "fine_overpayment_rejected",
                extra={"fine_id": str(fine_id), "payment": str(payment), "remaining": str(remaining)},
            )
            raise OverPaymentError(str(fine_id), payment, remaining)

        today = self._clock.today()
        fine.paid_amount = fine.paid_amount + payment
        fine.processed_by = processed_by

        self.session.add(
            FinePayment(
                fine_id=fine.id,
                amount=payment,
                paid_on=today,
                payment_method=payment_method,
                payment_reference=payment_reference,
                processed_by=processed_by,
            )
        )

        if fine.is_fully_paid:
            fine.status = FineStatus.PAID.value
            fine.paid_date = today

        self.session.flush()

        if fine.borrow_record_id is not None:
            self._refresh_record_fine_state(fine.borrow_record_id)

        logger.info(
            "fine_payment_applied",
            extra={
                "fine_id": str(fine.id),
                "payment": str(payment),
                "paid_amount": str(fine.paid_amount),
                "remaining": str(fine.remaining_amount),
                "status": fine.status,
            },
        )
        return FineInfo.from_model(fine)

    # ------------------------------------------------------------------
    # Closure without payment
    # ------------------------------------------------------------------

    def waive_fine(self, fine_id: UUID, actor_id: str, reason: str | None = None) -> FineInfo:
        """Forgive an open fine.  It stays counted in the loan's total."""
        return self._close_fine(fine_id, FineStatus.WAIVED, actor_id, reason)

    def cancel_fine(self, fine_id: UUID, actor_id: str, reason: str | None = None) -> FineInfo:
        """Void an open fine issued in error.  It drops out of the loan's total."""
        return self._close_fine(fine_id, FineStatus.CANCELLED, actor_id, reason)

    def _close_fine(
        self,
        fine_id: UUID,
        target: FineStatus,
        actor_id: str,
        reason: str | None,
    ) -> FineInfo:
        fine = self._get_fine_for_update(fine_id)
        status = FineStatus(fine.status)
        if status != FineStatus.PENDING:
            raise FineNotPayableError(str(fine_id), status.value)

        fine.status = target.value
        fine.processed_by = actor_id
        if reason:
            fine.description = reason

        if target == FineStatus.CANCELLED and fine.borrow_record_id is not None:
            record = self._get_record_for_update(fine.borrow_record_id)
            record.fine_amount = max(ZERO, record.fine_amount - fine.amount)

        self.session.flush()

        if fine.borrow_record_id is not None:
            self._refresh_record_fine_state(fine.borrow_record_id)

        logger.info(
            "fine_closed",
            extra={
                "fine_id": str(fine.id),
                "status": target.value,
                "closed_by": actor_id,
            },
        )
        return FineInfo.from_model(fine)

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def total_unpaid_by_user(self, user_id: str) -> Decimal:
        """Sum of ``amount - paid_amount`` over the user's PENDING fines."""
        fines = self.session.execute(
            select(Fine).where(
                Fine.user_id == user_id,
                Fine.status == FineStatus.PENDING.value,
            )
        ).scalars().all()
        return sum((f.remaining_amount for f in fines), ZERO)

    def _refresh_record_fine_state(self, record_id: UUID) -> None:
        """Re-derive ``is_fine_paid`` on a loan from its attached fines."""
        record = self._get_record_for_update(record_id)
        statuses = [
            FineStatus(s)
            for s in self.session.execute(
                select(Fine.status).where(Fine.borrow_record_id == record_id)
            ).scalars()
        ]
        live = [s for s in statuses if s != FineStatus.CANCELLED]
        is_paid = bool(live) and FineStatus.PENDING not in live
        if record.is_fine_paid != is_paid:
            record.is_fine_paid = is_paid
            self.session.flush()
