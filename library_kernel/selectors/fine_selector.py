"""
Module: library_kernel.selectors.fine_selector
Responsibility: Read-only queries over fines and fine payments.
Architecture position: Kernel > Selectors.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from library_kernel.domain.dtos import FineInfo, FinePaymentInfo, Page, PageRequest
from library_kernel.exceptions import FineNotFoundError
from library_kernel.models.fine import Fine, FinePayment, FineStatus
from library_kernel.selectors.base import BaseSelector


class FineSelector(BaseSelector[Fine]):
    """Query surface of the Fine Ledger."""

    def get(self, fine_id: UUID) -> FineInfo:
        fine = self.session.get(Fine, fine_id)
        if fine is None:
            raise FineNotFoundError(str(fine_id))
        return FineInfo.from_model(fine)

    def fines_by_user(
        self,
        user_id: str,
        page: PageRequest | None = None,
    ) -> Page[FineInfo]:
        stmt = (
            select(Fine)
            .where(Fine.user_id == user_id)
            .order_by(Fine.issue_date.desc(), Fine.id)
        )
        return self._paginate(stmt, page, FineInfo.from_model)

    def fines_by_status(
        self,
        status: FineStatus,
        page: PageRequest | None = None,
    ) -> Page[FineInfo]:
        stmt = (
            select(Fine)
            .where(Fine.status == FineStatus(status).value)
            .order_by(Fine.issue_date, Fine.id)
        )
        return self._paginate(stmt, page, FineInfo.from_model)

    def overdue_fines(
        self,
        today: date,
        page: PageRequest | None = None,
    ) -> Page[FineInfo]:
        """PENDING fines whose payment due date has passed."""
        stmt = (
            select(Fine)
            .where(
                Fine.status == FineStatus.PENDING.value,
                Fine.due_date.is_not(None),
                Fine.due_date < today,
            )
            .order_by(Fine.due_date, Fine.id)
        )
        return self._paginate(stmt, page, FineInfo.from_model)

    def pending_count_by_user(self, user_id: str) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(Fine)
            .where(
                Fine.user_id == user_id,
                Fine.status == FineStatus.PENDING.value,
            )
        ).scalar_one()

    def fines_for_record(self, record_id: UUID) -> list[FineInfo]:
        fines = self.session.execute(
            select(Fine)
            .where(Fine.borrow_record_id == record_id)
            .order_by(Fine.issue_date, Fine.id)
        ).scalars().all()
        return [FineInfo.from_model(f) for f in fines]

    def payments_for_fine(self, fine_id: UUID) -> list[FinePaymentInfo]:
        payments = self.session.execute(
            select(FinePayment)
            .where(FinePayment.fine_id == fine_id)
            .order_by(FinePayment.paid_on, FinePayment.__table__.c.created_at)
        ).scalars().all()
        return [FinePaymentInfo.from_model(p) for p in payments]
