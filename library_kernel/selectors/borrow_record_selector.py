"""
Module: library_kernel.selectors.borrow_record_selector
Responsibility: Read-only queries over loans: active counts, overdue loans
    and a patron's borrowing history.
Architecture position: Kernel > Selectors.

Overdue is derived at query time (status ACTIVE, no return date, due date
before ``today``); no stored status is consulted for it.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from library_kernel.domain.dtos import BorrowRecordInfo, Page, PageRequest
from library_kernel.exceptions import BorrowRecordNotFoundError
from library_kernel.models.borrow_record import BorrowRecord, BorrowStatus
from library_kernel.selectors.base import BaseSelector


class BorrowRecordSelector(BaseSelector[BorrowRecord]):
    """Query surface of the Borrowing Ledger."""

    def get(self, record_id: UUID) -> BorrowRecordInfo:
        record = self.session.get(BorrowRecord, record_id)
        if record is None:
            raise BorrowRecordNotFoundError(str(record_id))
        return BorrowRecordInfo.from_model(record)

    def active_count_by_user(self, user_id: str) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(BorrowRecord)
            .where(
                BorrowRecord.user_id == user_id,
                BorrowRecord.status == BorrowStatus.ACTIVE.value,
            )
        ).scalar_one()

    def records_by_user(
        self,
        user_id: str,
        page: PageRequest | None = None,
        status: BorrowStatus | None = None,
    ) -> Page[BorrowRecordInfo]:
        """A patron's loans, newest first."""
        stmt = select(BorrowRecord).where(BorrowRecord.user_id == user_id)
        if status is not None:
            stmt = stmt.where(BorrowRecord.status == BorrowStatus(status).value)
        stmt = stmt.order_by(BorrowRecord.borrow_date.desc(), BorrowRecord.id)
        return self._paginate(stmt, page, BorrowRecordInfo.from_model)

    def overdue_records(
        self,
        today: date,
        page: PageRequest | None = None,
    ) -> Page[BorrowRecordInfo]:
        """ACTIVE loans past their due date, oldest due date first."""
        stmt = self._overdue_query(today).order_by(
            BorrowRecord.due_date, BorrowRecord.id
        )
        return self._paginate(stmt, page, BorrowRecordInfo.from_model)

    def overdue_record_ids(self, as_of: date) -> list[UUID]:
        """Ids of every overdue loan as of ``as_of`` (sweep input, unpaginated)."""
        stmt = self._overdue_query(as_of).with_only_columns(BorrowRecord.id).order_by(
            BorrowRecord.due_date, BorrowRecord.id
        )
        return list(self.session.execute(stmt).scalars().all())

    def _overdue_query(self, today: date):
        return select(BorrowRecord).where(
            BorrowRecord.status == BorrowStatus.ACTIVE.value,
            BorrowRecord.return_date.is_(None),
            BorrowRecord.due_date < today,
        )
