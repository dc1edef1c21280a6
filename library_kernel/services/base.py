"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for the
    Catalog Store, Borrowing Ledger, Fine Ledger and patron registry.
    Services receive a SQLAlchemy ``Session`` and use ``session.flush()``,
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Flush-only: services write within the caller's transaction and never
      commit or roll back.  The Lifecycle Orchestrator (or a test harness)
      owns the unit of work, so checkout's book and record writes land
      together or not at all.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from library_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide paginated read methods -- those belong in
          ``library_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _load_for_update(self, model: type[ModelType], *criteria) -> ModelType | None:
        """
        Fetch one row matching ``criteria`` under ``SELECT ... FOR UPDATE``.

        The locked row overwrites any copy already in the identity map, so
        checks made after the lock see what the lock holder committed.
        Pending changes are autoflushed before the SELECT.
        """
        return self.session.execute(
            select(model)
            .where(*criteria)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
