"""
Module: library_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors are the query surface of the ledgers: they answer "how many",
    "which ones" and "show me this one" without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/dtos.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never raw
      ORM instances.
    - Page sizes are clamped to the policy's ``max_page_size``.
"""

from abc import ABC
from collections.abc import Callable
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from library_kernel.db.base import Base
from library_kernel.domain.dtos import Page, PageRequest
from library_kernel.domain.policy import CirculationPolicy

ModelType = TypeVar("ModelType", bound=Base)
T = TypeVar("T")


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Guarantees:
        - session is stored as a public attribute for subclass query use.
        - No commit, flush, add, or delete operations are performed.
    """

    def __init__(self, session: Session, policy: CirculationPolicy | None = None):
        self.session = session
        self.policy = policy or CirculationPolicy()

    def _paginate(
        self,
        stmt: Select,
        page: PageRequest | None,
        convert: Callable[[ModelType], T],
    ) -> Page[T]:
        """Run ``stmt`` for one page and count the full result set."""
        request = page or PageRequest(size=self.policy.default_page_size)
        size = self.policy.clamp_page_size(request.size)

        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()

        rows = self.session.execute(
            stmt.offset(request.page * size).limit(size)
        ).scalars().all()

        return Page(
            items=tuple(convert(row) for row in rows),
            page=request.page,
            size=size,
            total=total,
        )
