"""
PatronService -- borrowing accounts.

Responsibility:
    Registers patrons, resolves them by external ``user_id`` and maintains
    their role and borrowing limit.  A new patron's limit defaults from the
    circulation policy for their role (5 for members, 10 for staff).

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Failure modes:
    - PatronNotFoundError: unknown user_id.
    - ValueError: duplicate user_id or a limit below one.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from library_kernel.domain.dtos import PatronInfo
from library_kernel.domain.policy import CirculationPolicy
from library_kernel.exceptions import PatronNotFoundError
from library_kernel.logging_config import get_logger
from library_kernel.models.patron import Patron, PatronRole
from library_kernel.services.base import BaseService

logger = get_logger("services.patron")


class PatronService(BaseService[Patron]):
    """Create and look up patrons."""

    def __init__(self, session: Session, policy: CirculationPolicy | None = None):
        super().__init__(session)
        self._policy = policy or CirculationPolicy()

    def _get_by_user_id(self, user_id: str) -> Patron:
        patron = self.session.execute(
            select(Patron).where(Patron.user_id == user_id)
        ).scalar_one_or_none()
        if patron is None:
            raise PatronNotFoundError(user_id)
        return patron

    def register_patron(
        self,
        user_id: str,
        first_name: str,
        last_name: str,
        role: PatronRole = PatronRole.MEMBER,
        email: str | None = None,
        max_books_allowed: int | None = None,
    ) -> PatronInfo:
        """
        Create a patron account.

        Raises:
            ValueError: If ``user_id`` already has an account or the limit
                is below one.
        """
        role = PatronRole(role)
        existing = self.session.execute(
            select(Patron.id).where(Patron.user_id == user_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValueError(f"Patron with user_id '{user_id}' already exists")

        limit = (
            max_books_allowed
            if max_books_allowed is not None
            else self._policy.max_books_for(role)
        )
        if limit < 1:
            raise ValueError("max_books_allowed must be at least 1")

        patron = Patron(
            user_id=user_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            role=role.value,
            max_books_allowed=limit,
        )
        self.session.add(patron)
        self.session.flush()

        logger.info(
            "patron_registered",
            extra={"user_id": user_id, "role": role.value, "max_books_allowed": limit},
        )
        return PatronInfo.from_model(patron)

    def get_patron(self, user_id: str) -> PatronInfo:
        return PatronInfo.from_model(self._get_by_user_id(user_id))

    def set_borrowing_limit(self, user_id: str, max_books_allowed: int) -> PatronInfo:
        if max_books_allowed < 1:
            raise ValueError("max_books_allowed must be at least 1")
        patron = self._load_for_update(Patron, Patron.user_id == user_id)
        if patron is None:
            raise PatronNotFoundError(user_id)
        patron.max_books_allowed = max_books_allowed
        self.session.flush()
        logger.info(
            "borrowing_limit_changed",
            extra={"user_id": user_id, "max_books_allowed": max_books_allowed},
        )
        return PatronInfo.from_model(patron)

    def set_role(self, user_id: str, role: PatronRole) -> PatronInfo:
        """Change a patron's role.  The borrowing limit is left as is."""
        patron = self._load_for_update(Patron, Patron.user_id == user_id)
        if patron is None:
            raise PatronNotFoundError(user_id)
        patron.role = PatronRole(role).value
        self.session.flush()
        logger.info("patron_role_changed", extra={"user_id": user_id, "role": patron.role})
        return PatronInfo.from_model(patron)
