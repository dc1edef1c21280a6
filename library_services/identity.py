"""
library_services.identity -- who is calling, and in which role.

Responsibility:
    Resolve an opaque credential to an ``Actor`` (user id + role).  The
    orchestrator consumes only the resolved actor; raw credentials never
    reach the kernel.

Architecture position:
    Services layer.  ``IdentityProvider`` is the seam; a deployment may plug
    in its own (SSO, API gateway headers).  ``PatronTokenIdentityProvider``
    is the shipped implementation: random bearer tokens, stored as SHA-256
    digests, with an expiry, mapped to patron accounts whose role decides
    permissions.

Failure modes:
    - InvalidCredentialError: empty, unknown, revoked or expired credential,
      or a token whose patron no longer exists.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.exceptions import InvalidCredentialError, PatronNotFoundError
from library_kernel.logging_config import get_logger
from library_kernel.models.patron import Patron, PatronRole
from library_services.orm import AccessTokenModel

logger = get_logger("services.identity")

DEFAULT_TOKEN_TTL = timedelta(hours=8)


@dataclass(frozen=True)
class Actor:
    """An authenticated caller."""

    user_id: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in (PatronRole.LIBRARIAN.value, PatronRole.ADMIN.value)

    @property
    def is_admin(self) -> bool:
        return self.role == PatronRole.ADMIN.value


class IdentityProvider(Protocol):
    def resolve_actor(self, credential: str) -> Actor:
        """Return the actor behind ``credential`` or raise InvalidCredentialError."""
        ...


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PatronTokenIdentityProvider:
    """
    Bearer tokens for patrons.

    Each method runs in its own short session from ``session_factory``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._token_ttl = token_ttl

    def issue_token(self, user_id: str, ttl: timedelta | None = None) -> str:
        """
        Issue a new token for ``user_id`` and return it.

        Raises:
            PatronNotFoundError: no patron with that user id.
        """
        token = secrets.token_urlsafe(32)
        now = self._clock.now()
        with self._session_factory() as session:
            session.info["clock"] = self._clock
            exists = session.execute(
                select(Patron.id).where(Patron.user_id == user_id)
            ).scalar_one_or_none()
            if exists is None:
                raise PatronNotFoundError(user_id)
            session.add(
                AccessTokenModel(
                    token_digest=_digest(token),
                    user_id=user_id,
                    issued_at=now,
                    expires_at=now + (ttl or self._token_ttl),
                )
            )
            session.commit()

        logger.info("access_token_issued", extra={"user_id": user_id})
        return token

    def revoke_token(self, credential: str) -> None:
        with self._session_factory() as session:
            session.info["clock"] = self._clock
            row = session.execute(
                select(AccessTokenModel).where(
                    AccessTokenModel.token_digest == _digest(credential)
                )
            ).scalar_one_or_none()
            if row is None:
                raise InvalidCredentialError("unknown credential")
            if row.revoked_at is None:
                row.revoked_at = self._clock.now()
                session.commit()
            user_id = row.user_id

        logger.info("access_token_revoked", extra={"user_id": user_id})

    def resolve_actor(self, credential: str) -> Actor:
        if not credential:
            raise InvalidCredentialError("credential is empty")

        with self._session_factory() as session:
            row = session.execute(
                select(AccessTokenModel, Patron)
                .join(Patron, Patron.user_id == AccessTokenModel.user_id)
                .where(AccessTokenModel.token_digest == _digest(credential))
            ).one_or_none()
            if row is None:
                raise InvalidCredentialError("unknown credential")
            token, patron = row
            revoked = token.revoked_at is not None
            expires_at = _as_utc(token.expires_at)
            actor = Actor(user_id=patron.user_id, role=PatronRole(patron.role).value)

        if revoked:
            raise InvalidCredentialError("credential has been revoked")
        if expires_at <= self._clock.now_utc():
            raise InvalidCredentialError("credential has expired")
        return actor
