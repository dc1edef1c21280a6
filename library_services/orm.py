"""
SQLAlchemy ORM persistence for the services layer.

Responsibility
--------------
``AccessTokenModel`` stores the opaque bearer credentials issued by
``PatronTokenIdentityProvider``.  Only the SHA-256 digest of a token is
stored; the raw token exists only in the caller's hands.

Architecture position
---------------------
**Services layer** -- ORM models consumed by ``library_services.identity``.
Registered on the kernel's declarative ``Base`` so ``create_tables()``
creates them once this package is imported.
"""

from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.audit import AuditFields, audit_composite
from library_kernel.db.base import Base


class AccessTokenModel(Base):
    """
    Digest of one issued bearer token.

    Guarantees:
        - ``token_digest`` is unique.
        - A token is valid while ``revoked_at`` is NULL and ``expires_at``
          lies in the future.
    """

    __tablename__ = "access_tokens"

    __table_args__ = (
        UniqueConstraint("token_digest", name="uq_access_token_digest"),
        Index("idx_access_token_user", "user_id"),
    )

    token_digest: Mapped[str] = mapped_column(String(64), nullable=False)

    user_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("patrons.user_id"),
        nullable=False,
    )

    issued_at: Mapped[datetime] = mapped_column(nullable=False)

    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    audit: Mapped[AuditFields] = audit_composite()

    def __repr__(self) -> str:
        return f"<AccessToken {self.user_id} expires={self.expires_at}>"
