"""
Module: library_kernel.db.audit
Responsibility: Composable audit metadata for every persisted entity.  Each
    model embeds an ``AuditFields`` value (created/updated timestamps and
    actors) as a SQLAlchemy composite instead of inheriting the columns from
    a base class.  The values are stamped by a ``before_flush`` listener at
    write time, so services never set them by hand.
Architecture position: Kernel > DB.  May import from logging_config only.

Stamping rules:
    - New objects: created_at = updated_at = now; created_by = updated_by = actor.
    - Modified objects: updated_at = now; updated_by = actor; created_* kept.
    - ``now`` comes from ``session.info["clock"]`` when the caller bound a
      clock to the session (deterministic tests), else the system UTC time.
    - ``actor`` comes from ``session.info["actor_id"]``, else the
      ``actor_id`` bound in LogContext, else "system".
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, event
from sqlalchemy.orm import Session, composite, mapped_column

from library_kernel.logging_config import LogContext

SYSTEM_ACTOR = "system"


@dataclass
class AuditFields:
    """Who touched a row, and when."""

    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None


def audit_composite():
    """Return a fresh ``AuditFields`` composite for a model's ``audit`` attribute."""
    return composite(
        AuditFields,
        mapped_column("created_at", DateTime(timezone=True), nullable=False),
        mapped_column("updated_at", DateTime(timezone=True), nullable=False),
        mapped_column("created_by", String(100), nullable=False),
        mapped_column("updated_by", String(100), nullable=True),
    )


def _now_for(session: Session) -> datetime:
    clock = session.info.get("clock")
    if clock is not None:
        return clock.now()
    return datetime.now(timezone.utc)


def _actor_for(session: Session) -> str:
    return (
        session.info.get("actor_id")
        or LogContext.get("actor_id")
        or SYSTEM_ACTOR
    )


def _stamp_audit_fields(session, flush_context, instances):
    """before_flush hook: populate AuditFields on new and modified rows."""
    now = _now_for(session)
    actor = _actor_for(session)

    for obj in session.new:
        if hasattr(type(obj), "audit"):
            obj.audit = AuditFields(
                created_at=now,
                updated_at=now,
                created_by=actor,
                updated_by=actor,
            )

    for obj in session.dirty:
        if not hasattr(type(obj), "audit"):
            continue
        if not session.is_modified(obj, include_collections=False):
            continue
        current = obj.audit
        obj.audit = AuditFields(
            created_at=current.created_at if current else now,
            updated_at=now,
            created_by=(current.created_by if current else None) or actor,
            updated_by=actor,
        )


def register_audit_listeners() -> None:
    """Install the audit stamping hook on all sessions (idempotent)."""
    if not event.contains(Session, "before_flush", _stamp_audit_fields):
        event.listen(Session, "before_flush", _stamp_audit_fields)


def unregister_audit_listeners() -> None:
    """Remove the audit stamping hook. FOR TESTING ONLY."""
    if event.contains(Session, "before_flush", _stamp_audit_fields):
        event.remove(Session, "before_flush", _stamp_audit_fields)
