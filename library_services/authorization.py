"""
library_services.authorization -- role-based permission checks.

Responsibility:
    Decide whether an ``Actor`` may perform an orchestrator action.
    Staff (LIBRARIAN, ADMIN) run circulation; members may only pay and view
    their own fines; waivers and cancellations are admin-only.

Architecture position:
    Services layer.  Called by ``LifecycleOrchestrator`` at the top of each
    entry point (or inside the unit of work once the subject is known).
"""

from __future__ import annotations

from enum import Enum

from library_kernel.exceptions import PermissionDeniedError
from library_kernel.logging_config import get_logger
from library_services.identity import Actor

logger = get_logger("services.authorization")


class Action(str, Enum):
    CHECKOUT = "checkout"
    RETURN = "return"
    MARK_LOST = "mark_lost"
    CANCEL_LOAN = "cancel_loan"
    RUN_OVERDUE_SWEEP = "run_overdue_sweep"
    ISSUE_FINE = "issue_fine"
    PAY_FINE = "pay_fine"
    WAIVE_FINE = "waive_fine"
    CANCEL_FINE = "cancel_fine"
    VIEW_FINES = "view_fines"


_STAFF = frozenset({"LIBRARIAN", "ADMIN"})
_ADMIN = frozenset({"ADMIN"})

# action -> roles allowed to act on anyone's behalf
ACTION_ROLES: dict[Action, frozenset[str]] = {
    Action.CHECKOUT: _STAFF,
    Action.RETURN: _STAFF,
    Action.MARK_LOST: _STAFF,
    Action.CANCEL_LOAN: _STAFF,
    Action.RUN_OVERDUE_SWEEP: _STAFF,
    Action.ISSUE_FINE: _STAFF,
    Action.PAY_FINE: _STAFF,
    Action.WAIVE_FINE: _ADMIN,
    Action.CANCEL_FINE: _ADMIN,
    Action.VIEW_FINES: _STAFF,
}

# Actions any role may perform on their own account
SELF_SERVICE_ACTIONS: frozenset[Action] = frozenset({Action.PAY_FINE, Action.VIEW_FINES})


def check_permission(
    actor: Actor,
    action: Action,
    subject_user_id: str | None = None,
) -> tuple[bool, str]:
    """Check whether ``actor`` may perform ``action``.

    Args:
        actor: The authenticated caller.
        action: What they want to do.
        subject_user_id: Whose account the action touches, when known.

    Returns:
        (allowed, reason).  reason is empty when allowed.
    """
    if actor.role in ACTION_ROLES.get(action, frozenset()):
        return (True, "")
    if (
        action in SELF_SERVICE_ACTIONS
        and subject_user_id is not None
        and subject_user_id == actor.user_id
    ):
        return (True, "")
    return (False, f"role {actor.role} is not granted '{action.value}'")


def require_permission(
    actor: Actor,
    action: Action,
    subject_user_id: str | None = None,
) -> None:
    """Raise PermissionDeniedError unless ``check_permission`` allows."""
    allowed, reason = check_permission(actor, action, subject_user_id)
    if not allowed:
        logger.warning(
            "permission_denied",
            extra={"action": action.value, "role": actor.role, "reason": reason},
        )
        raise PermissionDeniedError(actor.user_id, actor.role, action.value)
