"""
library_services -- orchestration over the circulation kernel.

Importing this package registers the services-layer ORM models
(access tokens) on the kernel's metadata.
"""

from library_services import orm  # noqa: F401
from library_services.authorization import Action, check_permission, require_permission
from library_services.identity import (
    Actor,
    IdentityProvider,
    PatronTokenIdentityProvider,
)
from library_services.lifecycle_orchestrator import LifecycleOrchestrator, SweepResult

__all__ = [
    "Action",
    "Actor",
    "IdentityProvider",
    "LifecycleOrchestrator",
    "PatronTokenIdentityProvider",
    "SweepResult",
    "check_permission",
    "require_permission",
]
