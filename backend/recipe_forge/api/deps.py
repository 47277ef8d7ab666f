"""Shared API dependencies — single import point for all routers.

Re-exports database session, authentication and quota dependencies so that
router modules can import everything they need from one place::

    from recipe_forge.api.deps import get_db, get_current_active_user, require_quota
"""

from recipe_forge.auth.dependencies import (
    actor_role,
    get_current_active_user,
    get_current_user,
    get_optional_user,
    require_admin,
    require_member,
)
from recipe_forge.database import get_db
from recipe_forge.entitlements.dependencies import (
    QuotaGate,
    get_current_subscription,
    get_evaluator,
    require_feature,
    require_quota,
)

__all__ = [
    "QuotaGate",
    "actor_role",
    "get_current_active_user",
    "get_current_subscription",
    "get_current_user",
    "get_db",
    "get_evaluator",
    "get_optional_user",
    "require_admin",
    "require_feature",
    "require_member",
    "require_quota",
]
