"""Role and ownership authorization predicates.

Pure functions over ``(role, actor_id, owner_id)``; no I/O, no side effects.
"""

import uuid
from enum import Enum

from recipe_forge.entitlements.errors import UnknownRole


class Role(str, Enum):
    GUEST = "GUEST"
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"


def parse_role(value: "str | Role") -> Role:
    """Resolve a stored role string, raising ``UnknownRole`` outside the closed set."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).upper())
    except ValueError:
        raise UnknownRole(str(value)) from None


def can_edit_resource(
    actor_role: "str | Role",
    actor_id: uuid.UUID | None,
    resource_owner_id: uuid.UUID | None,
) -> bool:
    """ADMIN may edit anything; MEMBER only what they own; GUEST nothing."""
    role = parse_role(actor_role)
    if role is Role.ADMIN:
        return True
    if role is Role.GUEST:
        return False
    return actor_id is not None and actor_id == resource_owner_id


def can_create_member_content(actor_role: "str | Role") -> bool:
    """Recipes, comments and likes are for MEMBER and ADMIN only."""
    return parse_role(actor_role) in (Role.MEMBER, Role.ADMIN)


def is_admin(actor_role: "str | Role") -> bool:
    return parse_role(actor_role) is Role.ADMIN
