"""
Role-based authorization policy.

Each action names the roles that may perform it; admins act on any user's rows
and everyone else only on their own. Nothing here touches the request.
"""
import enum
from typing import FrozenSet, Optional
from app.models.user import UserRole


class Action(str, enum.Enum):
    """What a caller wants to do with a resource."""
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"  # Categories and user administration


ADMIN_ONLY: FrozenSet[UserRole] = frozenset({UserRole.ADMIN})
USER_OR_ADMIN: FrozenSet[UserRole] = frozenset({UserRole.USER, UserRole.ADMIN})
ANY_ROLE: FrozenSet[UserRole] = frozenset(UserRole)

_ACTION_ROLES = {
    Action.READ: ANY_ROLE,
    Action.CREATE: USER_OR_ADMIN,
    Action.UPDATE: USER_OR_ADMIN,
    Action.DELETE: USER_OR_ADMIN,
    Action.MANAGE: ADMIN_ONLY,
}


def is_permitted(role: UserRole, action: Action, is_owner: bool = True) -> bool:
    """Evaluate (role, action, ownership) to allow/deny."""
    role = UserRole(role)
    if role not in _ACTION_ROLES[Action(action)]:
        return False
    if role == UserRole.ADMIN:
        return True
    return is_owner


def resolve_target_user(role: UserRole, actor_id: int, requested_user_id: Optional[int]) -> int:
    """
    Pick whose data a read should cover.
    The requested user id is honoured for admins only and silently ignored otherwise.
    """
    if UserRole(role) == UserRole.ADMIN and requested_user_id:
        return requested_user_id
    return actor_id
