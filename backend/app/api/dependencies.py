"""
Request gates shared by the API routes.

Routes compose what they need:

    current_user = Depends(get_current_user)                              # identity
    current_user = Depends(require_permission(Action.CREATE))             # identity + role
    current_user = Depends(require_transaction_access(Action.UPDATE))     # + ownership
"""
import logging
from typing import Callable, Optional
from fastapi import Depends, HTTPException, Path, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from app.core.permissions import Action, is_permitted
from app.core.security import TokenError, verify_access_token
from app.db.session import get_db
from app.models.user import User
from app.services import transaction_service

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token to a user that still exists."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Access token is required")

    try:
        user_id = verify_access_token(credentials.credentials)
    except TokenError as e:
        raise _unauthorized(e.message)

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _unauthorized("Invalid token - user not found")
    return user


def require_permission(action: Action) -> Callable:
    """Build a dependency that admits only users whose role may perform `action`."""

    async def permission_gate(current_user: User = Depends(get_current_user)) -> User:
        if not is_permitted(current_user.role, action):
            logger.info(f"User {current_user.id} ({current_user.role.value}) denied: {action.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return current_user

    return permission_gate


require_any_role = require_permission(Action.READ)
require_user_or_admin = require_permission(Action.CREATE)
require_admin = require_permission(Action.MANAGE)


def require_transaction_access(action: Action) -> Callable:
    """
    Build a dependency gating `action` on the transaction named in the path.
    The role check runs first; then another user's transaction is reported
    exactly like a missing one.
    """
    role_gate = require_permission(action)

    async def transaction_gate(
        transaction_id: int = Path(..., gt=0),
        current_user: User = Depends(role_gate),
        db: Session = Depends(get_db)
    ) -> User:
        if current_user.is_admin:
            return current_user
        owner_id = transaction_service.get_owner_id(db, transaction_id)
        if not is_permitted(current_user.role, action, is_owner=owner_id == current_user.id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Transaction not found"
            )
        return current_user

    return transaction_gate


def scope_user_id(current_user: User) -> Optional[int]:
    """Owner filter for single-row lookups: None (unrestricted) for admins."""
    return None if current_user.is_admin else current_user.id
