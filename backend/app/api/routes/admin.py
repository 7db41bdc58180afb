"""
User administration routes, restricted to admins.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.models.user import User, UserRole
from app.schemas.user import RoleUpdate, UserResponse
from app.core import cache
from app.core.utils import clamp_pagination, format_response
from app.api.dependencies import require_admin
from app.services import user_service

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/users")
async def list_users(
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    role: Optional[UserRole] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """All users with their transaction counts, newest first."""
    page, limit = clamp_pagination(page, limit, default_limit=user_service.ADMIN_PAGE_SIZE)
    search = search.strip() if search else None
    return format_response(user_service.list_users(db, page, limit, role=role, search=search))


@router.put("/users/{user_id}/role")
async def update_user_role(
    role_data: RoleUpdate,
    user_id: int = Path(..., gt=0),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = user_service.update_role(db, current_user, user_id, role_data.role)
    return format_response({"user": UserResponse.model_validate(user)}, "User role updated successfully")


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int = Path(..., gt=0),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete a user together with their transactions."""
    user_service.delete_user(db, current_user, user_id)
    cache.invalidate_user_cache(user_id)
    return format_response(message="User deleted successfully")


@router.get("/stats")
async def get_system_stats(db: Session = Depends(get_db)):
    return format_response(user_service.system_stats(db))
