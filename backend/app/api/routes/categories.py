"""
Category routes. Categories are shared by all users; only admins edit them.
"""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.models.user import User
from app.models.category import TransactionType
from app.schemas.category import CategoryCreate, CategoryUpdate, CategoryResponse
from app.core import cache
from app.core.utils import format_response
from app.api.dependencies import require_admin, require_any_role
from app.services import category_service

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("")
async def list_categories(
    type: Optional[TransactionType] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """List categories, optionally only income or expense ones."""
    key = cache.categories_key(type=type)
    return cache.read_through(key, cache.CATEGORIES_TTL, lambda: format_response(
        category_service.list_categories(db, type)
    ))


@router.get("/stats")
async def get_category_stats(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """
    Usage per category. Non-admins see their own transactions only; admins see
    every user's unless they pick one with `user_id`.
    """
    target_id = user_id if current_user.is_admin else current_user.id
    stats = category_service.category_stats(db, target_id, start_date, end_date)
    return format_response(stats)


@router.get("/{category_id}")
async def get_category(
    category_id: int = Path(..., gt=0),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    category = category_service.get_category(db, category_id)
    return format_response(CategoryResponse.model_validate(category))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    category = category_service.create_category(db, category_data)
    cache.invalidate_categories_cache()
    return format_response(CategoryResponse.model_validate(category), "Category created successfully")


@router.put("/{category_id}")
async def update_category(
    category_data: CategoryUpdate,
    category_id: int = Path(..., gt=0),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    category = category_service.update_category(db, category_id, category_data)
    # Cached transaction rows carry the category name and color
    cache.invalidate_categories_cache()
    cache.invalidate_all_user_caches()
    return format_response(CategoryResponse.model_validate(category), "Category updated successfully")


@router.delete("/{category_id}")
async def delete_category(
    category_id: int = Path(..., gt=0),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    category_service.delete_category(db, category_id)
    cache.invalidate_categories_cache()
    cache.invalidate_all_user_caches()
    return format_response(message="Category deleted successfully")
