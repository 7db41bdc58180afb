"""
Transaction routes: filtered listing, summary, CSV export and CRUD.
"""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.models.user import User
from app.models.category import TransactionType
from app.schemas.transaction import TransactionCreate, TransactionUpdate
from app.core import cache
from app.core.permissions import Action, resolve_target_user
from app.core.rate_limit import transaction_limiter
from app.core.utils import clamp_pagination, format_response
from app.api.dependencies import (
    require_any_role, require_transaction_access, require_user_or_admin, scope_user_id
)
from app.services import transaction_service

router = APIRouter(
    prefix="/transactions",
    tags=["transactions"],
    dependencies=[Depends(transaction_limiter)]
)

read_access = require_transaction_access(Action.READ)
update_access = require_transaction_access(Action.UPDATE)
delete_access = require_transaction_access(Action.DELETE)


@router.get("")
async def list_transactions(
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    category: Optional[int] = Query(None),
    type: Optional[TransactionType] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """List transactions with filters, sorting and pagination."""
    page, limit = clamp_pagination(page, limit)
    sort_by, sort_order = transaction_service.normalize_sort(sort_by, sort_order)
    search = search.strip() if search else None
    target_id = resolve_target_user(current_user.role, current_user.id, user_id)

    key = cache.transactions_key(
        target_id,
        page=page, limit=limit, category=category, type=type, search=search,
        start_date=start_date, end_date=end_date, sort_by=sort_by, sort_order=sort_order
    )
    return cache.read_through(key, cache.TRANSACTIONS_TTL, lambda: format_response(
        transaction_service.list_transactions(
            db, target_id, page, limit,
            category_id=category,
            type=type,
            search=search,
            start_date=start_date,
            end_date=end_date,
            sort_by=sort_by,
            sort_order=sort_order
        )
    ))


@router.get("/summary")
async def get_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Count and total per type plus balance."""
    target_id = resolve_target_user(current_user.role, current_user.id, user_id)
    key = cache.user_analytics_key(target_id, "summary", start_date=start_date, end_date=end_date)
    return cache.read_through(key, cache.USER_ANALYTICS_TTL, lambda: format_response(
        transaction_service.get_summary(db, target_id, start_date, end_date)
    ))


@router.get("/export")
async def export_transactions(
    response: Response,
    format: str = Query("csv"),
    category: Optional[int] = Query(None),
    type: Optional[TransactionType] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Download the filtered transactions as a CSV file."""
    if format.lower() != "csv":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported export format"
        )

    target_id = resolve_target_user(current_user.role, current_user.id, user_id)
    content = transaction_service.export_csv(
        db, target_id,
        category_id=category,
        type=type,
        search=search.strip() if search else None,
        start_date=start_date,
        end_date=end_date
    )
    filename = f"transactions-{date.today().isoformat()}.csv"
    # Returned responses bypass the dependency sub-response headers
    headers = {k: v for k, v in response.headers.items() if k.startswith("ratelimit-")}
    headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return Response(content=content, media_type="text/csv", headers=headers)


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: int = Path(..., gt=0),
    current_user: User = Depends(read_access),
    db: Session = Depends(get_db)
):
    transaction = transaction_service.get_transaction(db, transaction_id, scope_user_id(current_user))
    if not transaction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found"
        )
    return format_response(transaction_service.to_response(transaction))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    transaction_data: TransactionCreate,
    current_user: User = Depends(require_user_or_admin),
    db: Session = Depends(get_db)
):
    transaction = transaction_service.create_transaction(db, current_user.id, transaction_data)
    cache.invalidate_user_cache(current_user.id)
    return format_response(transaction_service.to_response(transaction), "Transaction created successfully")


@router.put("/{transaction_id}")
async def update_transaction(
    transaction_data: TransactionUpdate,
    transaction_id: int = Path(..., gt=0),
    current_user: User = Depends(update_access),
    db: Session = Depends(get_db)
):
    """Partial update; the merged type and category must still agree."""
    transaction = transaction_service.update_transaction(
        db, transaction_id, scope_user_id(current_user), transaction_data
    )
    cache.invalidate_user_cache(transaction.user_id)
    return format_response(transaction_service.to_response(transaction), "Transaction updated successfully")


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: int = Path(..., gt=0),
    current_user: User = Depends(delete_access),
    db: Session = Depends(get_db)
):
    owner_id = transaction_service.delete_transaction(db, transaction_id, scope_user_id(current_user))
    cache.invalidate_user_cache(owner_id)
    return format_response(message="Transaction deleted successfully")
