"""
Analytics routes for the dashboard and charts. All responses are cached per
user for 15 minutes and dropped whenever that user's transactions change.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.models.user import User
from app.core import cache
from app.core.permissions import resolve_target_user
from app.core.rate_limit import analytics_limiter
from app.core.utils import format_response
from app.api.dependencies import require_any_role
from app.services import analytics_service

router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
    dependencies=[Depends(analytics_limiter)]
)


@router.get("/dashboard")
async def get_dashboard(
    period: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Summary and category breakdown for week, month, quarter or year."""
    target_id = resolve_target_user(current_user.role, current_user.id, user_id)
    period = analytics_service.normalize_period(period)
    key = cache.analytics_key(target_id, "dashboard", period=period)
    return cache.read_through(key, cache.ANALYTICS_TTL, lambda: format_response(
        analytics_service.get_dashboard(db, target_id, period)
    ))


@router.get("/trends")
async def get_monthly_trends(
    months: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    target_id = resolve_target_user(current_user.role, current_user.id, user_id)
    months = analytics_service.clamp_months(months)
    key = cache.analytics_key(target_id, "trends", months=months)
    return cache.read_through(key, cache.ANALYTICS_TTL, lambda: format_response(
        analytics_service.get_monthly_trends(db, target_id, months)
    ))


@router.get("/patterns")
async def get_spending_patterns(
    period: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    target_id = resolve_target_user(current_user.role, current_user.id, user_id)
    period = analytics_service.normalize_period(period)
    key = cache.analytics_key(target_id, "patterns", period=period)
    return cache.read_through(key, cache.ANALYTICS_TTL, lambda: format_response(
        analytics_service.get_spending_patterns(db, target_id, period)
    ))


@router.get("/budget")
async def get_budget_analysis(
    period: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Spend per expense category against its trailing monthly average."""
    target_id = resolve_target_user(current_user.role, current_user.id, user_id)
    period = analytics_service.normalize_period(period)
    key = cache.analytics_key(target_id, "budget", period=period)
    return cache.read_through(key, cache.ANALYTICS_TTL, lambda: format_response(
        analytics_service.get_budget_analysis(db, target_id, period)
    ))
