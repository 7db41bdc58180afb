"""
Analytics aggregation for dashboards and charts.

Every operation works on a date window derived from a period name relative to
"today" (injectable for tests) and is scoped to a single user.
"""
import calendar
from collections import OrderedDict
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, extract, func
from sqlalchemy.orm import Session

from app.core.utils import percentage, to_float
from app.models.category import Category, TransactionType
from app.models.transaction import Transaction
from app.services.transaction_service import build_filters, summarize

PERIODS = ("week", "month", "quarter", "year")
DEFAULT_PERIOD = "month"

DEFAULT_TREND_MONTHS = 12
MAX_TREND_MONTHS = 24
BUDGET_HISTORY_MONTHS = 12

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

BUDGET_WARNING_THRESHOLD = 80
BUDGET_OVER_THRESHOLD = 100


def normalize_period(period: Optional[str]) -> str:
    """Unknown or missing periods are treated as the current month."""
    period = (period or "").lower()
    return period if period in PERIODS else DEFAULT_PERIOD


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    """Move (year, month) by delta months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def period_window(period: Optional[str], today: Optional[date] = None) -> Tuple[str, date, date]:
    """
    Resolve a period name to (period, start, end), both ends inclusive.

    week    -> the last 7 days up to today
    month   -> the current calendar month
    quarter -> the current calendar quarter
    year    -> the current calendar year
    """
    today = today or date.today()
    period = normalize_period(period)

    if period == "week":
        return period, today - timedelta(days=7), today
    if period == "quarter":
        first_month = ((today.month - 1) // 3) * 3 + 1
        return period, date(today.year, first_month, 1), _month_end(today.year, first_month + 2)
    if period == "year":
        return period, date(today.year, 1, 1), date(today.year, 12, 31)
    return period, date(today.year, today.month, 1), _month_end(today.year, today.month)


def clamp_months(months: Optional[int]) -> int:
    if months is None:
        return DEFAULT_TREND_MONTHS
    return min(MAX_TREND_MONTHS, max(1, months))


def budget_status(budget_percentage: float) -> str:
    if budget_percentage > BUDGET_OVER_THRESHOLD:
        return "over"
    if budget_percentage >= BUDGET_WARNING_THRESHOLD:
        return "warning"
    return "good"


def _date_range(start: date, end: date) -> Dict[str, date]:
    return {"start_date": start, "end_date": end}


def get_dashboard(db: Session, user_id: int, period: Optional[str] = None, today: Optional[date] = None) -> dict:
    """Totals per type plus the per-category breakdown within the window."""
    period, start, end = period_window(period, today)
    summary = summarize(db, build_filters(user_id, start_date=start, end_date=end))

    total = func.coalesce(func.sum(Transaction.amount), 0)
    rows = (
        db.query(
            Category.id,
            Category.name,
            Category.type,
            Category.color,
            func.count(Transaction.id),
            total
        )
        .join(Transaction, Transaction.category_id == Category.id)
        .filter(
            Transaction.user_id == user_id,
            Transaction.date >= start,
            Transaction.date <= end
        )
        .group_by(Category.id, Category.name, Category.type, Category.color)
        .order_by(total.desc(), Category.name)
        .all()
    )

    type_totals = {
        TransactionType.INCOME.value: summary.income.total,
        TransactionType.EXPENSE.value: summary.expense.total,
    }
    breakdown = []
    for category_id, name, kind, color, count, amount in rows:
        kind = TransactionType(kind).value
        breakdown.append({
            "id": category_id,
            "name": name,
            "type": kind,
            "color": color,
            "transaction_count": int(count),
            "total_amount": to_float(amount),
            "percentage": percentage(amount, type_totals[kind]),
        })

    return {
        "period": period,
        "date_range": _date_range(start, end),
        "summary": summary,
        "category_breakdown": breakdown,
    }


def get_monthly_trends(db: Session, user_id: int, months: Optional[int] = None, today: Optional[date] = None) -> dict:
    """Income, expense and balance per calendar month, ending with the current month."""
    today = today or date.today()
    months = clamp_months(months)
    first_year, first_month = shift_month(today.year, today.month, -(months - 1))
    start = date(first_year, first_month, 1)
    end = _month_end(today.year, today.month)

    year_col = extract("year", Transaction.date)
    month_col = extract("month", Transaction.date)
    rows = (
        db.query(year_col, month_col, Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
        .filter(
            Transaction.user_id == user_id,
            Transaction.date >= start,
            Transaction.date <= end
        )
        .group_by(year_col, month_col, Transaction.type)
        .all()
    )

    totals: Dict[Tuple[int, int], Dict[str, float]] = {}
    for year, month, kind, amount in rows:
        bucket = totals.setdefault((int(year), int(month)), {"income": 0.0, "expense": 0.0})
        bucket[TransactionType(kind).value] = to_float(amount)

    trends = []
    for offset in range(months):
        year, month = shift_month(first_year, first_month, offset)
        bucket = totals.get((year, month), {"income": 0.0, "expense": 0.0})
        trends.append({
            "month": f"{year:04d}-{month:02d}",
            "income": bucket["income"],
            "expense": bucket["expense"],
            "balance": round(bucket["income"] - bucket["expense"], 2),
        })

    return {"months": months, "trends": trends}


def _empty_bucket() -> Dict[str, float]:
    return {"income": 0.0, "expense": 0.0, "count": 0}


def get_spending_patterns(db: Session, user_id: int, period: Optional[str] = None, today: Optional[date] = None) -> dict:
    """Totals by day of week (transaction date) and hour of day (entry time)."""
    period, start, end = period_window(period, today)
    conditions = build_filters(user_id, start_date=start, end_date=end)

    by_day = OrderedDict((name, _empty_bucket()) for name in DAY_NAMES)
    by_hour = OrderedDict((hour, _empty_bucket()) for hour in range(24))
    by_type = {"income": 0.0, "expense": 0.0}

    # Weekday is derived in Python so the query stays portable across dialects
    daily_rows = (
        db.query(Transaction.date, Transaction.type, func.count(Transaction.id), func.coalesce(func.sum(Transaction.amount), 0))
        .filter(*conditions)
        .group_by(Transaction.date, Transaction.type)
        .all()
    )
    for day, kind, count, amount in daily_rows:
        kind = TransactionType(kind).value
        bucket = by_day[DAY_NAMES[(day.weekday() + 1) % 7]]
        bucket[kind] += to_float(amount)
        bucket["count"] += int(count)
        by_type[kind] += to_float(amount)

    hour_col = extract("hour", Transaction.created_at)
    hourly_rows = (
        db.query(hour_col, Transaction.type, func.count(Transaction.id), func.coalesce(func.sum(Transaction.amount), 0))
        .filter(*conditions)
        .group_by(hour_col, Transaction.type)
        .all()
    )
    for hour, kind, count, amount in hourly_rows:
        bucket = by_hour[int(hour)]
        bucket[TransactionType(kind).value] += to_float(amount)
        bucket["count"] += int(count)

    def _rounded(bucket):
        return {"income": round(bucket["income"], 2), "expense": round(bucket["expense"], 2), "count": bucket["count"]}

    return {
        "period": period,
        "date_range": _date_range(start, end),
        "patterns": {
            "by_day_of_week": [dict(day=name, **_rounded(b)) for name, b in by_day.items()],
            "by_hour_of_day": [dict(hour=hour, **_rounded(b)) for hour, b in by_hour.items()],
            "by_type": {k: round(v, 2) for k, v in by_type.items()},
        },
    }


def get_budget_analysis(db: Session, user_id: int, period: Optional[str] = None, today: Optional[date] = None) -> dict:
    """
    Compare spend per expense category in the window against that category's
    average monthly spend over the preceding twelve months.
    """
    period, start, end = period_window(period, today)
    history_year, history_month = shift_month(start.year, start.month, -BUDGET_HISTORY_MONTHS)
    history_start = date(history_year, history_month, 1)
    history_end = start - timedelta(days=1)

    current_total = func.coalesce(func.sum(Transaction.amount), 0)
    current_rows = (
        db.query(Category.id, Category.name, Category.color, current_total)
        .outerjoin(
            Transaction,
            and_(
                Transaction.category_id == Category.id,
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.EXPENSE,
                Transaction.date >= start,
                Transaction.date <= end
            )
        )
        .filter(Category.type == TransactionType.EXPENSE)
        .group_by(Category.id, Category.name, Category.color)
        .all()
    )

    year_col = extract("year", Transaction.date)
    month_col = extract("month", Transaction.date)
    monthly = (
        db.query(
            Transaction.category_id.label("category_id"),
            func.sum(Transaction.amount).label("monthly_amount")
        )
        .filter(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.EXPENSE,
            Transaction.date >= history_start,
            Transaction.date <= history_end
        )
        .group_by(Transaction.category_id, year_col, month_col)
        .subquery()
    )
    averages = dict(
        db.query(monthly.c.category_id, func.avg(monthly.c.monthly_amount))
        .group_by(monthly.c.category_id)
        .all()
    )

    analysis: List[dict] = []
    for category_id, name, color, spent in current_rows:
        budget_amount = to_float(averages.get(category_id))
        budget_pct = percentage(spent, budget_amount)
        analysis.append({
            "category_id": category_id,
            "category_name": name,
            "category_color": color,
            "current_amount": to_float(spent),
            "budget_amount": budget_amount,
            "budget_percentage": budget_pct,
            "status": budget_status(budget_pct),
        })
    analysis.sort(key=lambda item: (-item["current_amount"], item["category_name"]))

    return {
        "period": period,
        "date_range": _date_range(start, end),
        "history_range": _date_range(history_start, history_end),
        "budget_analysis": analysis,
    }
