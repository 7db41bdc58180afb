"""
Transaction queries: filtered listing, CRUD, summaries and CSV export.

Every read is scoped by owner at query level. A `user_id` of None means no
owner filter and is only passed for admins.
"""
import csv
import io
import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.core.utils import LIKE_ESCAPE, like_pattern, pagination_info, serialize_date, to_float
from app.models.category import Category, TransactionType
from app.models.transaction import Transaction
from app.schemas.transaction import (
    TransactionCreate, TransactionUpdate, TransactionResponse, TransactionSummary, KindTotal
)
from app.services.errors import NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "date": Transaction.date,
    "amount": Transaction.amount,
    "description": Transaction.description,
    "type": Transaction.type,
    "created_at": Transaction.created_at,
}
SORT_ORDERS = ("asc", "desc")
DEFAULT_SORT_BY = "date"
DEFAULT_SORT_ORDER = "desc"


def normalize_sort(sort_by: Optional[str], sort_order: Optional[str]) -> Tuple[str, str]:
    """Fall back to the defaults for anything outside the allow-lists."""
    column = sort_by if sort_by in SORT_COLUMNS else DEFAULT_SORT_BY
    order = (sort_order or "").lower()
    if order not in SORT_ORDERS:
        order = DEFAULT_SORT_ORDER
    return column, order


def build_filters(
    user_id: Optional[int] = None,
    category_id: Optional[int] = None,
    type: Optional[TransactionType] = None,
    search: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list:
    """Assemble the WHERE conditions shared by list, count, summary and export."""
    conditions = []
    if user_id is not None:
        conditions.append(Transaction.user_id == user_id)
    if category_id is not None:
        conditions.append(Transaction.category_id == category_id)
    if type is not None:
        conditions.append(Transaction.type == type)
    if search:
        conditions.append(Transaction.description.ilike(like_pattern(search), escape=LIKE_ESCAPE))
    if start_date is not None:
        conditions.append(Transaction.date >= start_date)
    if end_date is not None:
        conditions.append(Transaction.date <= end_date)
    return conditions


def to_response(transaction: Transaction) -> TransactionResponse:
    category = transaction.category
    return TransactionResponse(
        id=transaction.id,
        user_id=transaction.user_id,
        amount=to_float(transaction.amount),
        description=transaction.description,
        type=transaction.type,
        date=transaction.date,
        category_id=transaction.category_id,
        category_name=category.name if category else None,
        category_color=category.color if category else None,
        created_at=transaction.created_at,
        updated_at=transaction.updated_at
    )


def list_transactions(
    db: Session,
    user_id: Optional[int],
    page: int,
    limit: int,
    category_id: Optional[int] = None,
    type: Optional[TransactionType] = None,
    search: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> dict:
    """Return one page of transactions plus pagination info."""
    conditions = build_filters(user_id, category_id, type, search, start_date, end_date)
    column_name, order = normalize_sort(sort_by, sort_order)
    column = SORT_COLUMNS[column_name]
    ordering = column.asc() if order == "asc" else column.desc()
    tiebreak = Transaction.id.asc() if order == "asc" else Transaction.id.desc()

    total_count = db.query(func.count(Transaction.id)).filter(*conditions).scalar() or 0
    rows = (
        db.query(Transaction)
        .options(joinedload(Transaction.category))
        .filter(*conditions)
        .order_by(ordering, tiebreak)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "transactions": [to_response(t) for t in rows],
        "pagination": pagination_info(page, limit, total_count),
    }


def get_transaction(db: Session, transaction_id: int, user_id: Optional[int]) -> Optional[Transaction]:
    """Load one transaction, invisible to anyone but its owner unless user_id is None."""
    query = db.query(Transaction).options(joinedload(Transaction.category)).filter(
        Transaction.id == transaction_id
    )
    if user_id is not None:
        query = query.filter(Transaction.user_id == user_id)
    return query.first()


def get_owner_id(db: Session, transaction_id: int) -> Optional[int]:
    return db.query(Transaction.user_id).filter(Transaction.id == transaction_id).scalar()


def validate_category(db: Session, category_id: int, type: TransactionType) -> Category:
    """A transaction may only reference an existing category of the same type."""
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise ValidationFailedError("Invalid category ID")
    if TransactionType(category.type) != TransactionType(type):
        raise ValidationFailedError("Category type does not match transaction type")
    return category


def create_transaction(db: Session, user_id: int, data: TransactionCreate) -> Transaction:
    validate_category(db, data.category_id, data.type)

    transaction = Transaction(
        user_id=user_id,
        amount=data.amount,
        description=data.description,
        type=data.type,
        category_id=data.category_id,
        date=data.date
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    logger.info(f"Created transaction {transaction.id} for user {user_id}")
    return transaction


def update_transaction(
    db: Session,
    transaction_id: int,
    user_id: Optional[int],
    data: TransactionUpdate
) -> Transaction:
    transaction = get_transaction(db, transaction_id, user_id)
    if not transaction:
        raise NotFoundError("Transaction not found")

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    new_type = changes.get("type", transaction.type)
    new_category_id = changes.get("category_id", transaction.category_id)
    validate_category(db, new_category_id, new_type)

    for field, value in changes.items():
        setattr(transaction, field, value)
    db.commit()
    db.refresh(transaction)
    logger.info(f"Updated transaction {transaction.id}")
    return transaction


def delete_transaction(db: Session, transaction_id: int, user_id: Optional[int]) -> int:
    """Delete and return the owner id so the caller can invalidate their caches."""
    transaction = get_transaction(db, transaction_id, user_id)
    if not transaction:
        raise NotFoundError("Transaction not found")

    owner_id = transaction.user_id
    db.delete(transaction)
    db.commit()
    logger.info(f"Deleted transaction {transaction_id}")
    return owner_id


def summarize(db: Session, conditions: list) -> TransactionSummary:
    """Count and total per type over the given conditions, plus balance."""
    rows = (
        db.query(
            Transaction.type,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.amount), 0)
        )
        .filter(*conditions)
        .group_by(Transaction.type)
        .all()
    )

    summary = TransactionSummary()
    for kind, count, total in rows:
        setattr(summary, TransactionType(kind).value, KindTotal(count=int(count), total=to_float(total)))
    summary.balance = round(summary.income.total - summary.expense.total, 2)
    return summary


def get_summary(
    db: Session,
    user_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> TransactionSummary:
    return summarize(db, build_filters(user_id, start_date=start_date, end_date=end_date))


EXPORT_COLUMNS = ["id", "date", "type", "category", "description", "amount"]


def export_csv(db: Session, user_id: int, **filters) -> str:
    """Render the filtered transactions as CSV, newest first."""
    conditions = build_filters(user_id, **filters)
    rows: List[Transaction] = (
        db.query(Transaction)
        .options(joinedload(Transaction.category))
        .filter(*conditions)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .all()
    )

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for t in rows:
        writer.writerow([
            t.id,
            serialize_date(t.date),
            TransactionType(t.type).value,
            t.category.name if t.category else "",
            t.description,
            f"{to_float(t.amount):.2f}",
        ])
    return buffer.getvalue()
