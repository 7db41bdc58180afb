"""
Category service: shared income/expense categories and their usage.
"""
import logging
from datetime import date
from typing import List, Optional
from sqlalchemy import and_, func
from sqlalchemy.orm import Session
from app.core.utils import to_float
from app.models.category import Category, TransactionType
from app.models.transaction import Transaction
from app.schemas.category import CategoryCreate, CategoryUpdate, CategoryResponse, CategoryStatsItem
from app.services.errors import ConflictError, NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)

# Seeded by app.db.init_db
DEFAULT_CATEGORIES = [
    # Income categories
    ("Salary", TransactionType.INCOME, "#10b981"),
    ("Freelance", TransactionType.INCOME, "#059669"),
    ("Investment", TransactionType.INCOME, "#047857"),
    ("Other Income", TransactionType.INCOME, "#065f46"),
    # Expense categories
    ("Food & Dining", TransactionType.EXPENSE, "#ef4444"),
    ("Transportation", TransactionType.EXPENSE, "#f97316"),
    ("Shopping", TransactionType.EXPENSE, "#eab308"),
    ("Entertainment", TransactionType.EXPENSE, "#8b5cf6"),
    ("Bills & Utilities", TransactionType.EXPENSE, "#06b6d4"),
    ("Healthcare", TransactionType.EXPENSE, "#ec4899"),
    ("Education", TransactionType.EXPENSE, "#3b82f6"),
    ("Other Expenses", TransactionType.EXPENSE, "#6b7280"),
]


def list_categories(db: Session, type: Optional[TransactionType] = None) -> List[CategoryResponse]:
    query = db.query(Category)
    if type is not None:
        query = query.filter(Category.type == type)
    categories = query.order_by(Category.type, Category.name).all()
    return [CategoryResponse.model_validate(c) for c in categories]


def get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def _ensure_unique_name(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(Category.id).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        if exclude_id is None:
            raise ConflictError("Category with this name already exists")
        raise ConflictError("Another category with this name already exists")


def _usage_count(db: Session, category_id: int) -> int:
    return db.query(func.count(Transaction.id)).filter(
        Transaction.category_id == category_id
    ).scalar() or 0


def create_category(db: Session, data: CategoryCreate) -> Category:
    name = data.name.strip()
    _ensure_unique_name(db, name)

    category = Category(name=name, type=data.type, color=data.color)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info(f"Created category '{category.name}' ({category.id})")
    return category


def update_category(db: Session, category_id: int, data: CategoryUpdate) -> Category:
    category = get_category(db, category_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    if "name" in changes:
        changes["name"] = changes["name"].strip()
        _ensure_unique_name(db, changes["name"], exclude_id=category.id)

    # Transactions must keep the same type as their category
    if "type" in changes and TransactionType(changes["type"]) != TransactionType(category.type):
        if _usage_count(db, category.id) > 0:
            raise ValidationFailedError("Cannot change type of a category that is being used in transactions")

    for field, value in changes.items():
        setattr(category, field, value)
    db.commit()
    db.refresh(category)
    logger.info(f"Updated category {category.id}")
    return category


def delete_category(db: Session, category_id: int) -> None:
    category = get_category(db, category_id)
    if _usage_count(db, category.id) > 0:
        raise ValidationFailedError("Cannot delete category that is being used in transactions")

    db.delete(category)
    db.commit()
    logger.info(f"Deleted category {category_id}")


def category_stats(
    db: Session,
    user_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> List[CategoryStatsItem]:
    """
    Transaction count and total per category, highest total first.
    Every category is listed; filters only narrow which transactions are counted.
    """
    join_conditions = [Transaction.category_id == Category.id]
    if user_id is not None:
        join_conditions.append(Transaction.user_id == user_id)
    if start_date is not None:
        join_conditions.append(Transaction.date >= start_date)
    if end_date is not None:
        join_conditions.append(Transaction.date <= end_date)

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
        .outerjoin(Transaction, and_(*join_conditions))
        .group_by(Category.id, Category.name, Category.type, Category.color)
        .order_by(total.desc(), Category.name)
        .all()
    )

    return [
        CategoryStatsItem(
            id=row[0],
            name=row[1],
            type=row[2],
            color=row[3],
            transaction_count=int(row[4]),
            total_amount=to_float(row[5])
        )
        for row in rows
    ]


def seed_default_categories(db: Session) -> int:
    """Insert any missing default categories; returns how many were added."""
    existing = {name for (name,) in db.query(Category.name).all()}
    added = 0
    for name, kind, color in DEFAULT_CATEGORIES:
        if name not in existing:
            db.add(Category(name=name, type=kind, color=color))
            added += 1
    db.commit()
    return added
