"""
User accounts: registration, credentials, profile and administration.
"""
import logging
from datetime import date
from typing import Optional
from sqlalchemy import extract, func, or_
from sqlalchemy.orm import Session
from app.core.security import get_password_hash, verify_password
from app.core.utils import LIKE_ESCAPE, like_pattern, pagination_info, to_float
from app.models.category import TransactionType
from app.models.transaction import Transaction
from app.models.user import User, UserRole
from app.schemas.user import AdminUserResponse, UserCreate, UserUpdate
from app.services.analytics_service import shift_month
from app.services.errors import ConflictError, NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)

ADMIN_PAGE_SIZE = 20
RECENT_ACTIVITY_LIMIT = 10
STATS_TREND_MONTHS = 6


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


def register_user(db: Session, data: UserCreate, role: UserRole = UserRole.USER) -> User:
    if get_user_by_email(db, data.email):
        raise ConflictError("User with this email already exists")

    user = User(
        email=data.email.lower(),
        name=data.name,
        hashed_password=get_password_hash(data.password),
        role=role
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def update_profile(db: Session, user: User, data: UserUpdate) -> User:
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes:
        changes["email"] = changes["email"].lower()
        existing = get_user_by_email(db, changes["email"])
        if existing and existing.id != user.id:
            raise ConflictError("User with this email already exists")
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise ValidationFailedError("Name is required")

    for field, value in changes.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.hashed_password):
        raise ValidationFailedError("Current password is incorrect")
    user.hashed_password = get_password_hash(new_password)
    db.commit()
    logger.info(f"Password changed for user {user.id}")


def list_users(
    db: Session,
    page: int,
    limit: int,
    role: Optional[UserRole] = None,
    search: Optional[str] = None
) -> dict:
    """Page through users, newest first, each with its transaction count."""
    conditions = []
    if role is not None:
        conditions.append(User.role == role)
    if search:
        pattern = like_pattern(search)
        conditions.append(or_(
            User.name.ilike(pattern, escape=LIKE_ESCAPE),
            User.email.ilike(pattern, escape=LIKE_ESCAPE)
        ))

    total_count = db.query(func.count(User.id)).filter(*conditions).scalar() or 0

    transaction_count = (
        db.query(func.count(Transaction.id))
        .filter(Transaction.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )
    rows = (
        db.query(User, transaction_count)
        .filter(*conditions)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    users = []
    for user, count in rows:
        item = AdminUserResponse.model_validate(user)
        item.transaction_count = int(count or 0)
        users.append(item)

    return {
        "users": users,
        "pagination": pagination_info(page, limit, total_count),
    }


def update_role(db: Session, actor: User, user_id: int, role: UserRole) -> User:
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.id == actor.id:
        raise ValidationFailedError("Cannot change your own role")

    user.role = role
    db.commit()
    db.refresh(user)
    logger.info(f"User {actor.id} set role of user {user.id} to {UserRole(role).value}")
    return user


def delete_user(db: Session, actor: User, user_id: int) -> None:
    """Delete a user and, by cascade, their transactions."""
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.id == actor.id:
        raise ValidationFailedError("Cannot delete your own account")

    db.delete(user)
    db.commit()
    logger.info(f"User {actor.id} deleted user {user_id}")


def system_stats(db: Session, today: Optional[date] = None) -> dict:
    """Counts and totals across all users for the admin overview."""
    today = today or date.today()

    user_stats = {role.value: 0 for role in UserRole}
    for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all():
        user_stats[UserRole(role).value] = int(count)

    transaction_stats = {kind.value: {"count": 0, "total": 0.0} for kind in TransactionType}
    kind_rows = (
        db.query(Transaction.type, func.count(Transaction.id), func.coalesce(func.sum(Transaction.amount), 0))
        .group_by(Transaction.type)
        .all()
    )
    for kind, count, total in kind_rows:
        transaction_stats[TransactionType(kind).value] = {"count": int(count), "total": to_float(total)}

    last_transaction = func.max(Transaction.created_at)
    activity_rows = (
        db.query(User.id, User.name, User.email, func.count(Transaction.id), last_transaction)
        .outerjoin(Transaction, Transaction.user_id == User.id)
        .group_by(User.id, User.name, User.email)
        .order_by(last_transaction.is_(None), last_transaction.desc())
        .limit(RECENT_ACTIVITY_LIMIT)
        .all()
    )
    recent_activity = [
        {
            "user_id": user_id,
            "user_name": name,
            "user_email": email,
            "transaction_count": int(count),
            "last_transaction": last,
        }
        for user_id, name, email, count, last in activity_rows
    ]

    first_year, first_month = shift_month(today.year, today.month, -STATS_TREND_MONTHS)
    year_col = extract("year", Transaction.date)
    month_col = extract("month", Transaction.date)
    trend_rows = (
        db.query(year_col, month_col, Transaction.type, func.count(Transaction.id), func.coalesce(func.sum(Transaction.amount), 0))
        .filter(Transaction.date >= date(first_year, first_month, 1))
        .group_by(year_col, month_col, Transaction.type)
        .order_by(year_col, month_col)
        .all()
    )
    monthly_trends = [
        {
            "month": f"{int(year):04d}-{int(month):02d}",
            "type": TransactionType(kind).value,
            "count": int(count),
            "total": to_float(total),
        }
        for year, month, kind, count, total in trend_rows
    ]

    return {
        "user_stats": user_stats,
        "transaction_stats": transaction_stats,
        "recent_activity": recent_activity,
        "monthly_trends": monthly_trends,
    }
