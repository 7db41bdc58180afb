"""Models package - Import all models for SQLAlchemy registration."""
from app.models.user import User, UserRole
from app.models.category import Category, TransactionType
from app.models.transaction import Transaction

__all__ = [
    "User",
    "UserRole",
    "Category",
    "TransactionType",
    "Transaction",
]
