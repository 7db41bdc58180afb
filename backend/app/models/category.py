"""
Category model shared by income and expense transactions.
"""
from sqlalchemy import Column, String, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
import enum

DEFAULT_CATEGORY_COLOR = "#6366f1"


class TransactionType(str, enum.Enum):
    """Income/expense discriminator shared by categories and transactions."""
    INCOME = "income"
    EXPENSE = "expense"


class Category(BaseModel):
    """Globally shared category, managed by admins."""
    __tablename__ = "categories"

    name = Column(String(100), unique=True, nullable=False)
    type = Column(
        SQLEnum(TransactionType, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        nullable=False
    )
    color = Column(String(7), nullable=False, default=DEFAULT_CATEGORY_COLOR)

    # Relationships
    transactions = relationship("Transaction", back_populates="category")
