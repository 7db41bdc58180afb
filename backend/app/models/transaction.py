"""
Transaction model for income and expense entries.
"""
from sqlalchemy import Column, Numeric, Date, ForeignKey, Integer, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
from app.models.category import TransactionType


class Transaction(BaseModel):
    """A single income or expense owned by one user."""
    __tablename__ = "transactions"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(
        SQLEnum(TransactionType, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        nullable=False,
        index=True
    )
    date = Column(Date, nullable=False, index=True)

    # Relationships
    user = relationship("User", back_populates="transactions")
    category = relationship("Category", back_populates="transactions")
