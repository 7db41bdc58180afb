"""
Pydantic schemas for Transaction entity.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import date as dt_date, datetime
from decimal import Decimal
from app.models.category import TransactionType


class TransactionBase(BaseModel):
    """Base transaction schema."""
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    type: TransactionType
    category_id: int = Field(..., gt=0)
    date: dt_date

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Description must be between 1 and 500 characters")
        return v


class TransactionCreate(TransactionBase):
    """Schema for transaction creation."""
    pass


class TransactionUpdate(BaseModel):
    """Schema for transaction update; omitted fields keep their value."""
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    type: Optional[TransactionType] = None
    category_id: Optional[int] = Field(None, gt=0)
    date: Optional[dt_date] = None

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Description must be between 1 and 500 characters")
        return v


class TransactionResponse(BaseModel):
    """Schema for transaction response."""
    id: int
    user_id: int
    amount: float
    description: str
    type: TransactionType
    date: dt_date
    category_id: int
    category_name: Optional[str] = None
    category_color: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class KindTotal(BaseModel):
    """Count and total for one transaction type."""
    count: int = 0
    total: float = 0.0


class TransactionSummary(BaseModel):
    """Totals per type and the resulting balance."""
    income: KindTotal = Field(default_factory=KindTotal)
    expense: KindTotal = Field(default_factory=KindTotal)
    balance: float = 0.0
