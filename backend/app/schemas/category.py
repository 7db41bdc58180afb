"""
Pydantic schemas for Category entity.
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.models.category import TransactionType, DEFAULT_CATEGORY_COLOR

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class CategoryCreate(BaseModel):
    """Schema for category creation."""
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: str = Field(DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR)


class CategoryUpdate(BaseModel):
    """Schema for category update; omitted fields keep their value."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR)


class CategoryResponse(BaseModel):
    """Schema for category response."""
    id: int
    name: str
    type: TransactionType
    color: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CategoryStatsItem(BaseModel):
    """Usage of one category."""
    id: int
    name: str
    type: TransactionType
    color: str
    transaction_count: int
    total_amount: float
