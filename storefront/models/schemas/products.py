"""
Pydantic schemas for products (discount surface only).
"""
from datetime import datetime
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    slug: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)


class ProductRead(BaseModel):
    id: int
    name: str
    slug: Optional[str]
    price: Optional[Decimal]
    discount_type: Optional[int]
    discount_amount: Optional[Decimal]
    discount_start_date_time: Optional[datetime]
    discount_end_date_time: Optional[datetime]
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
