"""
Pydantic schemas for promotional offers.
"""
from datetime import datetime
from typing import Optional, List
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict, AwareDatetime
from storefront.models.db.enums import DiscountType


class ProductRef(BaseModel):
    """One product inside an offer together with its discount override."""
    product: int = Field(gt=0, description="Product id")
    offer_discount_type: Optional[DiscountType] = Field(None, description="1 = percentage, 2 = cash")
    offer_discount_amount: Optional[Decimal] = Field(None, ge=0)
    reset_discount: bool = Field(False, description="Clear the product discount when the offer ends")

    def to_document(self) -> dict:
        """JSON-safe dict stored on the offer row."""
        return {
            "product": self.product,
            "offer_discount_type": int(self.offer_discount_type) if self.offer_discount_type is not None else None,
            "offer_discount_amount": float(self.offer_discount_amount) if self.offer_discount_amount is not None else None,
            "reset_discount": self.reset_discount,
        }


class OfferCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: Optional[str] = None
    banner_image: Optional[str] = None
    start_date_time: AwareDatetime
    end_date_time: AwareDatetime
    products: List[ProductRef] = Field(default_factory=list)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Eid Flash Sale",
            "start_date_time": "2026-04-01T10:00:00+06:00",
            "end_date_time": "2026-04-03T23:59:00+06:00",
            "products": [
                {"product": 1, "offer_discount_type": 1, "offer_discount_amount": 15, "reset_discount": True}
            ]
        }
    })


class OfferUpdate(OfferCreate):
    slug: Optional[str] = None


class OfferRead(BaseModel):
    id: int
    title: str
    slug: str
    description: Optional[str]
    banner_image: Optional[str]
    start_date_time: datetime
    end_date_time: datetime
    products: List[ProductRef]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OfferBulkDelete(BaseModel):
    ids: List[int] = Field(min_length=1)
    check_usage: bool = False
