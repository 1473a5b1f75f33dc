from __future__ import annotations
"""SQLAlchemy model for promotional offers.

``products`` holds the per-product discount overrides as a JSON list of
``{"product", "offer_discount_type", "offer_discount_amount", "reset_discount"}``.
"""
from typing import Any
from sqlalchemy import Integer, String, DateTime, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from storefront.database import Base


class Offer(Base):
    __tablename__ = "offers"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    banner_image: Mapped[str | None] = mapped_column(String, nullable=True)
    start_date_time: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date_time: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    products: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
