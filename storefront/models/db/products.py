from __future__ import annotations
"""SQLAlchemy model for catalog products (only the discount-related surface is modelled)."""
from sqlalchemy import Integer, String, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from storefront.database import Base


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    price: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Fields owned by offer scheduling: set when an offer starts, cleared when it ends.
    discount_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discount_amount: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    discount_start_date_time: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    discount_end_date_time: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
