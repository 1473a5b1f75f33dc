from __future__ import annotations
"""SQLAlchemy model for persisted scheduler jobs.

A row exists for every armed offer timer so schedules survive a restart:
``name`` is the configured phase job name, ``target_id`` the offer it acts on.
"""
from sqlalchemy import Integer, String, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from storefront.database import Base


class ScheduledJob(Base):
    __tablename__ = "job_records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    target_id: Mapped[str] = mapped_column(String, nullable=False)
    collection_name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_job_records_target", "collection_name", "target_id", "name"),
    )
