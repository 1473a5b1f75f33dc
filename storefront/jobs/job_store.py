"""Persisted job records backing the offer timers.

The in-memory timers are lost on restart; a JobRecord row is what lets the
scheduler rebuild them. Every call opens its own short-lived session and
commits a single write, so the store is safe to use from the worker thread
as well as from request handlers.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from storefront.database import SessionLocal
from storefront.models.db import ScheduledJob
from storefront.utils import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class JobRecord:
    id: str
    name: str
    target_id: str
    collection_name: str
    created_at: Optional[datetime] = None


class JobRecordStore(Protocol):
    def insert(self, name: str, target_id: str, collection_name: str) -> JobRecord: ...
    def delete_by_id(self, record_id: str) -> bool: ...
    def delete_by_name_and_collection(self, name: str, collection_name: str) -> int: ...
    def delete_by_target(self, name: str, target_id: str, collection_name: str) -> int: ...
    def find_by_target(self, target_id: str, collection_name: str) -> list[JobRecord]: ...
    def list_all(self) -> list[JobRecord]: ...


def _to_record(row: ScheduledJob) -> JobRecord:
    return JobRecord(
        id=str(row.id),
        name=row.name,
        target_id=row.target_id,
        collection_name=row.collection_name,
        created_at=row.created_at,  # type: ignore[arg-type]
    )


class SqlJobRecordStore:
    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def insert(self, name: str, target_id: str, collection_name: str) -> JobRecord:
        with self._session_factory() as session:
            row = ScheduledJob(name=name, target_id=str(target_id), collection_name=collection_name)
            session.add(row)
            session.commit()
            session.refresh(row)
            record = _to_record(row)
        logger.debug("Job record inserted", record_id=record.id, name=name, target_id=record.target_id)
        return record

    def delete_by_id(self, record_id: str) -> bool:
        try:
            pk = int(record_id)
        except (TypeError, ValueError):
            return False
        with self._session_factory() as session:
            result = session.execute(delete(ScheduledJob).where(ScheduledJob.id == pk))
            session.commit()
            return bool(result.rowcount)

    def delete_by_name_and_collection(self, name: str, collection_name: str) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(ScheduledJob).where(
                    ScheduledJob.name == name,
                    ScheduledJob.collection_name == collection_name,
                )
            )
            session.commit()
            return int(result.rowcount or 0)

    def delete_by_target(self, name: str, target_id: str, collection_name: str) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(ScheduledJob).where(
                    ScheduledJob.name == name,
                    ScheduledJob.target_id == str(target_id),
                    ScheduledJob.collection_name == collection_name,
                )
            )
            session.commit()
            return int(result.rowcount or 0)

    def find_by_target(self, target_id: str, collection_name: str) -> list[JobRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ScheduledJob)
                .where(
                    ScheduledJob.target_id == str(target_id),
                    ScheduledJob.collection_name == collection_name,
                )
                .order_by(ScheduledJob.id)
            ).all()
            return [_to_record(r) for r in rows]

    def list_all(self) -> list[JobRecord]:
        with self._session_factory() as session:
            rows = session.scalars(select(ScheduledJob).order_by(ScheduledJob.id)).all()
            return [_to_record(r) for r in rows]

    def health_check(self) -> bool:
        return True


__all__ = ["JobRecord", "JobRecordStore", "SqlJobRecordStore"]
