"""Redis-backed job record store.

Features:
- Job records survive application restarts without touching the SQL database.
- Record ids come from an INCR counter and are prefixed with ``r`` so they can
  never be confused with ids issued by the SQL store.
- Health check before operations, with fallback to the SQL store when Redis is
  unreachable. Listing merges both backends so records written during an
  outage are still reconciled at the next startup.

Data structures in Redis:
 1. Hash: storefront:job_records - field = record id, value = JSON record
 2. String: storefront:job_records:seq - id counter
"""
from __future__ import annotations

import json
import threading
from datetime import datetime
from typing import Any, Optional

import redis

from storefront.config import JOB_STORE_SETTINGS
from storefront.jobs.job_store import JobRecord, SqlJobRecordStore
from storefront.utils import get_logger, utc_now

logger = get_logger(__name__)

REDIS_ID_PREFIX = "r"


class RedisJobRecordStore:
    def __init__(self, fallback: Optional[SqlJobRecordStore] = None) -> None:
        self._redis_url: str = str(JOB_STORE_SETTINGS.get("redis_url", "redis://localhost:6379/0"))
        self._records_key: str = str(JOB_STORE_SETTINGS.get("redis_records_key", "storefront:job_records"))
        self._seq_key: str = str(JOB_STORE_SETTINGS.get("redis_seq_key", "storefront:job_records:seq"))
        self._health_check_timeout = float(JOB_STORE_SETTINGS.get("redis_health_check_timeout", 2.0))  # type: ignore[arg-type]

        self._fallback = fallback or SqlJobRecordStore()

        self._redis_client: Optional[redis.Redis] = None
        self._lock = threading.RLock()
        self._is_redis_active = False
        self._init_redis_client()

    def _init_redis_client(self) -> None:
        try:
            self._redis_client = redis.from_url(self._redis_url, socket_connect_timeout=self._health_check_timeout)
            self._redis_client.ping()
            self._is_redis_active = True
            logger.info("Connected to Redis job store", url=self._redis_url)
        except (redis.RedisError, ConnectionError) as e:
            self._is_redis_active = False
            self._redis_client = None
            logger.warning("Failed to connect to Redis, job records go to the SQL store", error=str(e))

    def health_check(self) -> bool:
        """Check if Redis is available and update status accordingly."""
        with self._lock:
            if self._redis_client is None:
                self._init_redis_client()
                return self._is_redis_active
            try:
                self._redis_client.ping()
                if not self._is_redis_active:
                    logger.info("Redis connection restored")
                self._is_redis_active = True
                return True
            except (redis.RedisError, ConnectionError) as e:
                if self._is_redis_active:
                    logger.warning("Redis connection lost, using SQL job store", error=str(e))
                self._is_redis_active = False
                return False

    @property
    def redis_active(self) -> bool:
        return self._is_redis_active

    # ----------------------------- serialization ----------------------------- #
    @staticmethod
    def _serialize(record: JobRecord) -> str:
        return json.dumps({
            "id": record.id,
            "name": record.name,
            "target_id": record.target_id,
            "collection_name": record.collection_name,
            "created_at": record.created_at.isoformat() if record.created_at else None,
        })

    @staticmethod
    def _deserialize(raw: Any) -> JobRecord:
        data = json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
        created_at = data.get("created_at")
        return JobRecord(
            id=str(data["id"]),
            name=data["name"],
            target_id=str(data["target_id"]),
            collection_name=data["collection_name"],
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )

    @staticmethod
    def _seq_of(record: JobRecord) -> int:
        try:
            return int(record.id[len(REDIS_ID_PREFIX):])
        except ValueError:
            return 0

    def _redis_records(self) -> list[JobRecord]:
        if not self.health_check() or self._redis_client is None:
            return []
        try:
            raw = self._redis_client.hgetall(self._records_key) or {}
        except redis.RedisError as e:
            logger.error("Error reading job records from Redis", error=str(e))
            self._is_redis_active = False
            return []
        records = []
        for value in raw.values():
            try:
                records.append(self._deserialize(value))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping malformed job record in Redis", error=str(e))
        return sorted(records, key=self._seq_of)

    def _delete_matching(self, predicate) -> int:
        matches = [r for r in self._redis_records() if predicate(r)]
        if not matches or self._redis_client is None:
            return 0
        try:
            return int(self._redis_client.hdel(self._records_key, *[r.id for r in matches]) or 0)
        except redis.RedisError as e:
            logger.error("Error deleting job records from Redis", error=str(e))
            self._is_redis_active = False
            return 0

    # ----------------------------- store API ----------------------------- #
    def insert(self, name: str, target_id: str, collection_name: str) -> JobRecord:
        with self._lock:
            if not self.health_check() or self._redis_client is None:
                logger.warning("Redis unavailable, inserting job record into SQL store")
                return self._fallback.insert(name, target_id, collection_name)
            try:
                seq = int(self._redis_client.incr(self._seq_key))
                record = JobRecord(
                    id=f"{REDIS_ID_PREFIX}{seq}",
                    name=name,
                    target_id=str(target_id),
                    collection_name=collection_name,
                    created_at=utc_now(),
                )
                self._redis_client.hset(self._records_key, record.id, self._serialize(record))
                return record
            except redis.RedisError as e:
                logger.error("Redis error during job record insert", error=str(e))
                self._is_redis_active = False
                return self._fallback.insert(name, target_id, collection_name)

    def delete_by_id(self, record_id: str) -> bool:
        with self._lock:
            if not str(record_id).startswith(REDIS_ID_PREFIX):
                return self._fallback.delete_by_id(record_id)
            if not self.health_check() or self._redis_client is None:
                logger.warning("Redis unavailable, job record delete skipped", record_id=record_id)
                return False
            try:
                return bool(self._redis_client.hdel(self._records_key, str(record_id)))
            except redis.RedisError as e:
                logger.error("Redis error during job record delete", record_id=record_id, error=str(e))
                self._is_redis_active = False
                return False

    def delete_by_name_and_collection(self, name: str, collection_name: str) -> int:
        with self._lock:
            removed = self._delete_matching(lambda r: r.name == name and r.collection_name == collection_name)
            return removed + self._fallback.delete_by_name_and_collection(name, collection_name)

    def delete_by_target(self, name: str, target_id: str, collection_name: str) -> int:
        with self._lock:
            removed = self._delete_matching(
                lambda r: r.name == name and r.target_id == str(target_id) and r.collection_name == collection_name
            )
            return removed + self._fallback.delete_by_target(name, target_id, collection_name)

    def find_by_target(self, target_id: str, collection_name: str) -> list[JobRecord]:
        with self._lock:
            own = [
                r for r in self._redis_records()
                if r.target_id == str(target_id) and r.collection_name == collection_name
            ]
            return own + self._fallback.find_by_target(target_id, collection_name)

    def list_all(self) -> list[JobRecord]:
        with self._lock:
            return self._redis_records() + self._fallback.list_all()

    def purge(self) -> None:
        """Remove every Redis-held record (for testing)."""
        with self._lock:
            if not self.health_check() or self._redis_client is None:
                return
            try:
                self._redis_client.delete(self._records_key)
            except redis.RedisError as e:
                logger.error("Error purging Redis job records", error=str(e))
                self._is_redis_active = False


__all__ = ["RedisJobRecordStore", "REDIS_ID_PREFIX"]
