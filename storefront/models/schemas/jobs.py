"""
Pydantic schemas for scheduler inspection.
"""
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict


class JobRecordRead(BaseModel):
    id: str
    name: str
    target_id: str
    collection_name: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class FireResultRead(BaseModel):
    offer_id: int
    job_name: str
    job_record_id: Optional[str]
    attempt: int
    ok: bool
    outcome: str
    fired_at: datetime
    error: Optional[str] = None
    error_type: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SchedulerStatus(BaseModel):
    records: List[JobRecordRead]
    timers: Dict[str, Any]
    recent_fires: List[FireResultRead]
