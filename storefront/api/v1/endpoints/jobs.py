"""
Scheduler inspection endpoints: persisted job records, armed timers and recent fires.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request
from storefront.api.deps import get_scheduler
from storefront.jobs.scheduler import OfferScheduler
from storefront.models.schemas.jobs import FireResultRead, JobRecordRead, SchedulerStatus
from storefront.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/",
    response_model=SchedulerStatus,
    summary="Scheduler status"
)
async def scheduler_status(
    request: Request,
    offer_id: Optional[int] = None,
    scheduler: OfferScheduler = Depends(get_scheduler)
) -> SchedulerStatus:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        if offer_id is not None:
            records = scheduler.store.find_by_target(str(offer_id), scheduler.collection_name)
        else:
            records = scheduler.store.list_all()
    except Exception as e:
        logger.error("Job record listing failed", error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job record store unavailable"
        )

    fires = scheduler.recent_fires()
    if offer_id is not None:
        fires = [f for f in fires if f.offer_id == offer_id]

    return SchedulerStatus(
        records=[JobRecordRead.model_validate(r) for r in records],
        timers=scheduler.snapshot(),
        recent_fires=[FireResultRead.model_validate(f) for f in fires],
    )


@router.get(
    "/dead-letters",
    response_model=List[dict],
    summary="Fires that exhausted their retries"
)
async def dead_letters(
    scheduler: OfferScheduler = Depends(get_scheduler)
) -> List[dict]:
    return scheduler.dead_letters()
