"""
Offer management endpoints. Creating, updating and deleting an offer drives its discount schedule.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request, Response
from sqlalchemy.orm import Session
import time
from storefront.api.deps import get_db, get_scheduler
from storefront.jobs.scheduler import OfferScheduler
from storefront.models.schemas.base import ResponseBase
from storefront.models.schemas.offers import OfferCreate, OfferUpdate, OfferRead, OfferBulkDelete
from storefront.services import offers as offer_service
from storefront.services.offers import OfferConflictError, OfferNotFoundError, OfferValidationError
from storefront.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)


def _to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, OfferNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, OfferConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post(
    "/",
    response_model=OfferRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create offer",
    description="Create a promotional offer and schedule its start and end"
)
async def create_offer(
    offer_data: OfferCreate,
    request: Request,
    db: Session = Depends(get_db),
    scheduler: OfferScheduler = Depends(get_scheduler)
) -> OfferRead:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "Offer creation started",
        title=offer_data.title,
        product_count=len(offer_data.products),
        request_id=request_id
    )

    try:
        offer = offer_service.create_offer(db, offer_data, scheduler)

        duration_ms = (time.time() - start_time) * 1000
        log_performance(
            operation="create_offer",
            duration_ms=duration_ms,
            additional_data={"offer_id": offer.id, "product_count": len(offer_data.products)}
        )
        logger.info(
            "Offer created successfully",
            offer_id=offer.id,
            duration_ms=duration_ms,
            request_id=request_id
        )
        return OfferRead.model_validate(offer)

    except (OfferValidationError, OfferConflictError) as e:
        logger.warning("Offer creation rejected", title=offer_data.title, reason=str(e), request_id=request_id)
        raise _to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(
            "Offer creation failed with unexpected error",
            title=offer_data.title,
            error=str(e),
            request_id=request_id,
            exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during offer creation"
        )


@router.get(
    "/",
    response_model=List[OfferRead],
    summary="List offers"
)
async def list_offers(
    request: Request,
    response: Response,
    search: Optional[str] = Query(None, description="Filter by title"),
    limit: int = Query(50, ge=1, le=500),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db)
) -> List[OfferRead]:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    try:
        offers, total = offer_service.list_offers(db, skip=skip, limit=limit, search=search)
        response.headers["X-Total-Count"] = str(total)

        duration_ms = (time.time() - start_time) * 1000
        log_performance(
            operation="list_offers",
            duration_ms=duration_ms,
            additional_data={"offers_returned": len(offers), "total": total}
        )
        return [OfferRead.model_validate(o) for o in offers]

    except Exception as e:
        logger.error("Offer list failed", error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error while listing offers"
        )


@router.get(
    "/{offer_id}",
    response_model=OfferRead,
    summary="Get offer"
)
async def get_offer(
    offer_id: int,
    db: Session = Depends(get_db)
) -> OfferRead:
    try:
        return OfferRead.model_validate(offer_service.get_offer(db, offer_id))
    except OfferNotFoundError as e:
        raise _to_http(e)


@router.put(
    "/{offer_id}",
    response_model=OfferRead,
    summary="Update offer",
    description="Replace an offer and reschedule its start and end"
)
async def update_offer(
    offer_id: int,
    offer_data: OfferUpdate,
    request: Request,
    db: Session = Depends(get_db),
    scheduler: OfferScheduler = Depends(get_scheduler)
) -> OfferRead:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info("Offer update started", offer_id=offer_id, request_id=request_id)

    try:
        offer = offer_service.update_offer(db, offer_id, offer_data, scheduler)
        duration_ms = (time.time() - start_time) * 1000
        log_performance(operation="update_offer", duration_ms=duration_ms, additional_data={"offer_id": offer_id})
        return OfferRead.model_validate(offer)

    except (OfferValidationError, OfferConflictError, OfferNotFoundError) as e:
        logger.warning("Offer update rejected", offer_id=offer_id, reason=str(e), request_id=request_id)
        raise _to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Offer update failed", offer_id=offer_id, error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during offer update"
        )


@router.delete(
    "/{offer_id}",
    response_model=ResponseBase,
    summary="Delete offer"
)
async def delete_offer(
    offer_id: int,
    request: Request,
    check_usage: bool = Query(False, description="Also clear the products' discount type and amount"),
    db: Session = Depends(get_db),
    scheduler: OfferScheduler = Depends(get_scheduler)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        offer_service.delete_offer(db, offer_id, scheduler, check_usage=check_usage)
    except OfferNotFoundError as e:
        raise _to_http(e)
    except Exception as e:
        logger.error("Offer delete failed", offer_id=offer_id, error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during offer delete"
        )
    logger.info("Offer deleted", offer_id=offer_id, check_usage=check_usage, request_id=request_id)
    return ResponseBase(message="Offer deleted", data={"offer_id": offer_id})


@router.post(
    "/bulk-delete",
    response_model=ResponseBase,
    summary="Delete several offers"
)
async def bulk_delete_offers(
    payload: OfferBulkDelete,
    request: Request,
    db: Session = Depends(get_db),
    scheduler: OfferScheduler = Depends(get_scheduler)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        deleted = offer_service.delete_offers(db, payload.ids, scheduler, check_usage=payload.check_usage)
    except Exception as e:
        logger.error("Offer bulk delete failed", ids=payload.ids, error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during offer delete"
        )
    return ResponseBase(message=f"{deleted} offer(s) deleted", data={"deleted": deleted})
