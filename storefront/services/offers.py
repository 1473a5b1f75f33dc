"""Offer lifecycle: create / update / delete and the schedule decisions they drive.

On create and update the end instant must lie in the future, otherwise the
request is rejected before anything is written. The end timer is always
scheduled; the start mutation is applied synchronously when the start
instant is already past, otherwise the start timer is scheduled. Update and
delete cancel the offer's outstanding schedules first, keyed by offer id so
other offers' timers are untouched. Slug clashes are rejected before that
cancel; a create whose scheduling fails is removed again.
"""
from __future__ import annotations

import random
import re
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.jobs.scheduler import OfferScheduler
from storefront.models.db import Offer
from storefront.models.schemas.offers import OfferCreate, OfferUpdate
from storefront.services.product_state import apply_offer_start, reset_products_on_offer_delete
from storefront.utils import date_difference, ensure_utc, get_logger, is_future, log_business_event

logger = get_logger(__name__)

EXPIRED_OFFER_MESSAGE = "Data can not be added. Expire date is wrong"
SLUG_CONFLICT_MESSAGE = "Slug Must be Unique"
SLUG_SALT_ATTEMPTS = 10


class OfferValidationError(ValueError):
    pass


class OfferNotFoundError(LookupError):
    pass


class OfferConflictError(ValueError):
    pass


def transform_to_slug(value: str, salt: bool = False) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "-", value.strip()).lower()
    return f"{slug}-{random.randint(1, 100)}" if salt else slug


def _slug_taken(db: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
    query = select(Offer.id).where(Offer.slug == slug)
    if exclude_id is not None:
        query = query.where(Offer.id != exclude_id)
    return db.scalar(query) is not None


def _salted_slug(db: Session, title: str, offer_id: int) -> str:
    for _ in range(SLUG_SALT_ATTEMPTS):
        candidate = transform_to_slug(title, salt=True)
        if not _slug_taken(db, candidate, exclude_id=offer_id):
            return candidate
    raise OfferConflictError(SLUG_CONFLICT_MESSAGE)


def _validate_window(start: datetime, end: datetime, now: datetime) -> None:
    if date_difference(now, end, "seconds") <= 0:
        raise OfferValidationError(EXPIRED_OFFER_MESSAGE)
    if date_difference(start, end, "seconds") <= 0:
        raise OfferValidationError("Offer end must be after its start")


def _schedule_offer(db: Session, scheduler: OfferScheduler, offer: Offer, now: datetime) -> dict[str, Any]:
    start = ensure_utc(offer.start_date_time)  # type: ignore[arg-type]
    end = ensure_utc(offer.end_date_time)  # type: ignore[arg-type]
    products = list(offer.products or [])
    offer_id = offer.id

    scheduler.schedule_end(True, offer_id, end, products, start=start, end=end)

    if not is_future(start, now):
        report = apply_offer_start(db, products, start=start, end=end)
        logger.info("Offer start applied immediately", offer_id=offer_id, applied=len(report.applied))
        return {"started": True, "start_report": report.as_dict()}

    scheduler.schedule_start(True, offer_id, start, products, start=start, end=end)
    return {"started": False, "start_report": None}


def create_offer(
    db: Session,
    payload: OfferCreate,
    scheduler: OfferScheduler,
    *,
    now: Optional[datetime] = None,
) -> Offer:
    now = ensure_utc(now) if now is not None else scheduler.now()
    _validate_window(payload.start_date_time, payload.end_date_time, now)

    slug = transform_to_slug(payload.title)
    if _slug_taken(db, slug):
        raise OfferConflictError(SLUG_CONFLICT_MESSAGE)

    offer = Offer(
        title=payload.title,
        slug=slug,
        description=payload.description,
        banner_image=payload.banner_image,
        start_date_time=ensure_utc(payload.start_date_time),
        end_date_time=ensure_utc(payload.end_date_time),
        products=[p.to_document() for p in payload.products],
    )
    db.add(offer)
    db.commit()
    db.refresh(offer)

    try:
        outcome = _schedule_offer(db, scheduler, offer, now)
    except Exception as e:
        logger.error("Offer scheduling failed; removing the new offer", offer_id=offer.id, error=str(e), exc_info=True)
        db.rollback()
        scheduler.cancel_offer(offer.id)
        db.delete(offer)
        db.commit()
        raise
    log_business_event(
        "offer_created",
        {"slug": slug, "products": len(payload.products), "started": outcome["started"]},
        offer_id=offer.id,
    )
    return offer


def update_offer(
    db: Session,
    offer_id: int,
    payload: OfferUpdate,
    scheduler: OfferScheduler,
    *,
    now: Optional[datetime] = None,
) -> Offer:
    now = ensure_utc(now) if now is not None else scheduler.now()
    offer = get_offer(db, offer_id)
    _validate_window(payload.start_date_time, payload.end_date_time, now)

    if payload.slug:
        if _slug_taken(db, payload.slug, exclude_id=offer.id):
            raise OfferConflictError(SLUG_CONFLICT_MESSAGE)
        slug = payload.slug
    elif payload.title != offer.title:
        slug = _salted_slug(db, payload.title, offer.id)
    else:
        slug = offer.slug

    # Supersede the old schedule before computing the new one
    scheduler.cancel_offer(offer.id)

    offer.slug = slug
    offer.title = payload.title
    offer.description = payload.description
    offer.banner_image = payload.banner_image
    offer.start_date_time = ensure_utc(payload.start_date_time)
    offer.end_date_time = ensure_utc(payload.end_date_time)
    offer.products = [p.to_document() for p in payload.products]
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Offer update rejected by the database; restoring its schedule", offer_id=offer_id, error=str(e))
        _schedule_offer(db, scheduler, get_offer(db, offer_id), now)
        raise OfferConflictError(SLUG_CONFLICT_MESSAGE) from e
    db.refresh(offer)

    outcome = _schedule_offer(db, scheduler, offer, now)
    log_business_event("offer_updated", {"started": outcome["started"]}, offer_id=offer.id)
    return offer


def delete_offer(
    db: Session,
    offer_id: int,
    scheduler: OfferScheduler,
    *,
    check_usage: bool = False,
) -> None:
    """Delete one offer, cancel its schedules and reset its products' discount window."""
    offer = get_offer(db, offer_id)
    products = list(offer.products or [])

    scheduler.cancel_offer(offer.id)
    db.delete(offer)
    db.commit()

    reset_products_on_offer_delete(db, products, clear_amounts=check_usage)
    log_business_event("offer_deleted", {"check_usage": check_usage}, offer_id=offer_id)


def delete_offers(
    db: Session,
    ids: list[int],
    scheduler: OfferScheduler,
    *,
    check_usage: bool = False,
) -> int:
    """Bulk delete; unknown ids are ignored. Returns how many offers were removed."""
    offers = db.scalars(select(Offer).where(Offer.id.in_(ids))).all()
    products: list[dict[str, Any]] = []
    for offer in offers:
        scheduler.cancel_offer(offer.id)
        products.extend(offer.products or [])
        db.delete(offer)
    db.commit()

    reset_products_on_offer_delete(db, products, clear_amounts=check_usage)
    log_business_event("offers_deleted", {"count": len(offers), "check_usage": check_usage})
    return len(offers)


def get_offer(db: Session, offer_id: int) -> Offer:
    offer = db.get(Offer, offer_id)
    if offer is None:
        raise OfferNotFoundError(f"Offer {offer_id} not found")
    return offer


def list_offers(
    db: Session,
    *,
    skip: int = 0,
    limit: int = 50,
    search: Optional[str] = None,
) -> tuple[list[Offer], int]:
    query = select(Offer)
    count_query = select(func.count(Offer.id))
    if search:
        pattern = f"%{search}%"
        query = query.where(Offer.title.ilike(pattern))
        count_query = count_query.where(Offer.title.ilike(pattern))
    total = int(db.scalar(count_query) or 0)
    offers = db.scalars(query.order_by(Offer.created_at.desc(), Offer.id.desc()).offset(skip).limit(limit)).all()
    return list(offers), total


__all__ = [
    "OfferValidationError",
    "OfferNotFoundError",
    "OfferConflictError",
    "EXPIRED_OFFER_MESSAGE",
    "SLUG_CONFLICT_MESSAGE",
    "transform_to_slug",
    "create_offer",
    "update_offer",
    "delete_offer",
    "delete_offers",
    "get_offer",
    "list_offers",
]
