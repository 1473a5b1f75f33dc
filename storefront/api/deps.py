"""
Dependencies for database sessions, the offer scheduler and common validations.
"""
from typing import Generator
from fastapi import HTTPException, Request, status
from sqlalchemy.orm import Session
from storefront.database import SessionLocal
from storefront.jobs.scheduler import OfferScheduler
from storefront.utils import get_logger

logger = get_logger(__name__)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


def get_scheduler(request: Request) -> OfferScheduler:
    """Return the scheduler built during application startup."""
    scheduler = getattr(request.app.state, "offer_scheduler", None)
    if scheduler is None:
        logger.error("Offer scheduler requested before startup completed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Offer scheduler not initialized"
        )
    return scheduler
