from .base import ResponseBase
from .offers import ProductRef, OfferCreate, OfferUpdate, OfferRead, OfferBulkDelete
from .products import ProductCreate, ProductRead
from .jobs import JobRecordRead, FireResultRead, SchedulerStatus

__all__ = [
    # Base
    "ResponseBase",

    # Offers
    "ProductRef",
    "OfferCreate",
    "OfferUpdate",
    "OfferRead",
    "OfferBulkDelete",

    # Products
    "ProductCreate",
    "ProductRead",

    # Scheduler
    "JobRecordRead",
    "FireResultRead",
    "SchedulerStatus",
]
