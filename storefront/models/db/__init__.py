from .products import Product
from .offers import Offer
from .job_records import ScheduledJob
from .enums import OfferPhase, DiscountType, FireOutcome

__all__ = [
    "Product",
    "Offer",
    "ScheduledJob",
    "OfferPhase",
    "DiscountType",
    "FireOutcome",
]
