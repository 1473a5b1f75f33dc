"""Central Enum definitions for scheduling states.

Replace scattered string literals so the scheduler, the stores and the
API schemas agree on the same values.
"""
from __future__ import annotations
import enum


class OfferPhase(str, enum.Enum):
    START = "start"
    END = "end"


class DiscountType(int, enum.Enum):
    PERCENTAGE = 1
    CASH = 2


class FireOutcome(str, enum.Enum):
    APPLIED = "APPLIED"
    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    DEAD_LETTERED = "DEAD_LETTERED"
    SUPERSEDED = "SUPERSEDED"


__all__ = [
    "OfferPhase",
    "DiscountType",
    "FireOutcome",
]
