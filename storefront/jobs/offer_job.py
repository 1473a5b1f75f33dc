"""Payload carried by one armed offer timer."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from storefront.models.db.enums import OfferPhase


@dataclass(slots=True)
class OfferPhaseJob:
    offer_id: int
    phase: OfferPhase
    job_name: str
    deadline: datetime
    job_record_id: Optional[str]
    # Snapshot of the offer's product refs at schedule time
    products: list[dict[str, Any]] = field(default_factory=list)
    # Offer window, written onto products when the start phase applies
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    attempt: int = 1

    def key(self) -> tuple[str, str]:
        """Timer key: one live timer per (offer, job name)."""
        return timer_key(self.offer_id, self.job_name)


def timer_key(offer_id: int | str, job_name: str) -> tuple[str, str]:
    return (str(offer_id), job_name)


__all__ = ["OfferPhaseJob", "timer_key"]
