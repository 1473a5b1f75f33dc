"""Exponential backoff with jitter, used to re-arm timer fires that failed."""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from storefront.config import BACKOFF_POLICY


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    base_seconds: float = 1.0
    factor: float = 2.0
    max_seconds: float = 60.0
    jitter_pct: float = 0.10

    @classmethod
    def from_settings(cls) -> "BackoffPolicy":
        return cls(
            base_seconds=float(BACKOFF_POLICY["base_seconds"]),
            factor=float(BACKOFF_POLICY["factor"]),
            max_seconds=float(BACKOFF_POLICY["max_seconds"]),
            jitter_pct=float(BACKOFF_POLICY["jitter_pct"]),
        )

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based), capped then jittered."""
        attempt = max(attempt, 1)
        delay = min(self.base_seconds * (self.factor ** (attempt - 1)), self.max_seconds)
        if self.jitter_pct > 0:
            spread = delay * self.jitter_pct
            delay = random.uniform(delay - spread, delay + spread)
        return max(delay, 0.0)


def compute_backoff_seconds(attempt: int, *, base: Optional[float] = None, factor: Optional[float] = None, max_seconds: Optional[float] = None, jitter_pct: Optional[float] = None) -> float:
    """Backoff delay using configured defaults for any argument left out."""
    policy = BackoffPolicy.from_settings()
    overrides = {
        "base_seconds": base,
        "factor": factor,
        "max_seconds": max_seconds,
        "jitter_pct": jitter_pct,
    }
    policy = BackoffPolicy(**{
        name: float(value) if value is not None else getattr(policy, name)
        for name, value in overrides.items()
    })
    return policy.delay(attempt)


__all__ = ["BackoffPolicy", "compute_backoff_seconds"]
