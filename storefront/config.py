"""Core application configuration & tunable scheduling rules.

Everything that may need adjusting without touching service logic lives here:
offer job names, the reference timezone for date arithmetic, timer queue
limits, retry/backoff policy for fired timers and the job record backend.
Values are module constants read from the environment once at import time
(mutable dicts so tests can monkeypatch individual keys).
"""
from __future__ import annotations

import os


def _env_flag(name: str, default: str = "false") -> bool:
	return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


# ------------------------------- Offer schedule ---------------------------- #
OFFER_SCHEDULE_SETTINGS: dict[str, str | int] = {
	# Logical job names persisted on every JobRecord. Different offer kinds can
	# reuse the scheduler by running with different names.
	"start_job_name": os.getenv("OFFER_SCHEDULE_ON_START", "Promo_Offer_Schedule_On_Start"),
	"end_job_name": os.getenv("OFFER_SCHEDULE_ON_END", "Promo_Offer_Schedule_On_End"),
	"collection_name": os.getenv("OFFER_COLLECTION_NAME", "offer"),
	# Timezone used when comparing instants (date-only values, day/week units)
	"reference_timezone": os.getenv("REFERENCE_TIMEZONE", "Asia/Dhaka"),
	# How many fire results are kept in memory for inspection
	"fire_history_size": int(os.getenv("OFFER_FIRE_HISTORY_SIZE", "200")),
	# How many dead-lettered fires are kept for inspection
	"dead_letter_size": int(os.getenv("OFFER_DEAD_LETTER_SIZE", "200")),
}

# --------------------------------- Timers --------------------------------- #
TIMER_SETTINGS: dict[str, int | float] = {
	"warn_depth": 1000,
	"max_in_memory": 5000,
	"poll_timeout_seconds": float(os.getenv("SCHEDULER_POLL_TIMEOUT", "5")),
}

# --------------------------------- Backoff -------------------------------- #
BACKOFF_POLICY: dict[str, int | float] = {
	"base_seconds": 1,
	"factor": 2,          # Exponential factor
	"max_seconds": 60,
	"jitter_pct": 0.10,   # +/-10% jitter
}

# ------------------------------- Fire retries ------------------------------ #
FIRE_RETRY_POLICY: dict[str, int] = {
	# Total attempts for one fired timer before it is dead-lettered. The
	# JobRecord is kept so the next startup reconciliation picks it up again.
	"max_attempts": int(os.getenv("OFFER_FIRE_MAX_ATTEMPTS", "3")),
}

# ------------------------------- Job records ------------------------------- #
JOB_STORE_SETTINGS: dict[str, str | float | bool] = {
	"use_redis": _env_flag("USE_REDIS"),
	"redis_url": os.getenv("REDIS_URL", "redis://localhost:6379/0"),
	"redis_records_key": "storefront:job_records",
	"redis_seq_key": "storefront:job_records:seq",
	"redis_health_check_timeout": 2.0,
}

__all__ = [
	"OFFER_SCHEDULE_SETTINGS",
	"TIMER_SETTINGS",
	"BACKOFF_POLICY",
	"FIRE_RETRY_POLICY",
	"JOB_STORE_SETTINGS",
]
