"""
Utilities package initialization.
"""
from .logger import get_logger, log_business_event, log_performance, setup_logging
from .time import utc_now, ensure_utc, date_difference, is_future

__all__ = [
    "get_logger",
    "log_business_event",
    "log_performance",
    "setup_logging",
    "utc_now",
    "ensure_utc",
    "date_difference",
    "is_future",
]
