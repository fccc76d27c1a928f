"""
Date helpers shared by the billing services.

All timestamps are stored as naive UTC datetimes.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_timestamp(timestamp) -> Optional[datetime]:
    """
    Convert a Stripe unix timestamp (seconds) to a naive UTC datetime.
    Returns None if the timestamp is missing or invalid.
    """
    if timestamp is None or isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError) as e:
        logger.error(f"Error converting timestamp {timestamp}: {e}")
        return None


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() + "Z"
