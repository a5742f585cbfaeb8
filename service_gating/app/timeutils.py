"""
Clock and billing period helpers.
"""

from datetime import datetime, timezone
from typing import Tuple


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def calendar_month_period(now: datetime) -> Tuple[datetime, datetime]:
    """The calendar month containing ``now``, as a half-open interval."""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end
