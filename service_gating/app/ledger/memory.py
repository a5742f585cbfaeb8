"""
In-process usage ledger.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from shared.logging import get_logger
from ..billing.models import UsageCounter
from .base import UsageLedger, ConsumeResult


class InMemoryUsageLedger(UsageLedger):
    """Usage ledger guarded by a single asyncio lock."""

    def __init__(self):
        self.logger = get_logger("gating.ledger.memory")
        self._lock = asyncio.Lock()
        # (org_id, feature_key, period_start, period_end) -> used
        self._counters: Dict[Tuple[str, str, datetime, datetime], int] = {}

    async def usage(self, org_id: str) -> List[UsageCounter]:
        async with self._lock:
            return [
                UsageCounter(feature_key=feature, used=used, period_start=start, period_end=end)
                for (org, feature, start, end), used in self._counters.items()
                if org == org_id
            ]

    async def consume(
        self,
        org_id: str,
        feature_key: str,
        period_start: datetime,
        period_end: datetime,
        limit: Optional[int],
        amount: int = 1,
    ) -> ConsumeResult:
        key = (org_id, feature_key, period_start, period_end)
        async with self._lock:
            used = self._counters.get(key, 0)
            if limit is not None and used + amount > limit:
                self.logger.info("Usage limit reached", org_id=org_id, feature_key=feature_key, used=used, limit=limit)
                return ConsumeResult(consumed=False, used=used)
            used += amount
            self._counters[key] = used
            return ConsumeResult(consumed=True, used=used)

    async def refund(
        self,
        org_id: str,
        feature_key: str,
        period_start: datetime,
        period_end: datetime,
        amount: int = 1,
    ) -> int:
        key = (org_id, feature_key, period_start, period_end)
        async with self._lock:
            used = max(0, self._counters.get(key, 0) - amount)
            self._counters[key] = used
            return used
