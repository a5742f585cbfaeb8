"""
Usage ledger contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..billing.models import UsageCounter


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of an atomic check-and-increment."""
    consumed: bool
    used: int


class UsageLedger(ABC):
    """Per-organization, per-feature, per-period usage counters.

    ``consume`` is the only way usage grows and must be atomic: the limit
    comparison and the increment happen as one step, so two concurrent
    callers can never both take the last remaining unit.
    """

    @abstractmethod
    async def usage(self, org_id: str) -> List[UsageCounter]:
        """All counters recorded for an organization."""

    @abstractmethod
    async def consume(
        self,
        org_id: str,
        feature_key: str,
        period_start: datetime,
        period_end: datetime,
        limit: Optional[int],
        amount: int = 1,
    ) -> ConsumeResult:
        """Increment usage unless it would exceed ``limit`` (None = no cap)."""

    @abstractmethod
    async def refund(
        self,
        org_id: str,
        feature_key: str,
        period_start: datetime,
        period_end: datetime,
        amount: int = 1,
    ) -> int:
        """Give back previously consumed units; never drops below zero."""

    async def start(self):
        """Open connections. No-op by default."""

    async def stop(self):
        """Close connections. No-op by default."""

    async def health_check(self) -> bool:
        return True
