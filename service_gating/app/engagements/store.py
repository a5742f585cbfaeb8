"""
Engagement request store contract and in-process implementation.
"""

import asyncio
import dataclasses
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from shared.logging import get_logger
from .models import EngagementRequest, EngagementStatus


class RequestStore(ABC):
    """Persistence for engagement requests.

    ``transition`` is a compare-and-swap on status: it updates the row only
    if its current status equals ``expected_status`` and returns the updated
    row, or None when no row matched (missing, or already moved on).
    """

    @abstractmethod
    async def insert(self, request: EngagementRequest) -> EngagementRequest:
        """Persist a new request."""

    @abstractmethod
    async def get(self, request_id: str) -> Optional[EngagementRequest]:
        """Load a request by id."""

    @abstractmethod
    async def transition(
        self,
        request_id: str,
        expected_status: EngagementStatus,
        next_status: EngagementStatus,
        responded_at: Optional[datetime] = None,
        prep_room_id: Optional[str] = None,
        cancellation_reason: Optional[str] = None,
    ) -> Optional[EngagementRequest]:
        """Conditionally move a request to ``next_status``."""

    @abstractmethod
    async def list_stale(self, created_before: datetime) -> List[EngagementRequest]:
        """Requests still sent that were created before the cutoff."""

    @abstractmethod
    async def list_for_org(self, org_id: str) -> List[EngagementRequest]:
        """Requests where the organization is either party, newest first."""

    async def start(self):
        """Open connections. No-op by default."""

    async def stop(self):
        """Close connections. No-op by default."""

    async def health_check(self) -> bool:
        return True


class InMemoryRequestStore(RequestStore):
    """Request store held in a dict behind an asyncio lock."""

    def __init__(self):
        self.logger = get_logger("gating.engagements.store")
        self._lock = asyncio.Lock()
        self._rows: Dict[str, EngagementRequest] = {}

    async def insert(self, request: EngagementRequest) -> EngagementRequest:
        async with self._lock:
            self._rows[request.id] = dataclasses.replace(request)
            return dataclasses.replace(request)

    async def get(self, request_id: str) -> Optional[EngagementRequest]:
        async with self._lock:
            row = self._rows.get(request_id)
            return dataclasses.replace(row) if row else None

    async def transition(
        self,
        request_id: str,
        expected_status: EngagementStatus,
        next_status: EngagementStatus,
        responded_at: Optional[datetime] = None,
        prep_room_id: Optional[str] = None,
        cancellation_reason: Optional[str] = None,
    ) -> Optional[EngagementRequest]:
        async with self._lock:
            row = self._rows.get(request_id)
            if row is None or row.status != expected_status:
                return None
            updated = dataclasses.replace(
                row,
                status=next_status,
                responded_at=responded_at,
                prep_room_id=prep_room_id,
                cancellation_reason=cancellation_reason,
            )
            self._rows[request_id] = updated
            return dataclasses.replace(updated)

    async def list_stale(self, created_before: datetime) -> List[EngagementRequest]:
        async with self._lock:
            return [
                dataclasses.replace(row) for row in self._rows.values()
                if row.status == EngagementStatus.SENT and row.created_at < created_before
            ]

    async def list_for_org(self, org_id: str) -> List[EngagementRequest]:
        async with self._lock:
            rows = [
                dataclasses.replace(row) for row in self._rows.values()
                if org_id in (row.startup_org_id, row.advisor_org_id)
            ]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)
