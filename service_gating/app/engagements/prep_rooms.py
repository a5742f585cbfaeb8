"""
Prep room provisioning contract.

Prep rooms are created by a downstream collaborator when a request is
accepted; the state machine only records the returned reference.
"""

import uuid
from abc import ABC, abstractmethod

from shared.logging import get_logger
from .models import EngagementRequest


class PrepRoomProvisioner(ABC):

    @abstractmethod
    async def create_prep_room(self, request: EngagementRequest) -> str:
        """Create a room for an accepted request and return its id."""

    @abstractmethod
    async def discard_prep_room(self, room_id: str) -> None:
        """Release a room whose acceptance did not go through."""


class LocalPrepRoomProvisioner(PrepRoomProvisioner):
    """Mints opaque room ids without a backing service."""

    def __init__(self):
        self.logger = get_logger("gating.engagements.prep_rooms")
        self.discarded = set()

    async def create_prep_room(self, request: EngagementRequest) -> str:
        room_id = str(uuid.uuid4())
        self.logger.info("Prep room reserved", request_id=request.id, room_id=room_id)
        return room_id

    async def discard_prep_room(self, room_id: str) -> None:
        self.discarded.add(room_id)
        self.logger.info("Prep room discarded", room_id=room_id)
