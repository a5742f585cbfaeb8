"""
Engagement requests between startups and advisors.
"""

from .models import (
    EngagementStatus, TERMINAL_STATUSES, EngagementDecision, EngagementTransition,
    DenialReason, EngagementRequest, EngagementActor, TransitionResult,
    ExpirySweepResult, CreateEngagementRequest, CancelEngagementRequest,
    RespondEngagementRequest, EngagementRequestModel, TransitionResponse,
    ExpirySweepResponse, EngagementRequestListResponse
)
from .store import RequestStore, InMemoryRequestStore
from .prep_rooms import PrepRoomProvisioner, LocalPrepRoomProvisioner
from .machine import EngagementRequestMachine, DEFAULT_EXPIRY_WINDOW
