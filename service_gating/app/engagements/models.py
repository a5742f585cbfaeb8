"""
Engagement request data models.
"""

from typing import Optional, List
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..organizations.models import Organization
from ..capabilities.models import CapabilityGateResult
from ..billing.models import FeatureGateResult


class EngagementStatus(str, Enum):
    """Lifecycle states of an engagement request."""
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({
    EngagementStatus.ACCEPTED,
    EngagementStatus.REJECTED,
    EngagementStatus.CANCELLED,
    EngagementStatus.EXPIRED,
})


class EngagementDecision(str, Enum):
    """Advisor responses to a request."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class EngagementTransition(str, Enum):
    """Operations of the request state machine."""
    CREATE = "create"
    CANCEL = "cancel"
    ACCEPT = "accept"
    REJECT = "reject"
    EXPIRE = "expire"


class DenialReason(str, Enum):
    """Why a transition guard refused an operation."""
    WRONG_ORG_TYPE = "wrong_org_type"
    TARGET_NOT_ADVISOR = "target_not_advisor"
    NOT_REQUEST_PARTY = "not_request_party"
    VERIFICATION_REQUIRED = "verification_required"
    QUOTA_EXHAUSTED = "quota_exhausted"
    NOT_EXPIRED = "not_expired"


@dataclass
class EngagementRequest:
    """A startup's proposal to an advisor organization."""
    id: str
    startup_org_id: str
    advisor_org_id: str
    status: EngagementStatus
    created_at: datetime
    responded_at: Optional[datetime] = None
    prep_room_id: Optional[str] = None
    cancellation_reason: Optional[str] = None


@dataclass(frozen=True)
class EngagementActor:
    """The authenticated user and their primary organization."""
    user_id: str
    organization: Organization


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a state machine operation that did not conflict.

    ``applied`` is False for denials; the request is then returned unchanged
    (or None for a refused create) and ``message`` explains the refusal.
    """
    transition: EngagementTransition
    applied: bool
    request: Optional[EngagementRequest] = None
    denial_reason: Optional[DenialReason] = None
    message: Optional[str] = None
    capability: Optional[CapabilityGateResult] = None
    feature_gate: Optional[FeatureGateResult] = None


@dataclass(frozen=True)
class ExpirySweepResult:
    """Requests moved to expired by one sweep."""
    expired: List[str] = field(default_factory=list)
    skipped: int = 0


class CreateEngagementRequest(BaseModel):
    """Request model for creating an engagement request."""
    advisor_org_id: str = Field(..., min_length=1, description="Target advisor organization")


class CancelEngagementRequest(BaseModel):
    """Request model for cancelling an engagement request."""
    reason: Optional[str] = Field(None, description="Optional cancellation reason")


class RespondEngagementRequest(BaseModel):
    """Request model for an advisor decision."""
    request_id: str = Field(..., min_length=1, description="Engagement request ID")
    decision: EngagementDecision = Field(..., description="accepted or rejected")


class EngagementRequestModel(BaseModel):
    id: str
    startup_org_id: str
    advisor_org_id: str
    status: EngagementStatus
    created_at: datetime
    responded_at: Optional[datetime] = None
    prep_room_id: Optional[str] = None
    cancellation_reason: Optional[str] = None

    @classmethod
    def from_request(cls, r: EngagementRequest) -> "EngagementRequestModel":
        return cls(
            id=r.id,
            startup_org_id=r.startup_org_id,
            advisor_org_id=r.advisor_org_id,
            status=r.status,
            created_at=r.created_at,
            responded_at=r.responded_at,
            prep_room_id=r.prep_room_id,
            cancellation_reason=r.cancellation_reason,
        )


class TransitionResponse(BaseModel):
    """Response model for engagement mutations."""
    success: bool
    transition: EngagementTransition
    request: Optional[EngagementRequestModel] = None
    reason: Optional[DenialReason] = None
    message: Optional[str] = None

    @classmethod
    def from_result(cls, result: TransitionResult) -> "TransitionResponse":
        request = None
        if result.request is not None:
            request = EngagementRequestModel.from_request(result.request)
        return cls(
            success=result.applied,
            transition=result.transition,
            request=request,
            reason=result.denial_reason,
            message=result.message,
        )


class ExpirySweepResponse(BaseModel):
    """Response model for an expiry sweep."""
    expired: List[str]
    expired_count: int
    skipped: int

    @classmethod
    def from_result(cls, result: ExpirySweepResult) -> "ExpirySweepResponse":
        return cls(expired=list(result.expired), expired_count=len(result.expired), skipped=result.skipped)


class EngagementRequestListResponse(BaseModel):
    """Response model for an organization's requests."""
    requests: List[EngagementRequestModel]
    total: int
