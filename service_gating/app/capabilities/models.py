"""
Capability rule data models.
"""

from typing import Optional, Union
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from ..organizations.models import OrganizationType, VerificationStatus


class Capability(str, Enum):
    """Named permissions gated by organization type and verification."""
    ADVISOR_INTRO_SEND = "advisor_intro_send"
    INVESTOR_INTRO_RECEIVE = "investor_intro_receive"
    INVESTOR_INTRO_ACCEPT = "investor_intro_accept"


class CapabilityGateReason(str, Enum):
    """Why a capability was granted or denied."""
    OK = "ok"
    MISSING_MEMBERSHIP = "missing_membership"
    UNKNOWN_CAPABILITY = "unknown_capability"
    WRONG_ORG_TYPE = "wrong_org_type"
    VERIFICATION_REQUIRED = "verification_required"


@dataclass(frozen=True)
class CapabilityRule:
    """One row of the capability rule table."""
    capability: Capability
    organization_type: OrganizationType
    verification_status: VerificationStatus
    description: str


@dataclass(frozen=True)
class CapabilityGateResult:
    """Verdict of a capability check."""
    capability: Union[Capability, str]
    allowed: bool
    reason: CapabilityGateReason
    message: str
    required_organization_type: Optional[OrganizationType] = None
    organization_type: Optional[OrganizationType] = None
    verification_status: Optional[VerificationStatus] = None


class CapabilityCheckResponse(BaseModel):
    """Response model for a capability check."""
    capability: str = Field(..., description="Capability key")
    allowed: bool = Field(..., description="Whether the capability is granted")
    reason: CapabilityGateReason = Field(..., description="Decision reason")
    message: str = Field(..., description="Human-readable explanation")
    required_organization_type: Optional[OrganizationType] = None
    organization_type: Optional[OrganizationType] = None
    verification_status: Optional[VerificationStatus] = None

    @classmethod
    def from_result(cls, result: CapabilityGateResult) -> "CapabilityCheckResponse":
        capability = result.capability
        return cls(
            capability=capability.value if isinstance(capability, Capability) else str(capability),
            allowed=result.allowed,
            reason=result.reason,
            message=result.message,
            required_organization_type=result.required_organization_type,
            organization_type=result.organization_type,
            verification_status=result.verification_status,
        )
