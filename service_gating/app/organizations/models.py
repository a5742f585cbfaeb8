"""
Organization and membership data models.
"""

from typing import Optional, FrozenSet
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..timeutils import utcnow


class OrganizationType(str, Enum):
    """Organization kinds in a workspace."""
    STARTUP = "startup"
    INVESTOR = "investor"
    ADVISOR = "advisor"


class VerificationStatus(str, Enum):
    """Verification review status, set by an external review process."""
    UNVERIFIED = "unverified"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MemberRole(str, Enum):
    """Organization member roles."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class MembershipStatus(str, Enum):
    """Membership lifecycle status."""
    PENDING = "pending"
    ACTIVE = "active"
    LEFT = "left"
    REMOVED = "removed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Organization:
    """Organization identity and verification state."""
    id: str
    type: OrganizationType
    name: str
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    location: Optional[str] = None
    logo_url: Optional[str] = None
    industry_tags: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Membership:
    """A user's membership in an organization."""
    user_id: str
    org_id: str
    member_role: MemberRole = MemberRole.MEMBER
    status: MembershipStatus = MembershipStatus.ACTIVE
    joined_at: datetime = field(default_factory=utcnow)


def normalize_verification_status(value: Optional[str]) -> VerificationStatus:
    """Coerce a stored status string; anything unrecognised is unverified."""
    if not isinstance(value, str):
        return VerificationStatus.UNVERIFIED
    try:
        return VerificationStatus(value.strip().lower())
    except ValueError:
        return VerificationStatus.UNVERIFIED
