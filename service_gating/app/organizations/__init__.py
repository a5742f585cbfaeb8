"""
Organization identity, verification status and memberships.
"""

from .models import (
    Organization, OrganizationType, VerificationStatus, Membership,
    MemberRole, MembershipStatus, normalize_verification_status
)
from .membership import resolve_primary_membership

__all__ = [
    "Organization",
    "OrganizationType",
    "VerificationStatus",
    "Membership",
    "MemberRole",
    "MembershipStatus",
    "normalize_verification_status",
    "resolve_primary_membership",
]
