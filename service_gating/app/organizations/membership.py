"""
Primary membership resolution.
"""

from typing import Iterable, Optional

from .models import Membership, MembershipStatus


def resolve_primary_membership(memberships: Iterable[Membership]) -> Optional[Membership]:
    """Pick the membership used for gating.

    The primary membership is the earliest-joined active one; ties on
    ``joined_at`` are broken by ``org_id`` so the choice is stable across
    loads. Pending, departed and removed memberships never gate anything.
    """
    active = [m for m in memberships if m.status == MembershipStatus.ACTIVE]
    if not active:
        return None
    return min(active, key=lambda m: (m.joined_at, m.org_id))
