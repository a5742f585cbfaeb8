"""
Plan catalog lookups and effective plan resolution.
"""

from typing import Dict, List, Optional, Sequence

from ..organizations.models import OrganizationType
from .models import (
    BillingPlan, SubscriptionSnapshot, MeteredFeature, ENTITLED_SUBSCRIPTION_STATUSES
)


# Metered features that matter to each organization type
SEGMENT_FEATURES: Dict[OrganizationType, List[MeteredFeature]] = {
    OrganizationType.STARTUP: [
        MeteredFeature.CONSULTANT_REQUESTS,
        MeteredFeature.DATA_ROOM_DOCUMENTS,
    ],
    OrganizationType.ADVISOR: [
        MeteredFeature.ADVISOR_PROPOSALS,
    ],
    OrganizationType.INVESTOR: [
        MeteredFeature.INVESTOR_PROFILE_VIEWS,
    ],
}


def find_plan(plans: Sequence[BillingPlan], plan_code: Optional[str]) -> Optional[BillingPlan]:
    """Find a plan by code, ignoring case and surrounding whitespace."""
    if not plan_code:
        return None
    wanted = plan_code.strip().lower()
    for plan in plans:
        if plan.plan_code.strip().lower() == wanted:
            return plan
    return None


def default_plan(plans: Sequence[BillingPlan]) -> Optional[BillingPlan]:
    """The freemium plan: the one flagged default, else the lowest tier."""
    if not plans:
        return None
    for plan in plans:
        if plan.is_default:
            return plan
    return min(plans, key=lambda p: p.tier)


def plans_for_segment(plans: Sequence[BillingPlan], segment: OrganizationType) -> List[BillingPlan]:
    """Catalog entries for one organization type, cheapest first."""
    return sorted((p for p in plans if p.segment == segment), key=lambda p: p.tier)


def resolve_effective_subscription(
    subscription: Optional[SubscriptionSnapshot],
) -> Optional[SubscriptionSnapshot]:
    """Return the subscription only when its status grants the plan.

    Lapsed subscriptions (past due, canceled, paused, incomplete) are treated
    as absent so gates fall back to the freemium plan's limits.
    """
    if subscription is None:
        return None
    if subscription.status not in ENTITLED_SUBSCRIPTION_STATUSES:
        return None
    return subscription
