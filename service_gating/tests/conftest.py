"""
Shared fixtures for gating service tests.
"""

import asyncio
import pytest
from datetime import datetime, timezone

from service_gating.app.organizations.models import (
    Organization, OrganizationType, VerificationStatus, Membership, MembershipStatus
)
from service_gating.app.billing.models import (
    BillingPlan, PlanFeature, BillingInterval, SubscriptionSnapshot, SubscriptionStatus,
    MeteredFeature
)
from service_gating.app.ledger.memory import InMemoryUsageLedger


NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
PERIOD_START = datetime(2025, 3, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2025, 4, 1, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed evaluation time inside the current billing period."""
    return NOW


@pytest.fixture
def startup_plans():
    """Startup plan catalog: freemium default and a paid tier."""
    return [
        BillingPlan(
            plan_code="startup_free",
            tier=0,
            display_name="Startup Free",
            segment=OrganizationType.STARTUP,
            is_default=True,
            features=[
                PlanFeature(MeteredFeature.CONSULTANT_REQUESTS.value, limit=1),
                PlanFeature(MeteredFeature.DATA_ROOM_DOCUMENTS.value, limit=5),
            ],
        ),
        BillingPlan(
            plan_code="startup_growth",
            tier=1,
            display_name="Startup Growth",
            segment=OrganizationType.STARTUP,
            features=[
                PlanFeature(MeteredFeature.CONSULTANT_REQUESTS.value, limit=10),
                PlanFeature(MeteredFeature.DATA_ROOM_DOCUMENTS.value, limit=None),
            ],
        ),
    ]


@pytest.fixture
def advisor_plans():
    """Advisor plan catalog."""
    return [
        BillingPlan(
            plan_code="advisor_free",
            tier=0,
            display_name="Advisor Free",
            segment=OrganizationType.ADVISOR,
            is_default=True,
            features=[PlanFeature(MeteredFeature.ADVISOR_PROPOSALS.value, limit=2)],
        ),
        BillingPlan(
            plan_code="advisor_pro",
            tier=1,
            display_name="Advisor Pro",
            segment=OrganizationType.ADVISOR,
            features=[PlanFeature(MeteredFeature.ADVISOR_PROPOSALS.value, limit=None)],
        ),
    ]


@pytest.fixture
def catalog(startup_plans, advisor_plans):
    return startup_plans + advisor_plans


@pytest.fixture
def startup_org():
    return Organization(
        id="org-startup",
        type=OrganizationType.STARTUP,
        name="Acme Robotics",
        verification_status=VerificationStatus.APPROVED,
    )


@pytest.fixture
def advisor_org():
    return Organization(
        id="org-advisor",
        type=OrganizationType.ADVISOR,
        name="Northstar Advisory",
        verification_status=VerificationStatus.APPROVED,
    )


@pytest.fixture
def pending_advisor_org():
    return Organization(
        id="org-advisor-pending",
        type=OrganizationType.ADVISOR,
        name="Pending Partners",
        verification_status=VerificationStatus.PENDING,
    )


@pytest.fixture
def investor_org():
    return Organization(
        id="org-investor",
        type=OrganizationType.INVESTOR,
        name="Blue Fund",
        verification_status=VerificationStatus.APPROVED,
    )


@pytest.fixture
def subscription_factory():
    """Build subscription snapshots for the March 2025 period."""
    def _make(org_id, plan_code, status=SubscriptionStatus.ACTIVE, usage=None):
        return SubscriptionSnapshot(
            org_id=org_id,
            plan_code=plan_code,
            status=status,
            billing_interval=BillingInterval.MONTHLY,
            current_period_start=PERIOD_START,
            current_period_end=PERIOD_END,
            usage=list(usage or []),
        )
    return _make


@pytest.fixture
def membership_factory():
    """Build memberships, active unless told otherwise."""
    def _make(user_id, org_id, joined_at=None, status=MembershipStatus.ACTIVE):
        return Membership(
            user_id=user_id,
            org_id=org_id,
            status=status,
            joined_at=joined_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
    return _make


class YieldingUsageLedger(InMemoryUsageLedger):
    """In-memory ledger whose reads suspend like a network round trip.

    Concurrent consumers all read usage before any of them increments, so
    only the ledger's atomic consume decides who gets the last unit.
    """

    async def usage(self, org_id):
        rows = await super().usage(org_id)
        await asyncio.sleep(0)
        return rows


@pytest.fixture
def yielding_ledger():
    return YieldingUsageLedger()
