"""
Billing catalog, subscription and usage data models.
"""

from typing import Optional, List
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..organizations.models import OrganizationType


class BillingInterval(str, Enum):
    """Subscription billing intervals."""
    MONTHLY = "monthly"
    ANNUAL = "annual"


class SubscriptionStatus(str, Enum):
    """Opaque payment-provider subscription status."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"
    CANCELED = "canceled"
    PAUSED = "paused"


# Only these statuses grant the subscribed plan; everything else falls back to freemium
ENTITLED_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})


class MeteredFeature(str, Enum):
    """Plan entitlements with a per-period usage cap."""
    CONSULTANT_REQUESTS = "consultant_requests_per_month"
    ADVISOR_PROPOSALS = "proposals_per_month"
    INVESTOR_PROFILE_VIEWS = "full_profile_views_per_month"
    DATA_ROOM_DOCUMENTS = "data_room_documents_limit"


FEATURE_LABELS = {
    MeteredFeature.CONSULTANT_REQUESTS: "consultant requests",
    MeteredFeature.ADVISOR_PROPOSALS: "advisor proposals",
    MeteredFeature.INVESTOR_PROFILE_VIEWS: "full startup profile views",
    MeteredFeature.DATA_ROOM_DOCUMENTS: "data room documents",
}


class FeatureGateReason(str, Enum):
    """Why a metered feature was granted or denied."""
    OK = "ok"
    MISSING_PLAN = "missing_plan"
    MISSING_PLAN_DEFINITION = "missing_plan_definition"
    MISSING_FEATURE = "missing_feature"
    LIMIT_REACHED = "limit_reached"


@dataclass(frozen=True)
class PlanFeature:
    """A plan entitlement; ``limit`` of None means unlimited."""
    key: str
    limit: Optional[int] = None
    label: Optional[str] = None


@dataclass(frozen=True)
class PlanPricing:
    """Plan price points in minor currency units."""
    currency: str = "usd"
    monthly_price_cents: Optional[int] = None
    annual_price_cents: Optional[int] = None


@dataclass(frozen=True)
class BillingPlan:
    """Immutable catalog entry for one organization-type segment."""
    plan_code: str
    tier: int
    display_name: str
    segment: OrganizationType
    features: List[PlanFeature] = field(default_factory=list)
    pricing: PlanPricing = field(default_factory=PlanPricing)
    is_default: bool = False


@dataclass(frozen=True)
class UsageCounter:
    """Usage of one feature within one billing period."""
    feature_key: str
    used: int
    period_start: datetime
    period_end: datetime


@dataclass
class SubscriptionSnapshot:
    """The live subscription of an organization."""
    org_id: str
    plan_code: str
    status: SubscriptionStatus
    billing_interval: BillingInterval
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False
    usage: List[UsageCounter] = field(default_factory=list)


@dataclass(frozen=True)
class FeatureGateResult:
    """Verdict of a metered feature check."""
    feature_key: str
    allowed: bool
    unlimited: bool
    limit: Optional[int]
    remaining: Optional[int]
    used: int
    reason: FeatureGateReason
    message: Optional[str] = None

    def __post_init__(self):
        expected = self.unlimited or (self.remaining is not None and self.remaining > 0)
        if self.allowed != expected:
            raise ValueError(
                f"Inconsistent feature gate result for {self.feature_key}: "
                f"allowed={self.allowed} unlimited={self.unlimited} remaining={self.remaining}"
            )


class FeatureGateResponse(BaseModel):
    """Response model for a metered feature check."""
    feature_key: str = Field(..., description="Metered feature key")
    allowed: bool = Field(..., description="Whether another use is permitted")
    unlimited: bool = Field(..., description="Whether the plan has no cap")
    limit: Optional[int] = Field(None, description="Per-period cap")
    remaining: Optional[int] = Field(None, description="Uses left this period")
    used: int = Field(0, description="Uses consumed this period")
    reason: FeatureGateReason = Field(..., description="Decision reason")
    message: Optional[str] = Field(None, description="Upgrade prompt or status")

    @classmethod
    def from_result(cls, result: FeatureGateResult) -> "FeatureGateResponse":
        return cls(
            feature_key=result.feature_key,
            allowed=result.allowed,
            unlimited=result.unlimited,
            limit=result.limit,
            remaining=result.remaining,
            used=result.used,
            reason=result.reason,
            message=result.message,
        )
