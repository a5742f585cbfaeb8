"""
Billing package: plan catalog types and metered feature gates.

``quota`` (ledger-backed consumption) is imported from its module directly
since it depends on the ledger package, which depends on these models.
"""

from .models import (
    BillingInterval, SubscriptionStatus, MeteredFeature, FeatureGateReason,
    PlanFeature, PlanPricing, BillingPlan, UsageCounter, SubscriptionSnapshot,
    FeatureGateResult, FeatureGateResponse, ENTITLED_SUBSCRIPTION_STATUSES
)
from .plans import (
    SEGMENT_FEATURES, find_plan, default_plan, plans_for_segment,
    resolve_effective_subscription
)
from .feature_gates import (
    MeteredFeatureGate, resolve_metered_feature_gate, resolve_consultant_request_gate,
    resolve_advisor_proposal_gate, resolve_investor_profile_view_gate,
    resolve_data_room_documents_gate
)
