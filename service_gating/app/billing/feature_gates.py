"""
Metered feature gate: plan entitlement + current-period usage -> allow/deny.

The gate is a pure counter comparison. It does not interpret subscription
status; the orchestration layer decides which plan is in effect (see
``plans.resolve_effective_subscription``) and passes None when the
organization should be treated as being on the freemium default.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence, Union

from shared.errors import ConfigurationError
from shared.logging import get_logger
from .models import (
    BillingPlan, PlanFeature, SubscriptionSnapshot, UsageCounter,
    FeatureGateReason, FeatureGateResult, MeteredFeature, FEATURE_LABELS
)
from .plans import find_plan, default_plan


def normalize_feature_key(value: Union[MeteredFeature, str]) -> str:
    """Feature keys compare trimmed and case-insensitively."""
    raw = value.value if isinstance(value, MeteredFeature) else str(value)
    return raw.strip().lower()


def feature_label(feature_key: str) -> str:
    """Human label used in gate messages."""
    try:
        return FEATURE_LABELS[MeteredFeature(feature_key)]
    except ValueError:
        return feature_key.replace("_", " ")


def limit_reached_message(feature_key: str, limit: int) -> str:
    """Upgrade prompt for a feature whose period cap is used up."""
    return (
        f"You have reached your limit of {limit} {feature_label(feature_key)} for this period. "
        f"Upgrade your plan for more."
    )


def count_usage(
    usage: Iterable[UsageCounter],
    feature_key: str,
    as_of: Optional[datetime] = None,
) -> int:
    """Sum usage for a feature, restricted to the period containing ``as_of``."""
    total = 0
    for counter in usage:
        if normalize_feature_key(counter.feature_key) != feature_key:
            continue
        if as_of is not None and not (counter.period_start <= as_of < counter.period_end):
            continue
        total += max(0, int(counter.used))
    return total


class MeteredFeatureGate:
    """Evaluates metered features against a plan catalog.

    Ordinary denials (feature not on the plan, limit reached) are returned
    as results. Catalog defects (no plans, unknown plan code) are returned as
    blocked results too, unless the gate is strict, in which case they raise
    ``ConfigurationError`` so they are caught in development.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self.logger = get_logger("gating.feature_gate")

    def evaluate(
        self,
        feature_key: Union[MeteredFeature, str],
        current_plan: Optional[SubscriptionSnapshot],
        plans: Sequence[BillingPlan],
        usage_rows: Optional[Iterable[UsageCounter]] = None,
        as_of: Optional[datetime] = None,
    ) -> FeatureGateResult:
        """Evaluate one metered feature for an organization."""
        key = normalize_feature_key(feature_key)
        label = feature_label(key)
        if usage_rows is None:
            usage_rows = current_plan.usage if current_plan is not None else []
        usage_rows = list(usage_rows)

        plan = self._resolve_plan(key, label, current_plan, plans)
        if isinstance(plan, FeatureGateResult):
            return plan

        feature = self._find_feature(plan, key)
        if feature is None:
            return self._blocked(
                key, FeatureGateReason.MISSING_FEATURE,
                f"{label.capitalize()} are not included in your current plan. "
                f"Upgrade your plan to unlock them."
            )

        if feature.limit is None:
            return FeatureGateResult(
                feature_key=key,
                allowed=True,
                unlimited=True,
                limit=None,
                remaining=None,
                used=count_usage(usage_rows, key, as_of),
                reason=FeatureGateReason.OK,
                message=f"{label.capitalize()} are unlimited on your current plan.",
            )

        limit = max(0, int(feature.limit))
        used = count_usage(usage_rows, key, as_of)
        remaining = max(0, limit - used)
        if remaining <= 0:
            return FeatureGateResult(
                feature_key=key,
                allowed=False,
                unlimited=False,
                limit=limit,
                remaining=0,
                used=used,
                reason=FeatureGateReason.LIMIT_REACHED,
                message=limit_reached_message(key, limit),
            )

        return FeatureGateResult(
            feature_key=key,
            allowed=True,
            unlimited=False,
            limit=limit,
            remaining=remaining,
            used=used,
            reason=FeatureGateReason.OK,
            message=f"{remaining} {label} remaining this period.",
        )

    def _resolve_plan(
        self,
        key: str,
        label: str,
        current_plan: Optional[SubscriptionSnapshot],
        plans: Sequence[BillingPlan],
    ) -> Union[BillingPlan, FeatureGateResult]:
        if current_plan is None:
            plan = default_plan(plans)
            if plan is None:
                return self._misconfigured(
                    key, FeatureGateReason.MISSING_PLAN,
                    f"No plan was found to validate {label}."
                )
            return plan

        plan = find_plan(plans, current_plan.plan_code)
        if plan is None:
            return self._misconfigured(
                key, FeatureGateReason.MISSING_PLAN_DEFINITION,
                f"Unable to load feature rules for plan {current_plan.plan_code}.",
                plan_code=current_plan.plan_code,
            )
        return plan

    def _find_feature(self, plan: BillingPlan, key: str) -> Optional[PlanFeature]:
        for feature in plan.features:
            if normalize_feature_key(feature.key) == key:
                return feature
        return None

    def _blocked(self, key: str, reason: FeatureGateReason, message: str) -> FeatureGateResult:
        return FeatureGateResult(
            feature_key=key,
            allowed=False,
            unlimited=False,
            limit=None,
            remaining=None,
            used=0,
            reason=reason,
            message=message,
        )

    def _misconfigured(self, key: str, reason: FeatureGateReason, message: str, **details) -> FeatureGateResult:
        self.logger.error("Plan catalog lookup failed", feature_key=key, reason=reason.value, **details)
        if self.strict:
            raise ConfigurationError(message, {"feature_key": key, "reason": reason.value, **details})
        return self._blocked(key, reason, message)


_lenient_gate = MeteredFeatureGate()


def resolve_metered_feature_gate(
    feature_key: Union[MeteredFeature, str],
    current_plan: Optional[SubscriptionSnapshot],
    plans: Sequence[BillingPlan],
    usage_rows: Optional[Iterable[UsageCounter]] = None,
    as_of: Optional[datetime] = None,
    gate: Optional[MeteredFeatureGate] = None,
) -> FeatureGateResult:
    """Evaluate a feature with the given gate (lenient by default)."""
    return (gate or _lenient_gate).evaluate(feature_key, current_plan, plans, usage_rows, as_of)


def resolve_consultant_request_gate(
    current_plan: Optional[SubscriptionSnapshot],
    plans: Sequence[BillingPlan],
    usage_rows: Optional[Iterable[UsageCounter]] = None,
    as_of: Optional[datetime] = None,
    gate: Optional[MeteredFeatureGate] = None,
) -> FeatureGateResult:
    """Startup side: may another consultant request be created."""
    return resolve_metered_feature_gate(
        MeteredFeature.CONSULTANT_REQUESTS, current_plan, plans, usage_rows, as_of, gate
    )


def resolve_advisor_proposal_gate(
    current_plan: Optional[SubscriptionSnapshot],
    plans: Sequence[BillingPlan],
    usage_rows: Optional[Iterable[UsageCounter]] = None,
    as_of: Optional[datetime] = None,
    gate: Optional[MeteredFeatureGate] = None,
) -> FeatureGateResult:
    """Advisor side: may another proposal be accepted."""
    return resolve_metered_feature_gate(
        MeteredFeature.ADVISOR_PROPOSALS, current_plan, plans, usage_rows, as_of, gate
    )


def resolve_investor_profile_view_gate(
    current_plan: Optional[SubscriptionSnapshot],
    plans: Sequence[BillingPlan],
    usage_rows: Optional[Iterable[UsageCounter]] = None,
    as_of: Optional[datetime] = None,
    gate: Optional[MeteredFeatureGate] = None,
) -> FeatureGateResult:
    """Investor side: may another full startup profile be viewed."""
    return resolve_metered_feature_gate(
        MeteredFeature.INVESTOR_PROFILE_VIEWS, current_plan, plans, usage_rows, as_of, gate
    )


def resolve_data_room_documents_gate(
    current_plan: Optional[SubscriptionSnapshot],
    plans: Sequence[BillingPlan],
    usage_rows: Optional[Iterable[UsageCounter]] = None,
    as_of: Optional[datetime] = None,
    gate: Optional[MeteredFeatureGate] = None,
) -> FeatureGateResult:
    """Startup side: may another data room document be stored."""
    return resolve_metered_feature_gate(
        MeteredFeature.DATA_ROOM_DOCUMENTS, current_plan, plans, usage_rows, as_of, gate
    )

