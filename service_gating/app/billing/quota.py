"""
Quota enforcement: metered gate verdicts backed by an atomic usage ledger.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Tuple, Union

from shared.logging import get_logger
from ..ledger.base import UsageLedger
from ..timeutils import utcnow, calendar_month_period
from .feature_gates import MeteredFeatureGate, normalize_feature_key, limit_reached_message
from .models import (
    BillingPlan, SubscriptionSnapshot, FeatureGateResult, FeatureGateReason, MeteredFeature
)
from .plans import resolve_effective_subscription


@dataclass(frozen=True)
class QuotaConsumption:
    """Result of consuming one unit of a metered feature.

    ``verdict`` is the gate result that authorised (or refused) the use,
    evaluated before the increment. ``used`` is the period total afterwards,
    across every usage row that covers the evaluation time.
    """
    consumed: bool
    verdict: FeatureGateResult
    used: int
    period_start: datetime
    period_end: datetime


def billing_period(
    subscription: Optional[SubscriptionSnapshot],
    now: datetime,
) -> Tuple[datetime, datetime]:
    """Usage period for an effective subscription; calendar month on freemium."""
    if subscription is not None and subscription.current_period_start <= now < subscription.current_period_end:
        return subscription.current_period_start, subscription.current_period_end
    return calendar_month_period(now)


class QuotaService:
    """Evaluates and consumes metered features for an organization.

    ``check`` is read-only. ``consume`` treats check-then-increment as one
    transaction by delegating the limit comparison to the ledger's atomic
    consume, so concurrent callers cannot overrun the limit.
    """

    def __init__(self, ledger: UsageLedger, gate: Optional[MeteredFeatureGate] = None):
        self.ledger = ledger
        self.gate = gate or MeteredFeatureGate()
        self.logger = get_logger("gating.quota")

    async def check(
        self,
        org_id: str,
        feature: Union[MeteredFeature, str],
        subscription: Optional[SubscriptionSnapshot],
        plans: Sequence[BillingPlan],
        now: Optional[datetime] = None,
    ) -> FeatureGateResult:
        now = now or utcnow()
        effective = resolve_effective_subscription(subscription)
        usage = await self.ledger.usage(org_id)
        return self.gate.evaluate(feature, effective, plans, usage, as_of=now)

    async def consume(
        self,
        org_id: str,
        feature: Union[MeteredFeature, str],
        subscription: Optional[SubscriptionSnapshot],
        plans: Sequence[BillingPlan],
        now: Optional[datetime] = None,
    ) -> QuotaConsumption:
        """Take one unit of a feature if the effective plan still allows it.

        The gate totals every usage row whose period covers ``now``, but only
        the current period's row is incremented. Usage on the other covering
        rows (e.g. freemium usage before a mid-month upgrade) is subtracted
        from the limit handed to the ledger, so its atomic check enforces the
        same total the gate reported.
        """
        now = now or utcnow()
        key = normalize_feature_key(feature)
        effective = resolve_effective_subscription(subscription)
        period_start, period_end = billing_period(effective, now)

        usage = await self.ledger.usage(org_id)
        verdict = self.gate.evaluate(key, effective, plans, usage, as_of=now)
        if not verdict.allowed:
            return QuotaConsumption(False, verdict, verdict.used, period_start, period_end)

        limit = None
        carried = 0
        if not verdict.unlimited:
            current = sum(
                max(0, int(row.used)) for row in usage
                if normalize_feature_key(row.feature_key) == key
                and row.period_start == period_start
                and row.period_end == period_end
            )
            carried = verdict.used - current
            limit = verdict.limit - carried

        result = await self.ledger.consume(org_id, key, period_start, period_end, limit)
        used = result.used + carried
        if not result.consumed:
            # Lost a race for the last unit between evaluation and increment
            verdict = FeatureGateResult(
                feature_key=key,
                allowed=False,
                unlimited=False,
                limit=verdict.limit,
                remaining=0,
                used=used,
                reason=FeatureGateReason.LIMIT_REACHED,
                message=limit_reached_message(key, verdict.limit),
            )
            self.logger.info("Quota exhausted during consume", org_id=org_id, feature_key=key, used=used)
            return QuotaConsumption(False, verdict, used, period_start, period_end)

        self.logger.info("Quota consumed", org_id=org_id, feature_key=key, used=used, limit=verdict.limit)
        return QuotaConsumption(True, verdict, used, period_start, period_end)

    async def refund(self, org_id: str, consumption: QuotaConsumption) -> int:
        """Return a consumed unit, e.g. when the guarded action did not happen."""
        if not consumption.consumed:
            return consumption.used
        used = await self.ledger.refund(
            org_id,
            consumption.verdict.feature_key,
            consumption.period_start,
            consumption.period_end,
        )
        self.logger.info("Quota refunded", org_id=org_id, feature_key=consumption.verdict.feature_key, used=used)
        return used
