"""
Engagement request state machine.

    sent -> accepted | rejected | cancelled | expired

``sent`` is the only initial state and every other state is terminal. Each
operation re-checks its guards against freshly loaded state and then asks
the store for a compare-and-swap on status, so a replayed or racing
decision surfaces as ``RequestAlreadyResolvedError`` rather than a second
mutation.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional, Sequence

from shared.errors import NotFoundError, RequestAlreadyResolvedError
from shared.logging import get_logger
from ..organizations.models import Organization, OrganizationType
from ..capabilities.gate import CapabilityGate
from ..capabilities.models import Capability, CapabilityGateReason
from ..billing.models import BillingPlan, SubscriptionSnapshot, MeteredFeature
from ..billing.quota import QuotaService, QuotaConsumption
from ..timeutils import utcnow
from .models import (
    EngagementRequest, EngagementStatus, EngagementDecision, EngagementTransition,
    EngagementActor, DenialReason, TransitionResult, ExpirySweepResult
)
from .prep_rooms import PrepRoomProvisioner
from .store import RequestStore


DEFAULT_EXPIRY_WINDOW = timedelta(days=14)

# Responding to a request requires the same standing as sending an intro
RESPOND_CAPABILITY = Capability.ADVISOR_INTRO_SEND


class EngagementRequestMachine:
    """Owns the engagement request lifecycle."""

    def __init__(
        self,
        store: RequestStore,
        quota: QuotaService,
        prep_rooms: PrepRoomProvisioner,
        capability_gate: Optional[CapabilityGate] = None,
        expiry_window: timedelta = DEFAULT_EXPIRY_WINDOW,
        consume_request_quota_on_create: bool = False,
    ):
        self.store = store
        self.quota = quota
        self.prep_rooms = prep_rooms
        self.capability_gate = capability_gate or CapabilityGate()
        self.expiry_window = expiry_window
        self.consume_request_quota_on_create = consume_request_quota_on_create
        self.logger = get_logger("gating.engagements")

    async def create(
        self,
        actor: EngagementActor,
        advisor_org: Organization,
        subscription: Optional[SubscriptionSnapshot] = None,
        plans: Sequence[BillingPlan] = (),
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Send a new request from the actor's startup to an advisor."""
        now = now or utcnow()
        startup = actor.organization

        if startup.type != OrganizationType.STARTUP:
            return self._deny(
                EngagementTransition.CREATE, None, DenialReason.WRONG_ORG_TYPE,
                "Only startup organizations can send engagement requests.",
            )
        if advisor_org.type != OrganizationType.ADVISOR:
            return self._deny(
                EngagementTransition.CREATE, None, DenialReason.TARGET_NOT_ADVISOR,
                "Engagement requests can only be sent to advisor organizations.",
            )

        consumption: Optional[QuotaConsumption] = None
        if self.consume_request_quota_on_create:
            consumption = await self.quota.consume(
                startup.id, MeteredFeature.CONSULTANT_REQUESTS, subscription, plans, now
            )
            if not consumption.consumed:
                return self._deny(
                    EngagementTransition.CREATE, None, DenialReason.QUOTA_EXHAUSTED,
                    consumption.verdict.message, feature_gate=consumption.verdict,
                )

        request = EngagementRequest(
            id=str(uuid.uuid4()),
            startup_org_id=startup.id,
            advisor_org_id=advisor_org.id,
            status=EngagementStatus.SENT,
            created_at=now,
        )
        try:
            request = await self.store.insert(request)
        except Exception:
            if consumption is not None:
                await self.quota.refund(startup.id, consumption)
            raise

        self.logger.info(
            "Engagement request created",
            request_id=request.id,
            startup_org_id=startup.id,
            advisor_org_id=advisor_org.id,
            user_id=actor.user_id,
        )
        return TransitionResult(
            transition=EngagementTransition.CREATE,
            applied=True,
            request=request,
            message="Engagement request sent.",
            feature_gate=consumption.verdict if consumption else None,
        )

    async def cancel(
        self,
        actor: EngagementActor,
        request_id: str,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Withdraw a sent request on behalf of its startup."""
        request = await self._load(request_id)
        if actor.organization.id != request.startup_org_id:
            return self._deny(
                EngagementTransition.CANCEL, request, DenialReason.NOT_REQUEST_PARTY,
                "Only the requesting startup can cancel this request.",
            )
        self._require_sent(request)

        reason = reason.strip() if reason and reason.strip() else None
        updated = await self.store.transition(
            request.id,
            EngagementStatus.SENT,
            EngagementStatus.CANCELLED,
            cancellation_reason=reason,
        )
        if updated is None:
            await self._raise_conflict(request.id)

        self.logger.info("Engagement request cancelled", request_id=request.id, user_id=actor.user_id)
        return TransitionResult(
            transition=EngagementTransition.CANCEL,
            applied=True,
            request=updated,
            message="Engagement request cancelled.",
        )

    async def respond(
        self,
        actor: EngagementActor,
        request_id: str,
        decision: EngagementDecision,
        subscription: Optional[SubscriptionSnapshot] = None,
        plans: Sequence[BillingPlan] = (),
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Apply an advisor decision."""
        if EngagementDecision(decision) == EngagementDecision.ACCEPTED:
            return await self.accept(actor, request_id, subscription, plans, now)
        return await self.reject(actor, request_id, now)

    async def accept(
        self,
        actor: EngagementActor,
        request_id: str,
        subscription: Optional[SubscriptionSnapshot] = None,
        plans: Sequence[BillingPlan] = (),
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Accept a request, consuming one advisor proposal and opening a prep room."""
        now = now or utcnow()
        request = await self._load(request_id)
        denial = self._check_advisor(EngagementTransition.ACCEPT, actor, request)
        if denial is not None:
            return denial

        advisor_id = actor.organization.id
        consumption = await self.quota.consume(
            advisor_id, MeteredFeature.ADVISOR_PROPOSALS, subscription, plans, now
        )
        if not consumption.consumed:
            return self._deny(
                EngagementTransition.ACCEPT, request, DenialReason.QUOTA_EXHAUSTED,
                consumption.verdict.message, feature_gate=consumption.verdict,
            )

        room_id: Optional[str] = None
        try:
            room_id = await self.prep_rooms.create_prep_room(request)
            updated = await self.store.transition(
                request.id,
                EngagementStatus.SENT,
                EngagementStatus.ACCEPTED,
                responded_at=now,
                prep_room_id=room_id,
            )
        except Exception:
            await self._undo_accept(advisor_id, consumption, room_id)
            raise

        if updated is None:
            await self._undo_accept(advisor_id, consumption, room_id)
            await self._raise_conflict(request.id)

        self.logger.info(
            "Engagement request accepted",
            request_id=request.id,
            prep_room_id=room_id,
            user_id=actor.user_id,
        )
        return TransitionResult(
            transition=EngagementTransition.ACCEPT,
            applied=True,
            request=updated,
            message="Engagement request accepted. A prep room is ready.",
            feature_gate=consumption.verdict,
        )

    async def reject(
        self,
        actor: EngagementActor,
        request_id: str,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Decline a request. Rejections do not consume proposal quota."""
        now = now or utcnow()
        request = await self._load(request_id)
        denial = self._check_advisor(EngagementTransition.REJECT, actor, request)
        if denial is not None:
            return denial

        updated = await self.store.transition(
            request.id,
            EngagementStatus.SENT,
            EngagementStatus.REJECTED,
            responded_at=now,
        )
        if updated is None:
            await self._raise_conflict(request.id)

        self.logger.info("Engagement request rejected", request_id=request.id, user_id=actor.user_id)
        return TransitionResult(
            transition=EngagementTransition.REJECT,
            applied=True,
            request=updated,
            message="Engagement request declined.",
        )

    async def expire(self, request_id: str, now: Optional[datetime] = None) -> TransitionResult:
        """Expire one request whose age exceeds the expiry window."""
        now = now or utcnow()
        request = await self._load(request_id)
        self._require_sent(request)

        if now - request.created_at <= self.expiry_window:
            return self._deny(
                EngagementTransition.EXPIRE, request, DenialReason.NOT_EXPIRED,
                "Engagement request has not reached its expiry window.",
            )

        updated = await self.store.transition(
            request.id,
            EngagementStatus.SENT,
            EngagementStatus.EXPIRED,
            responded_at=now,
        )
        if updated is None:
            await self._raise_conflict(request.id)

        self.logger.info("Engagement request expired", request_id=request.id)
        return TransitionResult(
            transition=EngagementTransition.EXPIRE,
            applied=True,
            request=updated,
            message="Engagement request expired.",
        )

    async def expire_stale(self, now: Optional[datetime] = None) -> ExpirySweepResult:
        """Expire every sent request older than the window."""
        now = now or utcnow()
        expired = []
        skipped = 0
        for request in await self.store.list_stale(now - self.expiry_window):
            updated = await self.store.transition(
                request.id,
                EngagementStatus.SENT,
                EngagementStatus.EXPIRED,
                responded_at=now,
            )
            if updated is None:
                # Resolved by a user between the listing and the update
                skipped += 1
                continue
            expired.append(updated.id)

        self.logger.info("Expiry sweep finished", expired=len(expired), skipped=skipped)
        return ExpirySweepResult(expired=expired, skipped=skipped)

    def _check_advisor(
        self,
        transition: EngagementTransition,
        actor: EngagementActor,
        request: EngagementRequest,
    ) -> Optional[TransitionResult]:
        if actor.organization.id != request.advisor_org_id:
            return self._deny(
                transition, request, DenialReason.NOT_REQUEST_PARTY,
                "Only the addressed advisor organization can respond to this request.",
            )
        self._require_sent(request)

        capability = self.capability_gate.evaluate(
            RESPOND_CAPABILITY,
            actor.organization.type,
            actor.organization.verification_status,
        )
        if not capability.allowed:
            reason = (
                DenialReason.VERIFICATION_REQUIRED
                if capability.reason == CapabilityGateReason.VERIFICATION_REQUIRED
                else DenialReason.WRONG_ORG_TYPE
            )
            return self._deny(transition, request, reason, capability.message, capability=capability)
        return None

    async def _load(self, request_id: str) -> EngagementRequest:
        request = await self.store.get(request_id)
        if request is None:
            raise NotFoundError("Engagement request not found", {"request_id": request_id})
        return request

    def _require_sent(self, request: EngagementRequest) -> None:
        if request.status != EngagementStatus.SENT:
            self.logger.warning(
                "Engagement request already resolved",
                request_id=request.id,
                status=request.status.value,
            )
            raise RequestAlreadyResolvedError(request.id, request.status.value)

    async def _raise_conflict(self, request_id: str) -> None:
        current = await self.store.get(request_id)
        status = current.status.value if current else None
        self.logger.warning("Engagement transition lost a race", request_id=request_id, status=status)
        raise RequestAlreadyResolvedError(request_id, status)

    async def _undo_accept(self, advisor_id: str, consumption: QuotaConsumption, room_id: Optional[str]) -> None:
        await self.quota.refund(advisor_id, consumption)
        if room_id is not None:
            await self.prep_rooms.discard_prep_room(room_id)

    def _deny(
        self,
        transition: EngagementTransition,
        request: Optional[EngagementRequest],
        reason: DenialReason,
        message: Optional[str],
        capability=None,
        feature_gate=None,
    ) -> TransitionResult:
        self.logger.info(
            "Engagement transition denied",
            transition=transition.value,
            request_id=request.id if request else None,
            reason=reason.value,
        )
        return TransitionResult(
            transition=transition,
            applied=False,
            request=request,
            denial_reason=reason,
            message=message,
            capability=capability,
            feature_gate=feature_gate,
        )
