"""
Workspace orchestration.

The evaluators are pure; this module does the I/O around them. It loads the
caller's primary organization, the effective subscription, the plan catalog
and profile completion, then composes capability, feature and readiness
verdicts and drives the engagement state machine.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from shared.errors import AuthenticationError, NotFoundError, ConflictError
from shared.logging import get_logger, set_user_context, set_gate_context
from shared.metrics import MetricsCollector
from .organizations.models import (
    Organization, OrganizationType, VerificationStatus, Membership, normalize_verification_status
)
from .organizations.membership import resolve_primary_membership
from .capabilities.gate import CapabilityGate
from .capabilities.models import Capability, CapabilityGateResult, CapabilityCheckResponse
from .billing.models import (
    BillingPlan, SubscriptionSnapshot, FeatureGateResult, FeatureGateResponse, MeteredFeature
)
from .billing.feature_gates import normalize_feature_key
from .billing.plans import SEGMENT_FEATURES, plans_for_segment
from .billing.quota import QuotaService
from .readiness.models import ReadinessResult, ReadinessResponse
from .readiness.scorer import ReadinessScorer
from .readiness.sections import (
    SECTIONS_BY_ORG_TYPE, apply_weights, build_section_inputs, required_documents_uploaded
)
from .engagements.models import (
    EngagementActor, EngagementDecision, EngagementRequest, TransitionResult, ExpirySweepResult
)
from .engagements.machine import EngagementRequestMachine


class WorkspaceStateStore(ABC):
    """Read access to organizations, memberships, billing and profile state."""

    @abstractmethod
    async def memberships_for_user(self, user_id: str) -> List[Membership]:
        """All memberships of a user, any status."""

    @abstractmethod
    async def get_organization(self, org_id: str) -> Optional[Organization]:
        """Load an organization by id."""

    @abstractmethod
    async def get_subscription(self, org_id: str) -> Optional[SubscriptionSnapshot]:
        """The organization's latest subscription, whatever its status."""

    @abstractmethod
    async def list_plans(self) -> List[BillingPlan]:
        """The full plan catalog."""

    @abstractmethod
    async def section_completion(self, org_id: str) -> Dict[str, int]:
        """Completion percent per profile section."""

    @abstractmethod
    async def document_types(self, org_id: str) -> List[str]:
        """Document types present in the organization's data room."""


class InMemoryWorkspaceStore(WorkspaceStateStore):
    """Workspace state held in dicts; used locally and in tests."""

    def __init__(self):
        self.organizations: Dict[str, Organization] = {}
        self.memberships: List[Membership] = []
        self.subscriptions: Dict[str, SubscriptionSnapshot] = {}
        self.plans: List[BillingPlan] = []
        self.completion: Dict[str, Dict[str, int]] = {}
        self.documents: Dict[str, List[str]] = {}

    def add_organization(self, organization: Organization, *members: Membership):
        self.organizations[organization.id] = organization
        self.memberships.extend(members)

    def set_subscription(self, subscription: Optional[SubscriptionSnapshot], org_id: Optional[str] = None):
        key = org_id or subscription.org_id
        if subscription is None:
            self.subscriptions.pop(key, None)
        else:
            self.subscriptions[key] = subscription

    def set_plans(self, plans: Iterable[BillingPlan]):
        self.plans = list(plans)

    def set_completion(self, org_id: str, completion: Mapping[str, int]):
        self.completion[org_id] = dict(completion)

    def set_documents(self, org_id: str, document_types: Iterable[str]):
        self.documents[org_id] = list(document_types)

    async def memberships_for_user(self, user_id: str) -> List[Membership]:
        return [m for m in self.memberships if m.user_id == user_id]

    async def get_organization(self, org_id: str) -> Optional[Organization]:
        return self.organizations.get(org_id)

    async def get_subscription(self, org_id: str) -> Optional[SubscriptionSnapshot]:
        return self.subscriptions.get(org_id)

    async def list_plans(self) -> List[BillingPlan]:
        return list(self.plans)

    async def section_completion(self, org_id: str) -> Dict[str, int]:
        return dict(self.completion.get(org_id, {}))

    async def document_types(self, org_id: str) -> List[str]:
        return list(self.documents.get(org_id, []))


@dataclass(frozen=True)
class WorkspaceSnapshot:
    """Everything the workspace UI needs to render gated controls."""
    user_id: str
    organization: Optional[Organization]
    capabilities: List[CapabilityGateResult] = field(default_factory=list)
    features: List[FeatureGateResult] = field(default_factory=list)
    readiness: Optional[ReadinessResult] = None


class OrganizationModel(BaseModel):
    id: str
    type: OrganizationType
    name: str
    verification_status: VerificationStatus


class WorkspaceSnapshotResponse(BaseModel):
    """Response model for the workspace snapshot."""
    user_id: str
    organization: Optional[OrganizationModel] = None
    verification_status: Optional[VerificationStatus] = None
    capabilities: List[CapabilityCheckResponse]
    features: List[FeatureGateResponse]
    readiness: Optional[ReadinessResponse] = None

    @classmethod
    def from_snapshot(cls, snapshot: WorkspaceSnapshot) -> "WorkspaceSnapshotResponse":
        org = snapshot.organization
        return cls(
            user_id=snapshot.user_id,
            organization=OrganizationModel(
                id=org.id, type=org.type, name=org.name, verification_status=org.verification_status
            ) if org else None,
            verification_status=org.verification_status if org else None,
            capabilities=[CapabilityCheckResponse.from_result(c) for c in snapshot.capabilities],
            features=[FeatureGateResponse.from_result(f) for f in snapshot.features],
            readiness=ReadinessResponse.from_result(snapshot.readiness) if snapshot.readiness else None,
        )


class WorkspaceGatekeeper:
    """Loads workspace state and composes the gating evaluators."""

    def __init__(
        self,
        state: WorkspaceStateStore,
        quota: QuotaService,
        engagements: EngagementRequestMachine,
        capability_gate: Optional[CapabilityGate] = None,
        startup_readiness_weights: Optional[Mapping[str, int]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.state = state
        self.quota = quota
        self.engagements = engagements
        self.capability_gate = capability_gate or CapabilityGate()
        self.metrics = metrics
        self.logger = get_logger("gating.workspace")

        # Scorers validate their weights here, so a bad table fails at startup
        self.scorers: Dict[OrganizationType, ReadinessScorer] = {}
        for org_type, definitions in SECTIONS_BY_ORG_TYPE.items():
            if org_type == OrganizationType.STARTUP:
                definitions = apply_weights(definitions, startup_readiness_weights)
            self.scorers[org_type] = ReadinessScorer(definitions)

    async def primary_organization(self, user_id: str) -> Optional[Organization]:
        """The organization of the user's primary active membership."""
        if not user_id or not user_id.strip():
            raise AuthenticationError("Missing user identity")
        membership = resolve_primary_membership(await self.state.memberships_for_user(user_id))
        if membership is None:
            return None
        organization = await self._load_organization(membership.org_id)
        if organization is None:
            self.logger.warning("Membership points at a missing organization", user_id=user_id, org_id=membership.org_id)
            return None
        set_user_context(user_id=user_id, org_id=organization.id)
        return organization

    async def resolve_actor(self, user_id: str) -> EngagementActor:
        organization = await self.primary_organization(user_id)
        if organization is None:
            raise NotFoundError("No active organization membership", {"user_id": user_id})
        return EngagementActor(user_id=user_id, organization=organization)

    async def capability(self, user_id: str, capability: Union[Capability, str]) -> CapabilityGateResult:
        organization = await self.primary_organization(user_id)
        return self._evaluate_capability(capability, organization)

    async def feature_gate(self, user_id: str, feature_key: Union[MeteredFeature, str]) -> FeatureGateResult:
        actor = await self.resolve_actor(user_id)
        subscription, plans = await self._billing_state(actor.organization)
        return await self._check_feature(actor.organization, feature_key, subscription, plans)

    async def readiness(self, user_id: str) -> ReadinessResult:
        actor = await self.resolve_actor(user_id)
        return await self.readiness_for(actor.organization)

    async def readiness_for(self, organization: Organization) -> ReadinessResult:
        """Score an organization's profile with its type's section set.

        The data room requirement applies to startups only; other
        organization types have no required documents.
        """
        scorer = self.scorers[organization.type]
        completion, document_types = await asyncio.gather(
            self.state.section_completion(organization.id),
            self.state.document_types(organization.id),
        )
        docs_uploaded = True
        if organization.type == OrganizationType.STARTUP:
            docs_uploaded = required_documents_uploaded(document_types)

        sections = build_section_inputs(scorer.definitions, completion)
        if self.metrics:
            with self.metrics.time_operation("readiness_evaluation_duration_seconds"):
                return scorer.score(sections, docs_uploaded)
        return scorer.score(sections, docs_uploaded)

    async def snapshot(self, user_id: str) -> WorkspaceSnapshot:
        """Verification, capability, feature and readiness state for the caller."""
        organization = await self.primary_organization(user_id)
        capabilities = [self._evaluate_capability(c, organization) for c in Capability]
        if organization is None:
            return WorkspaceSnapshot(user_id=user_id, organization=None, capabilities=capabilities)

        subscription, plans = await self._billing_state(organization)
        features = [
            await self._check_feature(organization, feature, subscription, plans)
            for feature in SEGMENT_FEATURES.get(organization.type, [])
        ]
        return WorkspaceSnapshot(
            user_id=user_id,
            organization=organization,
            capabilities=capabilities,
            features=features,
            readiness=await self.readiness_for(organization),
        )

    async def create_request(self, user_id: str, advisor_org_id: str) -> TransitionResult:
        actor = await self.resolve_actor(user_id)
        advisor = await self._load_organization(advisor_org_id)
        if advisor is None:
            raise NotFoundError("Advisor organization not found", {"org_id": advisor_org_id})
        subscription, plans = await self._billing_state(actor.organization)
        return await self._run_transition(
            "create",
            self.engagements.create(actor, advisor, subscription, plans),
        )

    async def cancel_request(self, user_id: str, request_id: str, reason: Optional[str] = None) -> TransitionResult:
        actor = await self.resolve_actor(user_id)
        return await self._run_transition(
            "cancel",
            self.engagements.cancel(actor, request_id, reason),
        )

    async def respond_to_request(
        self,
        user_id: str,
        request_id: str,
        decision: EngagementDecision,
    ) -> TransitionResult:
        actor = await self.resolve_actor(user_id)
        subscription, plans = await self._billing_state(actor.organization)
        transition = "accept" if decision == EngagementDecision.ACCEPTED else "reject"
        return await self._run_transition(
            transition,
            self.engagements.respond(actor, request_id, decision, subscription, plans),
        )

    async def list_requests(self, user_id: str) -> List[EngagementRequest]:
        actor = await self.resolve_actor(user_id)
        return await self.engagements.store.list_for_org(actor.organization.id)

    async def expire_stale_requests(self) -> ExpirySweepResult:
        result = await self.engagements.expire_stale()
        if self.metrics:
            for _ in result.expired:
                self.metrics.increment_counter("engagement_transitions_total", transition="expire", outcome="applied")
        return result

    async def _load_organization(self, org_id: str) -> Optional[Organization]:
        """Fetch an organization with its verification status coerced to the enum."""
        organization = await self.state.get_organization(org_id)
        if organization is None:
            return None
        return replace(
            organization,
            verification_status=normalize_verification_status(organization.verification_status),
        )

    async def _billing_state(self, organization: Organization):
        subscription, catalog = await asyncio.gather(
            self.state.get_subscription(organization.id),
            self.state.list_plans(),
        )
        return subscription, plans_for_segment(catalog, organization.type)

    def _evaluate_capability(
        self,
        capability: Union[Capability, str],
        organization: Optional[Organization],
    ) -> CapabilityGateResult:
        result = self.capability_gate.evaluate(
            capability,
            organization.type if organization else None,
            organization.verification_status if organization else None,
        )
        if self.metrics:
            self.metrics.increment_counter(
                "capability_checks_total",
                capability=str(getattr(result.capability, "value", result.capability)),
                decision=result.reason.value,
            )
        return result

    async def _check_feature(
        self,
        organization: Organization,
        feature_key: Union[MeteredFeature, str],
        subscription: Optional[SubscriptionSnapshot],
        plans: List[BillingPlan],
    ) -> FeatureGateResult:
        set_gate_context(feature_key=normalize_feature_key(feature_key))
        result = await self.quota.check(organization.id, feature_key, subscription, plans)
        if self.metrics:
            self.metrics.increment_counter(
                "feature_gate_checks_total",
                feature=result.feature_key,
                decision=result.reason.value,
            )
        return result

    async def _run_transition(self, transition: str, operation) -> TransitionResult:
        set_gate_context(transition=transition)
        try:
            result = await operation
        except ConflictError:
            if self.metrics:
                self.metrics.increment_counter("engagement_transitions_total", transition=transition, outcome="conflict")
            raise
        if self.metrics:
            outcome = "applied" if result.applied else "denied"
            self.metrics.increment_counter("engagement_transitions_total", transition=transition, outcome=outcome)
            if result.applied:
                self.metrics.record_business_event(f"engagement_{transition}")
        return result
