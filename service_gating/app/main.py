"""
Gating service for the Workspace Gating Layer.
"""

import hmac
from datetime import timedelta
from typing import Optional

from fastapi import Header

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import AuthenticationError, ConfigurationError, ValidationError

from .billing.feature_gates import MeteredFeatureGate
from .billing.models import FeatureGateResponse
from .billing.quota import QuotaService
from .capabilities.gate import CapabilityGate
from .capabilities.models import CapabilityCheckResponse
from .engagements.machine import EngagementRequestMachine
from .engagements.models import (
    CreateEngagementRequest, CancelEngagementRequest, RespondEngagementRequest,
    TransitionResponse, ExpirySweepResponse, EngagementRequestModel,
    EngagementRequestListResponse
)
from .engagements.prep_rooms import PrepRoomProvisioner, LocalPrepRoomProvisioner
from .engagements.store import RequestStore, InMemoryRequestStore
from .ledger.base import UsageLedger
from .ledger.memory import InMemoryUsageLedger
from .ledger.redis_ledger import RedisUsageLedger
from .persistence.postgres import PostgreSQLRequestStore
from .readiness.models import SectionInput, ReadinessScoreRequest, ReadinessResponse
from .readiness.scorer import ReadinessScorer
from .workspace import (
    WorkspaceGatekeeper, WorkspaceStateStore, InMemoryWorkspaceStore, WorkspaceSnapshotResponse
)


SERVICE_NAME = "gating"
SERVICE_PORT = 8020


def build_request_store(config: ServiceConfig) -> RequestStore:
    if config.store_backend == "memory":
        return InMemoryRequestStore()
    if config.store_backend == "postgres":
        return PostgreSQLRequestStore(config.postgres_dsn)
    raise ConfigurationError("Unknown request store backend", {"store_backend": config.store_backend})


def build_usage_ledger(config: ServiceConfig) -> UsageLedger:
    if config.ledger_backend == "memory":
        return InMemoryUsageLedger()
    if config.ledger_backend == "redis":
        return RedisUsageLedger(config.redis_url)
    raise ConfigurationError("Unknown usage ledger backend", {"ledger_backend": config.ledger_backend})


class GatingService(BaseService):
    """Gating service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        state: Optional[WorkspaceStateStore] = None,
        prep_rooms: Optional[PrepRoomProvisioner] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))

        # Initialize components
        self.state = state or InMemoryWorkspaceStore()
        self.request_store = build_request_store(self.config)
        self.ledger = build_usage_ledger(self.config)
        self.quota = QuotaService(self.ledger, MeteredFeatureGate(strict=self.config.gates_strict))
        self.capability_gate = CapabilityGate()
        self.machine = EngagementRequestMachine(
            store=self.request_store,
            quota=self.quota,
            prep_rooms=prep_rooms or LocalPrepRoomProvisioner(),
            capability_gate=self.capability_gate,
            expiry_window=timedelta(days=self.config.engagement_expiry_days),
            consume_request_quota_on_create=self.config.consume_request_quota_on_create,
        )
        self.gatekeeper = WorkspaceGatekeeper(
            state=self.state,
            quota=self.quota,
            engagements=self.machine,
            capability_gate=self.capability_gate,
            startup_readiness_weights=self.config.startup_readiness_weights,
            metrics=self.metrics,
        )

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_gating_routes()

    def _setup_gating_routes(self):
        """Set up gating-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Workspace Gating Layer - Gating Service",
                "version": "1.0.0",
                "capabilities": ["capability_gates", "feature_gates", "readiness", "engagements"]
            }

        @self.app.get("/gates/capabilities/{capability}", response_model=CapabilityCheckResponse)
        async def check_capability(capability: str, x_user_id: Optional[str] = Header(None)):
            """Capability verdict for the caller's primary organization."""
            result = await self.gatekeeper.capability(x_user_id, capability)
            return CapabilityCheckResponse.from_result(result)

        @self.app.get("/gates/features/{feature_key}", response_model=FeatureGateResponse)
        async def check_feature(feature_key: str, x_user_id: Optional[str] = Header(None)):
            """Metered feature verdict for the caller's primary organization."""
            result = await self.gatekeeper.feature_gate(x_user_id, feature_key)
            return FeatureGateResponse.from_result(result)

        @self.app.get("/workspace/snapshot", response_model=WorkspaceSnapshotResponse)
        async def workspace_snapshot(x_user_id: Optional[str] = Header(None)):
            """Verification, capability, feature and readiness state in one call."""
            snapshot = await self.gatekeeper.snapshot(x_user_id)
            return WorkspaceSnapshotResponse.from_snapshot(snapshot)

        @self.app.post("/readiness/score", response_model=ReadinessResponse)
        async def score_readiness(request: ReadinessScoreRequest):
            """Score a submitted section list without touching any store."""
            sections = [
                SectionInput(section=s.section, weight=s.weight, completion_percent=s.completion_percent)
                for s in request.sections
            ]
            try:
                result = ReadinessScorer().score(sections, request.required_docs_uploaded)
            except ConfigurationError as e:
                # Submitted weights are caller input here, not service configuration
                raise ValidationError(e.message, e.details)
            return ReadinessResponse.from_result(result)

        @self.app.get("/readiness", response_model=ReadinessResponse)
        async def get_readiness(x_user_id: Optional[str] = Header(None)):
            """Readiness of the caller's organization profile."""
            result = await self.gatekeeper.readiness(x_user_id)
            return ReadinessResponse.from_result(result)

        @self.app.get("/engagements/requests", response_model=EngagementRequestListResponse)
        async def list_requests(x_user_id: Optional[str] = Header(None)):
            """Requests sent or received by the caller's organization."""
            requests = await self.gatekeeper.list_requests(x_user_id)
            return EngagementRequestListResponse(
                requests=[EngagementRequestModel.from_request(r) for r in requests],
                total=len(requests),
            )

        @self.app.post("/engagements/requests", response_model=TransitionResponse)
        async def create_request(request: CreateEngagementRequest, x_user_id: Optional[str] = Header(None)):
            """Send an engagement request to an advisor organization."""
            result = await self.gatekeeper.create_request(x_user_id, request.advisor_org_id)
            return TransitionResponse.from_result(result)

        @self.app.post("/engagements/requests/respond", response_model=TransitionResponse)
        async def respond_to_request(request: RespondEngagementRequest, x_user_id: Optional[str] = Header(None)):
            """Accept or reject a request addressed to the caller's advisor organization."""
            result = await self.gatekeeper.respond_to_request(x_user_id, request.request_id, request.decision)
            return TransitionResponse.from_result(result)

        @self.app.post("/engagements/requests/expire", response_model=ExpirySweepResponse)
        async def expire_requests(x_system_token: Optional[str] = Header(None)):
            """Expire every sent request older than the expiry window. System callers only."""
            self._require_system_caller(x_system_token)
            result = await self.gatekeeper.expire_stale_requests()
            return ExpirySweepResponse.from_result(result)

        @self.app.post("/engagements/requests/{request_id}/cancel", response_model=TransitionResponse)
        async def cancel_request(
            request_id: str,
            request: Optional[CancelEngagementRequest] = None,
            x_user_id: Optional[str] = Header(None),
        ):
            """Withdraw a request sent by the caller's startup."""
            reason = request.reason if request else None
            result = await self.gatekeeper.cancel_request(x_user_id, request_id, reason)
            return TransitionResponse.from_result(result)

    def _require_system_caller(self, token: Optional[str]):
        """Reject callers without the configured system token.

        With no token configured, system-only endpoints are closed.
        """
        expected = self.config.system_token
        if not expected or not token or not hmac.compare_digest(token, expected):
            raise AuthenticationError("System credentials required")

    async def _check_dependencies(self):
        """Check gating service dependencies."""
        dependencies = {}

        try:
            dependencies["request_store"] = "ok" if await self.request_store.health_check() else "error"
        except Exception:
            dependencies["request_store"] = "error"

        try:
            dependencies["usage_ledger"] = "ok" if await self.ledger.health_check() else "error"
        except Exception:
            dependencies["usage_ledger"] = "error"

        return dependencies

    async def start(self):
        """Start gating service components."""
        await self.request_store.start()
        await self.ledger.start()
        self.logger.info(
            "Gating service started",
            store_backend=self.config.store_backend,
            ledger_backend=self.config.ledger_backend,
            strict_gates=self.config.gates_strict,
        )

    async def stop(self):
        """Stop gating service components."""
        await self.request_store.stop()
        await self.ledger.stop()
        self.logger.info("Gating service stopped")


def create_app():
    """Create gating service application."""
    service = GatingService()
    return service.app


if __name__ == "__main__":
    service = GatingService()
    service.run()
