"""
Unit tests for the Gating main service.
"""

import pytest
from fastapi.testclient import TestClient

from shared.config import get_config
from shared.errors import ConfigurationError
from service_gating.app.main import GatingService, build_request_store, build_usage_ledger, create_app
from service_gating.app.engagements.store import InMemoryRequestStore
from service_gating.app.ledger.redis_ledger import RedisUsageLedger
from service_gating.app.persistence.postgres import PostgreSQLRequestStore
from service_gating.app.workspace import InMemoryWorkspaceStore


class TestGatingService:
    """Test cases for GatingService."""

    @pytest.fixture
    def state(self, catalog, startup_org, advisor_org, pending_advisor_org, investor_org, membership_factory):
        state = InMemoryWorkspaceStore()
        state.set_plans(catalog)
        state.add_organization(startup_org, membership_factory("user-founder", startup_org.id))
        state.add_organization(advisor_org, membership_factory("user-advisor", advisor_org.id))
        state.add_organization(pending_advisor_org, membership_factory("user-pending", pending_advisor_org.id))
        state.add_organization(investor_org, membership_factory("user-investor", investor_org.id))
        state.set_completion(startup_org.id, {"team": 100, "product": 50})
        state.set_documents(startup_org.id, ["pitch_deck", "financial_model", "legal_company_docs"])
        return state

    @pytest.fixture
    def gating_service(self, state):
        """Create GatingService instance running with strict gates."""
        return GatingService(
            config=get_config("gating", 8020, env="test", system_token="sweep-secret"),
            state=state,
        )

    @pytest.fixture
    def client(self, gating_service):
        """Create test client."""
        return TestClient(gating_service.app)

    def headers(self, user_id):
        return {"X-User-Id": user_id}

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "gating"

    def test_health_endpoint(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"request_store": "ok", "usage_ledger": "ok"}

    def test_capability_allowed(self, client):
        response = client.get("/gates/capabilities/advisor_intro_send", headers=self.headers("user-advisor"))

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is True
        assert data["reason"] == "ok"

    def test_capability_denial_is_not_an_error(self, client):
        response = client.get("/gates/capabilities/advisor_intro_send", headers=self.headers("user-pending"))

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is False
        assert data["reason"] == "verification_required"
        assert data["message"]

    def test_unknown_capability(self, client):
        response = client.get("/gates/capabilities/time_travel", headers=self.headers("user-advisor"))

        assert response.status_code == 200
        assert response.json()["reason"] == "unknown_capability"

    def test_missing_identity(self, client):
        response = client.get("/gates/capabilities/advisor_intro_send")

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_feature_gate(self, client):
        response = client.get("/gates/features/proposals_per_month", headers=self.headers("user-advisor"))

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is True
        assert data["limit"] == 2
        assert data["remaining"] == 2

    def test_feature_gate_without_membership(self, client):
        response = client.get("/gates/features/proposals_per_month", headers=self.headers("user-nobody"))

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_feature_gate_missing_catalog_is_configuration_error(self, client):
        """Strict gates surface catalog defects as server errors."""
        response = client.get(
            "/gates/features/full_profile_views_per_month", headers=self.headers("user-investor")
        )

        assert response.status_code == 500
        assert response.json()["code"] == "CONFIGURATION_ERROR"

    def test_workspace_snapshot(self, client):
        response = client.get("/workspace/snapshot", headers=self.headers("user-founder"))

        assert response.status_code == 200
        data = response.json()
        assert data["organization"]["type"] == "startup"
        assert data["verification_status"] == "approved"
        assert len(data["capabilities"]) == 3
        assert [f["feature_key"] for f in data["features"]] == [
            "consultant_requests_per_month",
            "data_room_documents_limit",
        ]
        assert data["readiness"]["readiness_score"] == 30

    def test_score_readiness(self, client):
        payload = {
            "sections": [
                {"section": "team", "weight": 20, "completion_percent": 100},
                {"section": "product", "weight": 20, "completion_percent": 50},
                {"section": "market", "weight": 15, "completion_percent": 0},
                {"section": "traction", "weight": 15, "completion_percent": 0},
                {"section": "financials", "weight": 15, "completion_percent": 0},
                {"section": "legal", "weight": 10, "completion_percent": 0},
                {"section": "pitch_materials", "weight": 5, "completion_percent": 0},
            ],
            "required_docs_uploaded": True,
        }

        response = client.post("/readiness/score", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["readiness_score"] == 30
        assert data["profile_completion_percent"] == 21
        assert data["eligible_for_discovery_post"] is False
        assert data["eligibility_failures"] == ["complete_profile_70", "reach_score_60"]

    def test_score_readiness_bad_weights(self, client):
        payload = {
            "sections": [
                {"section": "team", "weight": 60, "completion_percent": 100},
                {"section": "product", "weight": 60, "completion_percent": 100},
            ],
        }

        response = client.post("/readiness/score", json=payload)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_get_readiness(self, client):
        response = client.get("/readiness", headers=self.headers("user-founder"))

        assert response.status_code == 200
        assert response.json()["required_docs_uploaded"] is True

    def test_engagement_lifecycle(self, client):
        created = client.post(
            "/engagements/requests",
            json={"advisor_org_id": "org-advisor"},
            headers=self.headers("user-founder"),
        )
        assert created.status_code == 200
        request_id = created.json()["request"]["id"]
        assert created.json()["request"]["status"] == "sent"

        accepted = client.post(
            "/engagements/requests/respond",
            json={"request_id": request_id, "decision": "accepted"},
            headers=self.headers("user-advisor"),
        )
        assert accepted.status_code == 200
        assert accepted.json()["success"] is True
        assert accepted.json()["request"]["prep_room_id"]

        replay = client.post(
            "/engagements/requests/respond",
            json={"request_id": request_id, "decision": "accepted"},
            headers=self.headers("user-advisor"),
        )
        assert replay.status_code == 409
        assert replay.json()["code"] == "REQUEST_ALREADY_RESOLVED"

        listed = client.get("/engagements/requests", headers=self.headers("user-founder"))
        assert listed.json()["total"] == 1
        assert listed.json()["requests"][0]["status"] == "accepted"

    def test_pending_advisor_accept_denied(self, client):
        created = client.post(
            "/engagements/requests",
            json={"advisor_org_id": "org-advisor-pending"},
            headers=self.headers("user-founder"),
        )
        request_id = created.json()["request"]["id"]

        response = client.post(
            "/engagements/requests/respond",
            json={"request_id": request_id, "decision": "accepted"},
            headers=self.headers("user-pending"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["reason"] == "verification_required"
        assert data["request"]["prep_room_id"] is None

    def test_create_by_advisor_denied(self, client):
        response = client.post(
            "/engagements/requests",
            json={"advisor_org_id": "org-advisor"},
            headers=self.headers("user-advisor"),
        )

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["reason"] == "wrong_org_type"

    def test_cancel_request(self, client):
        created = client.post(
            "/engagements/requests",
            json={"advisor_org_id": "org-advisor"},
            headers=self.headers("user-founder"),
        )
        request_id = created.json()["request"]["id"]

        response = client.post(
            f"/engagements/requests/{request_id}/cancel",
            json={"reason": "Changed plans"},
            headers=self.headers("user-founder"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["request"]["status"] == "cancelled"
        assert data["request"]["cancellation_reason"] == "Changed plans"
        assert data["request"]["responded_at"] is None

    def test_cancel_unknown_request(self, client):
        response = client.post(
            "/engagements/requests/nope/cancel",
            headers=self.headers("user-founder"),
        )

        assert response.status_code == 404

    def test_respond_invalid_decision(self, client):
        response = client.post(
            "/engagements/requests/respond",
            json={"request_id": "req-1", "decision": "maybe"},
            headers=self.headers("user-advisor"),
        )

        assert response.status_code == 422

    def test_expire_sweep(self, client):
        client.post(
            "/engagements/requests",
            json={"advisor_org_id": "org-advisor"},
            headers=self.headers("user-founder"),
        )

        response = client.post("/engagements/requests/expire", headers={"X-System-Token": "sweep-secret"})

        assert response.status_code == 200
        assert response.json()["expired_count"] == 0

    @pytest.mark.parametrize("headers", [{}, {"X-System-Token": "guess"}, {"X-User-Id": "user-founder"}])
    def test_expire_sweep_requires_system_token(self, client, headers):
        response = client.post("/engagements/requests/expire", headers=headers)

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_expire_sweep_closed_without_configured_token(self, state):
        service = GatingService(config=get_config("gating", 8020, env="test"), state=state)
        client = TestClient(service.app)

        response = client.post("/engagements/requests/expire", headers={"X-System-Token": ""})

        assert response.status_code == 401

    def test_metrics_endpoint(self, client):
        client.get("/gates/capabilities/advisor_intro_send", headers=self.headers("user-advisor"))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "capability_checks_total" in response.text

    def test_lifecycle_hooks_run(self, gating_service):
        with TestClient(gating_service.app) as client:
            assert client.get("/health").status_code == 200

    def test_create_app(self):
        app = create_app()

        assert app.title == "Gating Service"


class TestBackendSelection:
    """Test cases for store and ledger wiring from configuration."""

    def test_memory_backends(self):
        config = get_config("gating", 8020)

        assert isinstance(build_request_store(config), InMemoryRequestStore)

    def test_durable_backends(self):
        config = get_config("gating", 8020, store_backend="postgres", ledger_backend="redis")

        assert isinstance(build_request_store(config), PostgreSQLRequestStore)
        assert isinstance(build_usage_ledger(config), RedisUsageLedger)

    def test_unknown_backend(self):
        config = get_config("gating", 8020, store_backend="sqlite")

        with pytest.raises(ConfigurationError):
            build_request_store(config)

    def test_strict_gates_follow_environment(self):
        assert get_config("gating", 8020, env="test").gates_strict is True
        assert get_config("gating", 8020, env="production").gates_strict is False
        assert get_config("gating", 8020, env="production", strict_gates=True).gates_strict is True
