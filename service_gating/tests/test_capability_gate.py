"""
Unit tests for the capability gate.
"""

import pytest

from service_gating.app.capabilities.gate import CapabilityGate, CAPABILITY_RULES, evaluate_capability
from service_gating.app.capabilities.models import (
    Capability, CapabilityGateReason, CapabilityCheckResponse
)
from service_gating.app.organizations.models import OrganizationType, VerificationStatus


class TestCapabilityGate:
    """Test cases for CapabilityGate."""

    @pytest.fixture
    def gate(self):
        """Create CapabilityGate instance."""
        return CapabilityGate()

    @pytest.mark.parametrize("org_type", list(OrganizationType))
    @pytest.mark.parametrize("status", list(VerificationStatus))
    def test_advisor_intro_send_table(self, gate, org_type, status):
        """Only approved advisors may send intros."""
        result = gate.evaluate(Capability.ADVISOR_INTRO_SEND, org_type, status)

        expected = org_type == OrganizationType.ADVISOR and status == VerificationStatus.APPROVED
        assert result.allowed is expected
        if org_type != OrganizationType.ADVISOR:
            assert result.reason == CapabilityGateReason.WRONG_ORG_TYPE
        elif status != VerificationStatus.APPROVED:
            assert result.reason == CapabilityGateReason.VERIFICATION_REQUIRED
        else:
            assert result.reason == CapabilityGateReason.OK

    @pytest.mark.parametrize("capability", [Capability.INVESTOR_INTRO_RECEIVE, Capability.INVESTOR_INTRO_ACCEPT])
    @pytest.mark.parametrize("org_type", list(OrganizationType))
    @pytest.mark.parametrize("status", list(VerificationStatus))
    def test_investor_capabilities_table(self, gate, capability, org_type, status):
        """Investor capabilities need an approved investor."""
        result = gate.evaluate(capability, org_type, status)

        expected = org_type == OrganizationType.INVESTOR and status == VerificationStatus.APPROVED
        assert result.allowed is expected
        assert result.required_organization_type == OrganizationType.INVESTOR

    def test_pending_advisor_requires_verification(self, gate):
        result = gate.evaluate(
            Capability.ADVISOR_INTRO_SEND, OrganizationType.ADVISOR, VerificationStatus.PENDING
        )

        assert result.allowed is False
        assert result.reason == CapabilityGateReason.VERIFICATION_REQUIRED
        assert result.message

    def test_missing_membership_checked_first(self, gate):
        """No organization wins over an unknown capability."""
        result = gate.evaluate("not_a_capability", None, None)

        assert result.allowed is False
        assert result.reason == CapabilityGateReason.MISSING_MEMBERSHIP

    def test_unknown_capability(self, gate):
        result = gate.evaluate("teleport", OrganizationType.ADVISOR, VerificationStatus.APPROVED)

        assert result.allowed is False
        assert result.reason == CapabilityGateReason.UNKNOWN_CAPABILITY
        assert "teleport" in result.message

    def test_capability_accepts_plain_string(self, gate):
        result = gate.evaluate("investor_intro_receive", OrganizationType.INVESTOR, VerificationStatus.APPROVED)

        assert result.allowed is True
        assert result.capability == Capability.INVESTOR_INTRO_RECEIVE

    def test_wrong_type_checked_before_verification(self, gate):
        result = gate.evaluate(
            Capability.ADVISOR_INTRO_SEND, OrganizationType.STARTUP, VerificationStatus.UNVERIFIED
        )

        assert result.reason == CapabilityGateReason.WRONG_ORG_TYPE

    def test_every_result_has_message(self, gate):
        for capability in Capability:
            for org_type in list(OrganizationType) + [None]:
                result = gate.evaluate(capability, org_type, VerificationStatus.APPROVED)
                assert result.message

    def test_rule_table_covers_every_capability(self):
        assert set(CAPABILITY_RULES) == set(Capability)

    def test_custom_rule_table(self):
        gate = CapabilityGate(rules={})

        result = gate.evaluate(Capability.ADVISOR_INTRO_SEND, OrganizationType.ADVISOR, VerificationStatus.APPROVED)

        assert result.reason == CapabilityGateReason.UNKNOWN_CAPABILITY

    def test_module_level_helper(self):
        result = evaluate_capability(
            Capability.ADVISOR_INTRO_SEND, OrganizationType.ADVISOR, VerificationStatus.APPROVED
        )

        assert result.allowed is True

    def test_response_model(self, gate):
        result = gate.evaluate(
            Capability.ADVISOR_INTRO_SEND, OrganizationType.INVESTOR, VerificationStatus.APPROVED
        )

        response = CapabilityCheckResponse.from_result(result)

        assert response.capability == "advisor_intro_send"
        assert response.allowed is False
        assert response.reason == CapabilityGateReason.WRONG_ORG_TYPE
        assert response.required_organization_type == OrganizationType.ADVISOR
