"""
Capability gate: organization type + verification status -> allow/deny.
"""

from typing import Dict, Optional, Union

from shared.logging import get_logger
from ..organizations.models import OrganizationType, VerificationStatus
from .models import (
    Capability, CapabilityRule, CapabilityGateReason, CapabilityGateResult
)


CAPABILITY_RULES: Dict[Capability, CapabilityRule] = {
    Capability.ADVISOR_INTRO_SEND: CapabilityRule(
        capability=Capability.ADVISOR_INTRO_SEND,
        organization_type=OrganizationType.ADVISOR,
        verification_status=VerificationStatus.APPROVED,
        description="send investor intro requests",
    ),
    Capability.INVESTOR_INTRO_RECEIVE: CapabilityRule(
        capability=Capability.INVESTOR_INTRO_RECEIVE,
        organization_type=OrganizationType.INVESTOR,
        verification_status=VerificationStatus.APPROVED,
        description="receive advisor intros",
    ),
    Capability.INVESTOR_INTRO_ACCEPT: CapabilityRule(
        capability=Capability.INVESTOR_INTRO_ACCEPT,
        organization_type=OrganizationType.INVESTOR,
        verification_status=VerificationStatus.APPROVED,
        description="accept advisor intros",
    ),
}


class CapabilityGate:
    """Evaluates capabilities against a static rule table.

    Evaluation is pure and total: it never raises and never touches a store.
    Callers pass the two facts the gate needs and receive a verdict with a
    reason and a message suitable for display.
    """

    def __init__(self, rules: Optional[Dict[Capability, CapabilityRule]] = None):
        self.logger = get_logger("gating.capability_gate")
        self.rules = dict(rules if rules is not None else CAPABILITY_RULES)

    def evaluate(
        self,
        capability: Union[Capability, str],
        organization_type: Optional[OrganizationType],
        verification_status: Optional[VerificationStatus],
    ) -> CapabilityGateResult:
        """Evaluate one capability for an organization."""
        if organization_type is None:
            return self._deny(
                capability, CapabilityGateReason.MISSING_MEMBERSHIP,
                "Organization membership is required.",
                None, organization_type, verification_status,
            )

        rule = self._lookup(capability)
        if rule is None:
            return self._deny(
                capability, CapabilityGateReason.UNKNOWN_CAPABILITY,
                f"Capability '{capability}' is not available.",
                None, organization_type, verification_status,
            )

        if organization_type != rule.organization_type:
            return self._deny(
                rule.capability, CapabilityGateReason.WRONG_ORG_TYPE,
                f"Only {rule.organization_type.value} organizations can {rule.description}.",
                rule.organization_type, organization_type, verification_status,
            )

        if verification_status != rule.verification_status:
            return self._deny(
                rule.capability, CapabilityGateReason.VERIFICATION_REQUIRED,
                "Organization verification approval is required.",
                rule.organization_type, organization_type, verification_status,
            )

        return CapabilityGateResult(
            capability=rule.capability,
            allowed=True,
            reason=CapabilityGateReason.OK,
            message=f"Organization is verified and can {rule.description}.",
            required_organization_type=rule.organization_type,
            organization_type=organization_type,
            verification_status=verification_status,
        )

    def _lookup(self, capability: Union[Capability, str]) -> Optional[CapabilityRule]:
        try:
            key = Capability(capability)
        except ValueError:
            return None
        return self.rules.get(key)

    def _deny(
        self,
        capability: Union[Capability, str],
        reason: CapabilityGateReason,
        message: str,
        required_type: Optional[OrganizationType],
        organization_type: Optional[OrganizationType],
        verification_status: Optional[VerificationStatus],
    ) -> CapabilityGateResult:
        self.logger.debug(
            "Capability denied",
            capability=str(getattr(capability, "value", capability)),
            reason=reason.value,
        )
        return CapabilityGateResult(
            capability=capability,
            allowed=False,
            reason=reason,
            message=message,
            required_organization_type=required_type,
            organization_type=organization_type,
            verification_status=verification_status,
        )


_default_gate = CapabilityGate()


def evaluate_capability(
    capability: Union[Capability, str],
    organization_type: Optional[OrganizationType],
    verification_status: Optional[VerificationStatus],
) -> CapabilityGateResult:
    """Evaluate a capability against the default rule table."""
    return _default_gate.evaluate(capability, organization_type, verification_status)
