"""
Capability gating package.

A single rule table maps each capability to the organization type and
verification status that grant it. Unknown combinations are denied.
"""

from .models import (
    Capability, CapabilityRule, CapabilityGateReason, CapabilityGateResult,
    CapabilityCheckResponse
)
from .gate import CAPABILITY_RULES, CapabilityGate, evaluate_capability

__all__ = [
    "Capability",
    "CapabilityRule",
    "CapabilityGateReason",
    "CapabilityGateResult",
    "CapabilityCheckResponse",
    "CAPABILITY_RULES",
    "CapabilityGate",
    "evaluate_capability",
]
