"""
Gating Service package for the Workspace Gating Layer.

This package decides what an organization in the workspace may do right now
and how ready a startup profile is for discovery. It provides:

- app.main: API surface for gate checks, readiness and engagement actions.
- app.capabilities: Capability rule table and gate.
- app.billing: Plan catalog types, metered feature gates and quota consumption.
- app.ledger: Usage ledgers with atomic check-and-increment (memory, Redis).
- app.readiness: Weighted section scoring and discovery eligibility.
- app.engagements: Engagement request state machine and request stores.
- app.persistence: PostgreSQL request storage.
- app.workspace: Orchestration that loads state and composes the evaluators.

Guidelines:
- Evaluators are pure; all I/O lives in stores and the workspace layer.
- Denials are results with a reason and message, never exceptions.
- Every state change is a conditional update; a lost race is a conflict.
"""
