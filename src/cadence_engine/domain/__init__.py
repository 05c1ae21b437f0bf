"""Domain types for cadence planning: windows, slots, candidates, plans, and inbound run contracts."""

from cadence_engine.domain.models import (
    CadenceEnvelope,
    CadenceEvaluation,
    CadenceExecutionContext,
    CadencePlanCandidate,
    CadencePolicyConstraint,
    CadencePriority,
    CadenceProfile,
    CadenceRunPlan,
    CadenceSchemaError,
    CadenceSlot,
    CadenceSource,
    CadenceWindow,
    PlanAudit,
    PlanOutcome,
    PolicySummary,
    ReadinessConstraintSet,
    ReadinessSignal,
    RecoveryRunState,
    RecoveryStep,
    RunSession,
    SessionConstraints,
)

__all__ = [
    "CadenceEnvelope",
    "CadenceEvaluation",
    "CadenceExecutionContext",
    "CadencePlanCandidate",
    "CadencePolicyConstraint",
    "CadencePriority",
    "CadenceProfile",
    "CadenceRunPlan",
    "CadenceSchemaError",
    "CadenceSlot",
    "CadenceSource",
    "CadenceWindow",
    "PlanAudit",
    "PlanOutcome",
    "PolicySummary",
    "ReadinessConstraintSet",
    "ReadinessSignal",
    "RecoveryRunState",
    "RecoveryStep",
    "RunSession",
    "SessionConstraints",
]
