"""
cadence-engine: candidate parsing and plan construction.

File: src/cadence_engine/planning/planner.py

Purpose
- Parse untrusted candidate payloads (mappings, YAML or JSON files) into typed candidates.
- Assemble candidates from a recovery run and its session.
- Turn a candidate into a scored, partitioned, audit-stamped run plan and re-validate plans.

Functional requirements
- ``parse_cadence_candidate`` is the only untrusted input boundary; failures raise
  ``CandidateSchemaError`` carrying the failing field path.
- Plan outcomes assigned here are only ``ready`` or ``deferred``.
- Hashes and fingerprints are content digests, stable for equal inputs.
"""

from __future__ import annotations

import string
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from cadence_engine.constants import EDGE_READINESS_PENALTY, PLANNER_REVIEWER
from cadence_engine.domain.ids import (
    CadenceCandidateHash,
    CadenceConstraintFingerprint,
    CadenceEnvelopeId,
    CadencePolicyConstraintId,
    ENVELOPE_ID_PREFIX,
    CadenceRunId,
    TenantId,
    UserId,
    cadence_plan_id,
    next_revision,
)
from cadence_engine.domain.models import (
    CadenceEnvelope,
    CadenceEvaluation,
    CadencePlanCandidate,
    CadencePolicyConstraint,
    CadencePriority,
    CadenceProfile,
    CadenceRunPlan,
    CadenceSchemaError,
    CadenceSource,
    PlanAudit,
    PlanOutcome,
    PolicySummary,
)
from cadence_engine.planning.policy import CadencePolicyEngine
from cadence_engine.planning.topology import build_topology
from cadence_engine.planning.utility import (
    calculate_window_coverage,
    clamp,
    dedupe_slots,
    estimate_average_duration,
    to_partition,
)
from cadence_engine.utils.hashing import content_digest

if TYPE_CHECKING:
    from cadence_engine.domain.models import (
        CadenceSlot,
        CadenceWindow,
        RecoveryRunState,
        RunSession,
    )

EMPTY_PLAN_REASON = "Cadence plan contains no slots"
EMPTY_PLAN_WARNING = "No execution slots were generated"

_RETRY_CAP = 8
_TERMINAL_OUTCOMES = frozenset({PlanOutcome.CANCELLED, PlanOutcome.COMPLETED})


class CandidateSchemaError(CadenceSchemaError):
    """Raised when a candidate document cannot be read or fails structural validation."""


def parse_cadence_candidate(payload: object) -> CadencePlanCandidate:
    """Validate an untrusted mapping and return a typed candidate."""
    if not isinstance(payload, Mapping):
        raise CandidateSchemaError(
            "CadencePlanCandidate", f"expected object, got {type(payload).__name__}"
        )
    try:
        return CadencePlanCandidate.from_dict(payload)
    except CadenceSchemaError as exc:
        raise CandidateSchemaError(exc.path, exc.detail) from exc


def load_cadence_candidate(path: str | Path) -> CadencePlanCandidate:
    """Read a YAML or JSON candidate file and parse it."""
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise CandidateSchemaError(str(source), f"unable to read candidate file: {exc}") from exc

    # JSON is a subset of YAML, so one loader covers both formats.
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CandidateSchemaError(str(source), f"invalid candidate document: {exc}") from exc
    return parse_cadence_candidate(payload)


def build_candidate_from_run(
    run: RecoveryRunState,
    session: RunSession,
    windows: Sequence[CadenceWindow],
    slots: Sequence[CadenceSlot],
    source: CadenceSource,
    *,
    revision: int | None = None,
) -> CadencePlanCandidate:
    """Assemble a candidate carrying the baked-in alignment and retry constraints."""
    approval_required = session.constraints.operator_approval_required
    profile = CadenceProfile(
        tenant=TenantId(run.run_id),
        program_run=run.run_id,
        windows=tuple(windows),
        slots=tuple(slots),
        priority=CadencePriority.HIGH if approval_required else CadencePriority.NORMAL,
        source=source,
    )
    constraints = (
        CadencePolicyConstraint(
            id=CadencePolicyConstraintId(f"{_describe_run(run)}-{_describe_session(session)}"),
            key="window_alignment",
            expression="windowCoverage >= 0.75",
            enabled=True,
            weight=0.75,
        ),
        CadencePolicyConstraint(
            id=CadencePolicyConstraintId(f"{run.run_id}-constraints"),
            key="retry_cap",
            expression=f"maxRetries <= {_RETRY_CAP}",
            enabled=session.constraints.max_retries < _RETRY_CAP,
            weight=0.25,
        ),
    )
    notes = (
        f"run={run.run_id}",
        f"session={session.run_id}",
        f"windowCount={len(windows)}",
    )
    return CadencePlanCandidate(
        profile=profile,
        constraints=constraints,
        notes=notes,
        revision=next_revision() if revision is None else revision,
    )


def plan_candidate(
    candidate: CadencePlanCandidate,
    now: datetime | None = None,
    *,
    policy: CadencePolicyEngine | None = None,
) -> CadenceRunPlan:
    """Evaluate, order, and partition ``candidate`` into a run plan."""
    created_at = _utc(now)
    engine = policy if policy is not None else CadencePolicyEngine()

    evaluation = engine.evaluate(candidate)
    topology = build_topology(candidate)
    partition = to_partition(candidate)
    slots = dedupe_slots(partition.slots)
    coverage = calculate_window_coverage(partition.windows, slots)
    average = estimate_average_duration(slots)

    readiness = clamp(
        evaluation.score - EDGE_READINESS_PENALTY * len(topology.edges), 0.0, 100.0
    )
    candidate_hash = content_digest(
        {
            "candidate": candidate.to_dict(),
            "coverage": coverage,
        }
    )
    fingerprint = content_digest(
        {
            "constraints": [constraint.to_dict() for constraint in candidate.constraints],
            "notes": list(candidate.notes),
            "average_duration": average,
        }
    )

    return CadenceRunPlan(
        id=cadence_plan_id(candidate.revision),
        run_id=CadenceRunId(
            f"run-{candidate.revision}-{int(created_at.timestamp() * 1000)}"
        ),
        profile=candidate.profile,
        candidate_hash=CadenceCandidateHash(candidate_hash),
        constraint_fingerprint=CadenceConstraintFingerprint(fingerprint),
        created_at=created_at,
        outcome=PlanOutcome.READY if evaluation.ok else PlanOutcome.DEFERRED,
        slots=slots,
        windows=partition.windows,
        readiness_score=round(readiness, 3),
        policy_summary=PolicySummary(
            enabled_constraints=len(candidate.enabled_constraints),
            blocked_by_rules=evaluation.reasons,
            warnings=evaluation.warnings,
        ),
        audit=PlanAudit(
            created_by=candidate.profile.source,
            reviewed_by=(UserId(PLANNER_REVIEWER),),
            approved=evaluation.ok,
            approved_at=created_at if evaluation.ok else None,
            reason_trail=(*evaluation.reasons, *(edge.render() for edge in topology.edges)),
        ),
    )


def validate_cadence_run_plan(
    plan: CadenceRunPlan,
    *,
    policy: CadencePolicyEngine | None = None,
) -> CadenceEvaluation:
    """Re-evaluate a finished plan's profile; plans without slots are always rejected."""
    if not plan.slots:
        return CadenceEvaluation(
            ok=False,
            reasons=(EMPTY_PLAN_REASON,),
            score=0.0,
            warnings=(EMPTY_PLAN_WARNING,),
        )

    readonly_candidate = CadencePlanCandidate(
        profile=plan.profile,
        constraints=(
            CadencePolicyConstraint(
                id=CadencePolicyConstraintId(f"constraint-{plan.id}"),
                key="readonly",
                expression="result",
                enabled=True,
                weight=1.0,
            ),
        ),
        notes=("runtime-validation", "generated"),
        revision=_revision_from_run_id(plan.run_id),
    )
    engine = policy if policy is not None else CadencePolicyEngine()
    return engine.evaluate(readonly_candidate)


def revalidate_plan(
    plan: CadenceRunPlan,
    *,
    policy: CadencePolicyEngine | None = None,
) -> tuple[CadenceRunPlan, CadenceEvaluation]:
    """
    Re-validate ``plan`` and project the result onto its outcome.

    Cancelled and completed plans keep their outcome.
    """
    evaluation = validate_cadence_run_plan(plan, policy=policy)
    if plan.outcome in _TERMINAL_OUTCOMES:
        return plan, evaluation
    outcome = PlanOutcome.READY if evaluation.ok else PlanOutcome.DEFERRED
    return plan.with_outcome(outcome), evaluation


def envelope_for_cadence_plan(plan: CadenceRunPlan) -> CadenceEnvelope:
    return CadenceEnvelope(
        id=CadenceEnvelopeId(f"{ENVELOPE_ID_PREFIX}-{plan.id}"),
        profile=plan.profile,
        payload=plan,
    )


def _describe_run(run: RecoveryRunState) -> str:
    return f"run-{run.run_id}-{run.program_id}-{run.status or 'queued'}"


def _describe_session(session: RunSession) -> str:
    return f"{session.id}-{session.run_id}-{session.ticket_id}"


def _revision_from_run_id(run_id: str) -> int:
    digits = "".join(char for char in run_id if char in string.digits)[:6]
    return int(digits) if digits else 1


def _utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


__all__ = [
    "EMPTY_PLAN_REASON",
    "EMPTY_PLAN_WARNING",
    "CandidateSchemaError",
    "build_candidate_from_run",
    "envelope_for_cadence_plan",
    "load_cadence_candidate",
    "parse_cadence_candidate",
    "plan_candidate",
    "revalidate_plan",
    "validate_cadence_run_plan",
]
