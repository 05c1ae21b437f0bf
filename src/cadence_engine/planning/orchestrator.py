"""
Cadence orchestration: assemble candidates from recovery runs, build and register plans.

The orchestrator is the only stateful planning component. It records an
in-process action log (``candidate-built``, ``plan-computed``,
``validation-failed``), emits ``structlog`` decision logs, and updates the
shared metrics registry.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any, NoReturn

import structlog

from cadence_engine.config.schema import default_config
from cadence_engine.constants import (
    DEFAULT_LATEST_PLAN_LIMIT,
    DEFAULT_READINESS_DAMPING,
    DEFAULT_WINDOW_HOURS,
)
from cadence_engine.domain.ids import (
    CadencePolicyConstraintId,
    cadence_slot_id,
    cadence_window_id,
    run_plan_id,
    to_cadence_run_id,
)
from cadence_engine.domain.models import (
    CadencePlanCandidate,
    CadencePolicyConstraint,
    CadenceRunPlan,
    CadenceSlot,
    CadenceSource,
    CadenceWindow,
    RecoveryStep,
)
from cadence_engine.observability.metrics import MetricsRegistry
from cadence_engine.persistence.plan_registry import CadencePlanRegistry
from cadence_engine.planning.planner import (
    build_candidate_from_run,
    plan_candidate,
    validate_cadence_run_plan,
)
from cadence_engine.planning.policy import CadencePolicyEngine, PolicyThresholds
from cadence_engine.planning.signals import summarize_cadence_signals
from cadence_engine.planning.utility import estimate_window_capacity, split_windows

if TYPE_CHECKING:
    from collections.abc import Callable

    from cadence_engine.domain.models import (
        CadenceExecutionContext,
        ReadinessConstraintSet,
        ReadinessSignal,
        RecoveryRunState,
        RunSession,
    )

_WINDOW_TIMEZONE = "Etc/UTC"
_MIN_SLOT_MINUTES = 10.0
_MIN_SLOT_WEIGHT = 0.1
_TAGS_PER_FULL_WEIGHT = 4
_SIGNAL_RATE_WEIGHT = 0.95
_ACTIVE_TARGETS_WEIGHT = 0.75
_DENSITY_WEIGHT = 0.25


class PlanRejectedError(RuntimeError):
    """Raised when a candidate cannot be turned into an executable plan."""

    def __init__(self, reasons: Sequence[str]) -> None:
        self.reasons = tuple(reasons)
        super().__init__(f"Cadence plan rejected: {', '.join(self.reasons)}")


class OrchestrationMode(StrEnum):
    DRY_RUN = "dry-run"
    ADVISORY = "advisory"
    EXECUTE = "execute"


class ActionKind(StrEnum):
    CANDIDATE_BUILT = "candidate-built"
    PLAN_COMPUTED = "plan-computed"
    VALIDATION_FAILED = "validation-failed"


@dataclass(frozen=True, slots=True)
class OrchestratorAction:
    kind: ActionKind
    candidate: CadencePlanCandidate | None = None
    plan: CadenceRunPlan | None = None
    reasons: tuple[str, ...] = ()


class CadenceOrchestrator:
    """Drive candidate assembly and plan construction against a shared registry."""

    def __init__(
        self,
        registry: CadencePlanRegistry,
        policy: CadencePolicyEngine | None = None,
        *,
        readiness_damping: float = DEFAULT_READINESS_DAMPING,
        window_hours: int = DEFAULT_WINDOW_HOURS,
        latest_plan_limit: int = DEFAULT_LATEST_PLAN_LIMIT,
        clock: Callable[[], datetime] | None = None,
        logger: Any | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        if not 0.0 <= readiness_damping <= 1.0:
            raise ValueError("readiness_damping must be between 0 and 1")
        if window_hours < 1:
            raise ValueError("window_hours must be >= 1")
        if latest_plan_limit < 1:
            raise ValueError("latest_plan_limit must be >= 1")

        self._registry = registry
        self._policy = policy if policy is not None else CadencePolicyEngine()
        self._readiness_damping = readiness_damping
        self._window_hours = window_hours
        self._latest_plan_limit = latest_plan_limit
        self._clock = clock if clock is not None else (lambda: datetime.now(UTC))
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._metrics = metrics if metrics is not None else MetricsRegistry()
        self._events: list[OrchestratorAction] = []

    @property
    def registry(self) -> CadencePlanRegistry:
        return self._registry

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    @property
    def audit_log(self) -> tuple[OrchestratorAction, ...]:
        return tuple(self._events)

    def clear_log(self) -> None:
        self._events.clear()

    def build_candidate_from_run(
        self,
        run: RecoveryRunState,
        session: RunSession,
        steps: Sequence[RecoveryStep],
        signals: Sequence[ReadinessSignal] = (),
        constraints: Sequence[ReadinessConstraintSet] = (),
    ) -> CadencePlanCandidate:
        """
        Assemble and register a candidate for ``run``.

        Two default windows are laid out ``window_hours`` apart; every step
        becomes one slot in the first window. Readiness constraints and dense
        signal targets replace the baked-in run constraints.
        """
        now = self._clock()
        windows = tuple(self._default_window(run, session, index, now) for index in range(2))
        slots = tuple(self._slot_for_step(step, run, session, now) for step in steps)
        source = CadenceSource.AUTOMATION if run.status == "running" else CadenceSource.PLANNER
        base = build_candidate_from_run(run, session, windows, slots, source)

        summary = summarize_cadence_signals(run.run_id, signals, constraints)
        density_constraints = tuple(
            CadencePolicyConstraint(
                id=CadencePolicyConstraintId(f"{signal.signal_id}-density"),
                key="signal-density",
                expression=f"{signal.target_id}-density",
                enabled=True,
                weight=_DENSITY_WEIGHT,
            )
            for signal in summary.dense_signals
        )
        candidate = replace(
            base,
            constraints=(*_readiness_constraints(constraints), *density_constraints),
            notes=(*base.notes, *summary.source_map),
        )

        self._registry.register_candidate(candidate, to_cadence_run_id(run.run_id))
        evaluation = self._policy.evaluate(candidate)
        self._metrics.record_candidate()
        self._record(OrchestratorAction(kind=ActionKind.CANDIDATE_BUILT, candidate=candidate))
        self._logger.info(
            "cadence.candidate_built",
            run_id=run.run_id,
            revision=candidate.revision,
            slot_count=len(slots),
            constraint_count=len(candidate.constraints),
            accepted=evaluation.ok,
        )

        if not evaluation.ok:
            self._record(
                OrchestratorAction(kind=ActionKind.VALIDATION_FAILED, reasons=evaluation.reasons)
            )
            self._logger.warning(
                "cadence.candidate_rejected",
                run_id=run.run_id,
                reasons=list(evaluation.reasons),
            )
        return candidate

    def build_plan(
        self,
        candidate: CadencePlanCandidate,
        mode: OrchestrationMode = OrchestrationMode.ADVISORY,
        session_id: str | None = None,
    ) -> CadenceRunPlan:
        """
        Plan ``candidate``, validate the result, and register it.

        Raises:
            PlanRejectedError: when the plan fails validation or owns no execution windows.
        """
        plan = plan_candidate(candidate, self._clock(), policy=self._policy)
        validation = validate_cadence_run_plan(plan, policy=self._policy)
        if not validation.ok:
            self._reject(plan, validation.reasons, mode=mode, session_id=session_id)

        slices = split_windows(plan)
        if not slices:
            self._reject(
                plan,
                ("No execution windows produced from candidate",),
                mode=mode,
                session_id=session_id,
            )

        evaluation = self._policy.evaluate(candidate)
        summary = (
            f"plan-valid-{candidate.profile.source}"
            if evaluation.ok
            else f"plan-deferred-{len(evaluation.reasons)}"
        )
        finished = replace(
            plan,
            readiness_score=round(evaluation.score * self._readiness_damping, 3),
            policy_summary=replace(
                plan.policy_summary,
                warnings=(*plan.policy_summary.warnings, summary),
            ),
        )

        self._registry.register_plan(finished)
        self._metrics.record_plan(finished.outcome.value, finished.readiness_score)
        self._record(OrchestratorAction(kind=ActionKind.PLAN_COMPUTED, plan=finished))
        self._logger.info(
            "cadence.plan_computed",
            plan_id=finished.id,
            run_id=finished.run_id,
            session_id=session_id,
            mode=str(mode),
            outcome=finished.outcome.value,
            readiness_score=finished.readiness_score,
            window_capacity={
                item.window.id: estimate_window_capacity(item.window) for item in slices
            },
        )
        return finished

    def execute_plan(self, context: CadenceExecutionContext) -> CadenceRunPlan:
        """Rebuild a candidate from an existing plan's slots and plan it in execute mode."""
        steps = tuple(
            RecoveryStep(
                id=slot.id,
                title=f"slot-{slot.id}",
                command=slot.command,
                timeout_ms=int(slot.estimated_minutes * 60_000),
                dependencies=tuple(slot.requires),
                required_approvals=1,
                tags=("execute",),
            )
            for slot in context.run_plan.slots
        )
        candidate = self.build_candidate_from_run(context.run, context.session, steps)
        return self.build_plan(
            candidate,
            OrchestrationMode.EXECUTE,
            to_cadence_run_id(context.run.run_id),
        )

    def fetch_latest_plans(self, limit: int | None = None) -> list[CadenceRunPlan]:
        """Most recent registered plans that still pass validation."""
        count = self._latest_plan_limit if limit is None else limit
        return [
            entry.plan
            for entry in self._registry.list_recent_plans(count)
            if validate_cadence_run_plan(entry.plan, policy=self._policy).ok
        ]

    def _default_window(
        self,
        run: RecoveryRunState,
        session: RunSession,
        index: int,
        now: datetime,
    ) -> CadenceWindow:
        span = timedelta(hours=self._window_hours)
        limits = session.constraints
        return CadenceWindow(
            id=cadence_window_id(run.run_id, index),
            title=f"window-{index}-{session.id}",
            starts_at=now + span * index,
            ends_at=now + span * (index + 2),
            timezone=_WINDOW_TIMEZONE,
            max_parallelism=max(1, limits.max_retries - index),
            max_retries=limits.max_retries,
            required_approvals=2 if limits.operator_approval_required else 1,
        )

    def _slot_for_step(
        self,
        step: RecoveryStep,
        run: RecoveryRunState,
        session: RunSession,
        now: datetime,
    ) -> CadenceSlot:
        return CadenceSlot(
            id=cadence_slot_id(run.run_id, step.id),
            window_id=cadence_window_id(run.run_id, 0),
            planned_for=run.started_at if run.started_at is not None else now,
            plan_id=run_plan_id(run.run_id, session.id),
            step_id=step.id,
            command=step.command,
            weight=min(1.0, max(_MIN_SLOT_WEIGHT, len(step.tags) / _TAGS_PER_FULL_WEIGHT)),
            estimated_minutes=max(_MIN_SLOT_MINUTES, step.timeout_ms / 60_000),
            tags=(*step.tags, run.program_id),
            requires=tuple(cadence_slot_id(run.run_id, dependency) for dependency in step.dependencies),
        )

    def _reject(
        self,
        plan: CadenceRunPlan,
        reasons: Sequence[str],
        *,
        mode: OrchestrationMode,
        session_id: str | None,
    ) -> NoReturn:
        self._record(OrchestratorAction(kind=ActionKind.VALIDATION_FAILED, reasons=tuple(reasons)))
        self._metrics.record_rejection(len(reasons))
        self._logger.warning(
            "cadence.plan_rejected",
            plan_id=plan.id,
            session_id=session_id,
            mode=str(mode),
            reasons=list(reasons),
        )
        raise PlanRejectedError(reasons)

    def _record(self, action: OrchestratorAction) -> None:
        self._events.append(action)


def _readiness_constraints(
    constraints: Sequence[ReadinessConstraintSet],
) -> tuple[CadencePolicyConstraint, ...]:
    out: list[CadencePolicyConstraint] = []
    for index, constraint in enumerate(constraints):
        rate = constraint.max_signals_per_minute or 0
        out.append(
            CadencePolicyConstraint(
                id=CadencePolicyConstraintId(f"{constraint.policy_id}:{2 * index}"),
                key="constraints.maxSignalsPerMinute",
                expression=f"maxSignalsPerMinute <= {rate}",
                enabled=rate > 0,
                weight=_SIGNAL_RATE_WEIGHT,
            )
        )
        out.append(
            CadencePolicyConstraint(
                id=CadencePolicyConstraintId(f"{constraint.policy_id}:{2 * index + 1}"),
                key="constraints.minimumActiveTargets",
                expression=f"minimumActiveTargets >= {constraint.minimum_active_targets}",
                enabled=constraint.minimum_active_targets >= 1,
                weight=_ACTIVE_TARGETS_WEIGHT,
            )
        )
    return tuple(out)


def create_cadence_orchestrator(
    config: dict[str, Any] | None = None,
    *,
    logger: Any | None = None,
    metrics: MetricsRegistry | None = None,
) -> CadenceOrchestrator:
    """Wire a registry, policy engine, and orchestrator from an effective config."""
    effective: dict[str, Any] = dict(config) if config is not None else dict(default_config())
    registry_section = effective["registry"]
    orchestrator_section = effective["orchestrator"]
    ttl = float(registry_section["candidate_ttl_minutes"])
    registry = CadencePlanRegistry(
        ttl,
        plan_ttl_minutes=ttl * float(registry_section["plan_ttl_multiplier"]),
    )
    return CadenceOrchestrator(
        registry,
        CadencePolicyEngine(PolicyThresholds.from_config(effective)),
        readiness_damping=float(orchestrator_section["readiness_damping"]),
        window_hours=int(orchestrator_section["default_window_hours"]),
        latest_plan_limit=int(orchestrator_section["latest_plan_limit"]),
        logger=logger,
        metrics=metrics,
    )


__all__ = [
    "ActionKind",
    "CadenceOrchestrator",
    "OrchestrationMode",
    "OrchestratorAction",
    "PlanRejectedError",
    "create_cadence_orchestrator",
]
