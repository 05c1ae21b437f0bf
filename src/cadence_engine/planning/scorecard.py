"""Workload vectors, plan scorecards, ranking, and completion estimates."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from cadence_engine.domain.models import CadencePlanCandidate, CadenceRunPlan, PlanOutcome
from cadence_engine.planning.utility import (
    average_slot_weight,
    calculate_concurrency_peak,
    calculate_window_coverage,
    estimate_average_duration,
    max_slot_minutes,
    max_window_parallelism,
    total_estimated_minutes,
)

_UNCOVERED_POINTS = 30.0
_CONSTRAINT_POINTS = 4.0
_CONSTRAINT_POINTS_CAP = 30.0
_DURATION_ALLOWANCE_MINUTES = 80.0
_LOW_RISK_FLOOR = 70.0
_MEDIUM_RISK_FLOOR = 40.0
_TAIL_FACTOR = 0.2


class RiskBand(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True, slots=True)
class CadenceWorkloadVector:
    candidate_count: int
    window_count: int
    slot_count: int
    constraint_count: int
    average_slot_weight: float
    concurrent_peak: int
    window_coverage: float


@dataclass(frozen=True, slots=True)
class PlanScorecard:
    plan_id: str
    score: float
    warnings: tuple[str, ...]
    risk_band: RiskBand
    density: float


@dataclass(frozen=True, slots=True)
class PortfolioSummary:
    plan_count: int
    slot_count: int
    window_count: int
    ready_count: int
    average_readiness: float
    estimated_minutes: float
    risk_bands: dict[str, int]


def to_cadence_workload_vector(
    subject: CadencePlanCandidate | CadenceRunPlan,
) -> CadenceWorkloadVector:
    """Summarize a candidate or a plan; plans are recognized by ``readiness_score``."""
    if hasattr(subject, "readiness_score"):
        windows = subject.windows
        slots = subject.slots
        constraint_count = subject.policy_summary.enabled_constraints
    else:
        windows = subject.profile.windows
        slots = subject.profile.slots
        constraint_count = len(subject.constraints)

    return CadenceWorkloadVector(
        candidate_count=1,
        window_count=len(windows),
        slot_count=len(slots),
        constraint_count=constraint_count,
        average_slot_weight=round(average_slot_weight(slots), 3),
        concurrent_peak=calculate_concurrency_peak(slots),
        window_coverage=round(calculate_window_coverage(windows, slots), 3),
    )


def classify_risk(score: float) -> RiskBand:
    if score >= _LOW_RISK_FLOOR:
        return RiskBand.LOW
    if score >= _MEDIUM_RISK_FLOOR:
        return RiskBand.MEDIUM
    return RiskBand.HIGH


def build_plan_scorecard(plan: CadenceRunPlan) -> PlanScorecard:
    coverage = calculate_window_coverage(plan.windows, plan.slots)
    enabled = plan.policy_summary.enabled_constraints
    average = estimate_average_duration(plan.slots)

    score = (
        plan.readiness_score
        + (1.0 - coverage) * _UNCOVERED_POINTS
        + min(_CONSTRAINT_POINTS_CAP, enabled * _CONSTRAINT_POINTS)
        - max(0.0, average - _DURATION_ALLOWANCE_MINUTES)
    )
    score = round(score, 3)
    return PlanScorecard(
        plan_id=plan.id,
        score=score,
        warnings=plan.policy_summary.warnings,
        risk_band=classify_risk(score),
        density=round(len(plan.slots) / max(1, len(plan.windows)), 3),
    )


def rank_cadence_plans(plans: Iterable[CadenceRunPlan]) -> list[tuple[CadenceRunPlan, PlanScorecard]]:
    """Plans paired with their scorecards, best score first; ties ordered by plan id."""
    scored = [(plan, build_plan_scorecard(plan)) for plan in plans]
    scored.sort(key=lambda item: (-item[1].score, item[0].id))
    return scored


def estimate_run_completion_minutes(plan: CadenceRunPlan) -> float:
    total = total_estimated_minutes(plan.slots)
    parallelism = max(1, max_window_parallelism(plan.windows))
    return round(total / parallelism + max_slot_minutes(plan.slots) * _TAIL_FACTOR, 3)


def summarize_plan_portfolio(plans: Sequence[CadenceRunPlan]) -> PortfolioSummary:
    bands: Counter[str] = Counter(build_plan_scorecard(plan).risk_band.value for plan in plans)
    readiness = [plan.readiness_score for plan in plans]
    return PortfolioSummary(
        plan_count=len(plans),
        slot_count=sum(len(plan.slots) for plan in plans),
        window_count=sum(len(plan.windows) for plan in plans),
        ready_count=sum(1 for plan in plans if plan.outcome is PlanOutcome.READY),
        average_readiness=round(sum(readiness) / len(readiness), 3) if readiness else 0.0,
        estimated_minutes=round(sum(estimate_run_completion_minutes(plan) for plan in plans), 3),
        risk_bands={band.value: bands.get(band.value, 0) for band in RiskBand},
    )


__all__ = [
    "CadenceWorkloadVector",
    "PlanScorecard",
    "PortfolioSummary",
    "RiskBand",
    "build_plan_scorecard",
    "classify_risk",
    "estimate_run_completion_minutes",
    "rank_cadence_plans",
    "summarize_plan_portfolio",
    "to_cadence_workload_vector",
]
