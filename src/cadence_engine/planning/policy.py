"""
Rule-based cadence policy evaluation.

Rules are pure ``(candidate, thresholds) -> messages`` checks tagged with a
severity. Block-severity messages and topology errors reject a candidate;
everything else is reported as a warning. The numeric score is a bounded,
deterministic function of coverage, topology health, size, duration, and
concurrency.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from cadence_engine.constants import (
    DEFAULT_CONCURRENCY_MULTIPLIER,
    DEFAULT_COVERAGE_FLOOR,
    DEFAULT_DURATION_CEILING_MINUTES,
    DEFAULT_RETRY_CEILING,
)
from cadence_engine.domain.models import CadenceEvaluation
from cadence_engine.planning.topology import validate_topology
from cadence_engine.planning.utility import (
    bucket_slots_by_window,
    calculate_concurrency_peak,
    calculate_window_coverage,
    clamp,
    estimate_average_duration,
    max_window_parallelism,
)

if TYPE_CHECKING:
    from cadence_engine.domain.models import CadencePlanCandidate

# Score shaping.
_COVERAGE_POINTS = 45.0
_TOPOLOGY_ERROR_PENALTY = 12.0
_SLOT_ALLOWANCE = 10
_DURATION_ALLOWANCE_MINUTES = 90.0
_DURATION_PENALTY_RATE = 0.2
_PEAK_PENALTY = 2.0


class RuleSeverity(StrEnum):
    INFO = "info"
    WARN = "warn"
    BLOCK = "block"


@dataclass(frozen=True, slots=True)
class PolicyThresholds:
    """Tunable limits consulted by the built-in rules."""

    coverage_floor: float = DEFAULT_COVERAGE_FLOOR
    concurrency_multiplier: float = DEFAULT_CONCURRENCY_MULTIPLIER
    retry_ceiling: int = DEFAULT_RETRY_CEILING
    duration_ceiling_minutes: float = DEFAULT_DURATION_CEILING_MINUTES

    def __post_init__(self) -> None:
        if not 0.0 <= self.coverage_floor <= 1.0:
            raise ValueError("coverage_floor must be between 0 and 1")
        if self.concurrency_multiplier <= 0:
            raise ValueError("concurrency_multiplier must be > 0")
        if self.retry_ceiling < 0:
            raise ValueError("retry_ceiling must be >= 0")
        if self.duration_ceiling_minutes <= 0:
            raise ValueError("duration_ceiling_minutes must be > 0")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> PolicyThresholds:
        """Build thresholds from the ``[policy]`` section of an effective config."""
        section = config.get("policy", {})
        return cls(
            coverage_floor=float(section.get("coverage_floor", DEFAULT_COVERAGE_FLOOR)),
            concurrency_multiplier=float(
                section.get("concurrency_multiplier", DEFAULT_CONCURRENCY_MULTIPLIER)
            ),
            retry_ceiling=int(section.get("retry_ceiling", DEFAULT_RETRY_CEILING)),
            duration_ceiling_minutes=float(
                section.get("duration_ceiling_minutes", DEFAULT_DURATION_CEILING_MINUTES)
            ),
        )


RuleCheck = Callable[["CadencePlanCandidate", PolicyThresholds], list[str]]


@dataclass(frozen=True, slots=True)
class PolicyRule:
    name: str
    severity: RuleSeverity
    check: RuleCheck


def coverage_rule(candidate: CadencePlanCandidate, thresholds: PolicyThresholds) -> list[str]:
    coverage = calculate_window_coverage(candidate.profile.windows, candidate.profile.slots)
    if coverage >= thresholds.coverage_floor:
        return []
    return [f"window coverage {coverage:.2f} is below {thresholds.coverage_floor:.2f}"]


def concurrency_rule(candidate: CadencePlanCandidate, thresholds: PolicyThresholds) -> list[str]:
    peak = calculate_concurrency_peak(candidate.profile.slots)
    bound = thresholds.concurrency_multiplier * max_window_parallelism(candidate.profile.windows)
    if peak <= bound:
        return []
    return [f"concurrency peak {peak} exceeds bound {bound:g}"]


def retry_rule(candidate: CadencePlanCandidate, thresholds: PolicyThresholds) -> list[str]:
    return [
        f"window {window.id} allows {window.max_retries} retries (ceiling {thresholds.retry_ceiling})"
        for window in candidate.profile.windows
        if window.max_retries > thresholds.retry_ceiling
    ]


def duration_rule(candidate: CadencePlanCandidate, thresholds: PolicyThresholds) -> list[str]:
    return [
        f"slot {slot.id} runs {slot.estimated_minutes:g} minutes "
        f"(ceiling {thresholds.duration_ceiling_minutes:g})"
        for slot in candidate.profile.slots
        if slot.estimated_minutes > thresholds.duration_ceiling_minutes
    ]


DEFAULT_RULES: tuple[PolicyRule, ...] = (
    PolicyRule(name="coverage", severity=RuleSeverity.WARN, check=coverage_rule),
    PolicyRule(name="concurrency", severity=RuleSeverity.BLOCK, check=concurrency_rule),
    PolicyRule(name="retries", severity=RuleSeverity.WARN, check=retry_rule),
    PolicyRule(name="duration", severity=RuleSeverity.WARN, check=duration_rule),
)


class CadencePolicyEngine:
    """Evaluate candidates against a fixed rule set and thresholds."""

    def __init__(
        self,
        thresholds: PolicyThresholds | None = None,
        *,
        rules: Sequence[PolicyRule] | None = None,
    ) -> None:
        self._thresholds = thresholds if thresholds is not None else PolicyThresholds()
        self._rules = tuple(rules) if rules is not None else DEFAULT_RULES

    @property
    def thresholds(self) -> PolicyThresholds:
        return self._thresholds

    @property
    def rules(self) -> tuple[PolicyRule, ...]:
        return self._rules

    def evaluate(self, candidate: CadencePlanCandidate) -> CadenceEvaluation:
        topology = validate_topology(candidate)

        blocked: list[str] = []
        warnings: list[str] = []
        for rule in self._rules:
            messages = rule.check(candidate, self._thresholds)
            if rule.severity is RuleSeverity.BLOCK:
                blocked.extend(messages)
            else:
                warnings.extend(messages)
        warnings.extend(topology.dangling)

        reasons = (*blocked, *topology.errors)
        return CadenceEvaluation(
            ok=not reasons,
            reasons=reasons,
            score=self.score(candidate, topology_errors=len(topology.errors)),
            warnings=tuple(warnings),
        )

    def blocking_rules(self, candidate: CadencePlanCandidate) -> tuple[str, ...]:
        """Names of block-severity rules that fire for ``candidate``."""
        return tuple(
            rule.name
            for rule in self._rules
            if rule.severity is RuleSeverity.BLOCK and rule.check(candidate, self._thresholds)
        )

    @staticmethod
    def score(candidate: CadencePlanCandidate, *, topology_errors: int) -> float:
        windows = candidate.profile.windows
        slots = candidate.profile.slots
        coverage = calculate_window_coverage(windows, slots)
        average = estimate_average_duration(slots)
        peak = calculate_concurrency_peak(slots)

        raw = (
            coverage * _COVERAGE_POINTS
            - topology_errors * _TOPOLOGY_ERROR_PENALTY
            - max(0, len(slots) - _SLOT_ALLOWANCE)
            - _DURATION_PENALTY_RATE * max(0.0, average - _DURATION_ALLOWANCE_MINUTES)
            - _PEAK_PENALTY * peak
        ) / max(1, len(windows) + len(slots))
        return round(clamp(raw, 0.0, 100.0), 3)

    def recommend(self, candidate: CadencePlanCandidate) -> list[str]:
        """Advisory hints; they never influence acceptance."""
        windows = candidate.profile.windows
        slots = candidate.profile.slots
        hints: list[str] = []

        if len(windows) < 2:
            hints.append("add a second window so slots can fall back when the first one closes")

        for slot in slots:
            if slot.estimated_minutes > self._thresholds.duration_ceiling_minutes:
                hints.append(f"split slot {slot.id} into shorter steps")

        occupied = bucket_slots_by_window(slots)
        idle = [window.id for window in windows if window.id not in occupied]
        if windows and calculate_window_coverage(windows, slots) < self._thresholds.coverage_floor:
            hints.append(f"assign slots to idle windows: {', '.join(idle)}")

        peak = calculate_concurrency_peak(slots)
        parallelism = max_window_parallelism(windows)
        if peak > parallelism:
            hints.append(
                f"spread slots across windows; peak {peak} exceeds max parallelism {parallelism}"
            )

        for window in windows:
            if window.max_retries == 0:
                hints.append(f"window {window.id} has no retry headroom")

        topology = validate_topology(candidate)
        if topology.dangling:
            hints.append(f"resolve {len(topology.dangling)} dangling slot dependencies")
        if topology.circular_dependencies:
            hints.append(
                "break the dependency cycle through "
                + ", ".join(topology.circular_dependencies)
            )

        if not candidate.enabled_constraints:
            hints.append("enable at least one policy constraint")

        return hints


def evaluate_cadence(
    candidate: CadencePlanCandidate,
    engine: CadencePolicyEngine | None = None,
) -> CadenceEvaluation:
    """Evaluate ``candidate`` with ``engine`` or a default-threshold engine."""
    active = engine if engine is not None else CadencePolicyEngine()
    return active.evaluate(candidate)


__all__ = [
    "DEFAULT_RULES",
    "CadencePolicyEngine",
    "PolicyRule",
    "PolicyThresholds",
    "RuleSeverity",
    "concurrency_rule",
    "coverage_rule",
    "duration_rule",
    "evaluate_cadence",
    "retry_rule",
]
