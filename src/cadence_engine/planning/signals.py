"""Readiness-signal density summaries used when assembling candidates from runs."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from cadence_engine.domain.models import ReadinessConstraintSet, ReadinessSignal

DEFAULT_SIGNALS_PER_TARGET = 3


@dataclass(frozen=True, slots=True)
class SignalSummary:
    run_id: str
    unique_targets: int
    dense_signals: tuple[ReadinessSignal, ...]
    source_map: dict[str, int] = field(default_factory=dict)


def density_limit(constraints: Iterable[ReadinessConstraintSet]) -> int:
    """Tightest positive ``max_signals_per_minute`` across ``constraints``."""
    limits = [
        constraint.max_signals_per_minute
        for constraint in constraints
        if constraint.max_signals_per_minute is not None and constraint.max_signals_per_minute > 0
    ]
    return min(limits, default=DEFAULT_SIGNALS_PER_TARGET)


def summarize_cadence_signals(
    run_id: str,
    signals: Sequence[ReadinessSignal],
    constraints: Sequence[ReadinessConstraintSet] = (),
) -> SignalSummary:
    """
    Count targets and sources, and flag dense targets.

    A target is dense when it carries more signals than the density limit; the
    first signal seen for each dense target represents it in ``dense_signals``.
    """
    limit = density_limit(constraints)
    per_target: dict[str, list[ReadinessSignal]] = {}
    source_map: dict[str, int] = {}
    for signal in signals:
        per_target.setdefault(signal.target_id, []).append(signal)
        source_map[signal.source] = source_map.get(signal.source, 0) + 1

    dense = tuple(bucket[0] for bucket in per_target.values() if len(bucket) > limit)
    return SignalSummary(
        run_id=run_id,
        unique_targets=len(per_target),
        dense_signals=dense,
        source_map=source_map,
    )


__all__ = [
    "DEFAULT_SIGNALS_PER_TARGET",
    "SignalSummary",
    "density_limit",
    "summarize_cadence_signals",
]
