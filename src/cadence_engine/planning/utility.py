"""Pure helpers over cadence windows and slots: indexing, calculators, partitioning."""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cadence_engine.domain.ids import CadenceSlotId, CadenceWindowId
    from cadence_engine.domain.models import (
        CadencePlanCandidate,
        CadenceRunPlan,
        CadenceSlot,
        CadenceWindow,
    )


@dataclass(frozen=True, slots=True)
class DependencyIndex:
    """In/out degree maps over the ``requires`` relation of a slot set."""

    in_degree: Mapping[CadenceSlotId, int]
    out_degree: Mapping[CadenceSlotId, int]
    dependents: Mapping[CadenceSlotId, tuple[CadenceSlotId, ...]]
    dangling: tuple[tuple[CadenceSlotId, CadenceSlotId], ...]


@dataclass(frozen=True, slots=True)
class CadencePartition:
    windows: tuple[CadenceWindow, ...]
    slots: tuple[CadenceSlot, ...]


@dataclass(frozen=True, slots=True)
class WindowSlice:
    window: CadenceWindow
    slots: tuple[CadenceSlot, ...]


def coerce_number(value: object, fallback: float = 0.0) -> float:
    """Return ``value`` as a finite float, or ``fallback`` when it is not numeric."""
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return fallback
    else:
        return fallback
    return parsed if math.isfinite(parsed) else fallback


def clamp(value: float, low: float, high: float) -> float:
    if low > high:
        raise ValueError("low must be <= high")
    return max(low, min(high, value))


def bucket_slots_by_window(slots: Iterable[CadenceSlot]) -> dict[CadenceWindowId, list[CadenceSlot]]:
    """Group slots by ``window_id`` preserving first-seen window and slot order."""
    buckets: dict[CadenceWindowId, list[CadenceSlot]] = {}
    for slot in slots:
        buckets.setdefault(slot.window_id, []).append(slot)
    return buckets


def build_dependency_index(slots: Sequence[CadenceSlot]) -> DependencyIndex:
    known = {slot.id for slot in slots}
    in_degree: dict[CadenceSlotId, int] = {slot.id: 0 for slot in slots}
    out_degree: dict[CadenceSlotId, int] = {slot.id: 0 for slot in slots}
    dependents: defaultdict[CadenceSlotId, list[CadenceSlotId]] = defaultdict(list)
    dangling: list[tuple[CadenceSlotId, CadenceSlotId]] = []

    for slot in slots:
        for dependency in slot.requires:
            in_degree[slot.id] += 1
            if dependency not in known:
                dangling.append((slot.id, dependency))
                continue
            out_degree[dependency] += 1
            dependents[dependency].append(slot.id)

    return DependencyIndex(
        in_degree=in_degree,
        out_degree=out_degree,
        dependents={key: tuple(value) for key, value in dependents.items()},
        dangling=tuple(dangling),
    )


def calculate_window_coverage(
    windows: Sequence[CadenceWindow],
    slots: Iterable[CadenceSlot],
) -> float:
    """Fraction of ``windows`` that have at least one slot assigned."""
    if not windows:
        return 0.0
    occupied = {slot.window_id for slot in slots}
    covered = sum(1 for window in windows if window.id in occupied)
    return covered / len(windows)


def calculate_concurrency_peak(slots: Iterable[CadenceSlot]) -> int:
    """Largest number of slots co-assigned to any single window."""
    buckets = bucket_slots_by_window(slots)
    if not buckets:
        return 0
    return max(len(bucket) for bucket in buckets.values())


def total_estimated_minutes(slots: Iterable[CadenceSlot]) -> float:
    return sum(coerce_number(slot.estimated_minutes) for slot in slots)


def estimate_average_duration(slots: Sequence[CadenceSlot]) -> float:
    if not slots:
        return 0.0
    return total_estimated_minutes(slots) / len(slots)


def max_slot_minutes(slots: Iterable[CadenceSlot]) -> float:
    return max((coerce_number(slot.estimated_minutes) for slot in slots), default=0.0)


def max_window_parallelism(windows: Iterable[CadenceWindow]) -> int:
    return max((window.max_parallelism for window in windows), default=0)


def average_slot_weight(slots: Sequence[CadenceSlot]) -> float:
    if not slots:
        return 0.0
    return sum(coerce_number(slot.weight) for slot in slots) / len(slots)


def sort_windows(windows: Sequence[CadenceWindow]) -> tuple[CadenceWindow, ...]:
    """Order windows by start time; ties keep their original insertion order."""
    indexed = sorted(enumerate(windows), key=lambda item: (item[1].starts_at, item[0]))
    return tuple(window for _, window in indexed)


def to_partition(candidate: CadencePlanCandidate) -> CadencePartition:
    """Keep the candidate's windows and only the slots bound to a known window."""
    windows = candidate.profile.windows
    known = {window.id for window in windows}
    slots = tuple(slot for slot in candidate.profile.slots if slot.window_id in known)
    return CadencePartition(windows=tuple(windows), slots=slots)


def dedupe_slots(slots: Sequence[CadenceSlot]) -> tuple[CadenceSlot, ...]:
    """
    Collapse slots sharing an id.

    The survivor is the twin with the lower ``estimated_minutes`` (first seen on
    ties); it takes the position of the first occurrence.
    """
    chosen: dict[CadenceSlotId, CadenceSlot] = {}
    for slot in slots:
        existing = chosen.get(slot.id)
        if existing is None or slot.estimated_minutes < existing.estimated_minutes:
            chosen[slot.id] = slot
    return tuple(chosen.values())


def split_windows(plan: CadenceRunPlan) -> tuple[WindowSlice, ...]:
    """One slice per plan window that owns at least one slot, in chronological order."""
    buckets = bucket_slots_by_window(plan.slots)
    return tuple(
        WindowSlice(window=window, slots=tuple(buckets[window.id]))
        for window in sort_windows(plan.windows)
        if window.id in buckets
    )


def estimate_window_capacity(window: CadenceWindow) -> float:
    """Slot-minutes the window can absorb: its length times ``max_parallelism``."""
    return max(0.0, window.duration_minutes) * max(0, window.max_parallelism)


__all__ = [
    "CadencePartition",
    "DependencyIndex",
    "WindowSlice",
    "average_slot_weight",
    "bucket_slots_by_window",
    "build_dependency_index",
    "calculate_concurrency_peak",
    "calculate_window_coverage",
    "clamp",
    "coerce_number",
    "dedupe_slots",
    "estimate_average_duration",
    "estimate_window_capacity",
    "max_slot_minutes",
    "max_window_parallelism",
    "sort_windows",
    "split_windows",
    "to_partition",
    "total_estimated_minutes",
]
