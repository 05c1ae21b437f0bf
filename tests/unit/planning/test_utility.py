"""Unit tests for planning.utility calculators and partitioning."""

from __future__ import annotations

import math
from dataclasses import replace

import pytest
from factories import make_candidate, make_slot, make_window, two_window_candidate

from cadence_engine.planning.planner import plan_candidate
from cadence_engine.planning.utility import (
    average_slot_weight,
    bucket_slots_by_window,
    build_dependency_index,
    calculate_concurrency_peak,
    calculate_window_coverage,
    clamp,
    coerce_number,
    dedupe_slots,
    estimate_average_duration,
    estimate_window_capacity,
    sort_windows,
    split_windows,
    to_partition,
)


def test_coerce_number_falls_back_for_non_numeric_values() -> None:
    assert coerce_number(3) == 3.0
    assert coerce_number(" 2.5 ") == 2.5
    assert coerce_number("nope", 7.0) == 7.0
    assert coerce_number(True, 1.0) == 1.0
    assert coerce_number(math.nan) == 0.0
    assert coerce_number(None) == 0.0


def test_clamp_bounds_and_rejects_inverted_range() -> None:
    assert clamp(5.0, 0.0, 1.0) == 1.0
    assert clamp(-5.0, 0.0, 1.0) == 0.0
    with pytest.raises(ValueError):
        clamp(0.5, 1.0, 0.0)


def test_two_window_scenario_metrics() -> None:
    candidate = two_window_candidate()
    windows = candidate.profile.windows
    slots = candidate.profile.slots

    assert calculate_window_coverage(windows, slots) == 1.0
    assert calculate_concurrency_peak(slots) == 3
    assert estimate_average_duration(slots) == 30.0
    assert average_slot_weight(slots) == 0.5
    assert list(bucket_slots_by_window(slots)) == ["w1", "w2"]


def test_empty_inputs_yield_zero_metrics() -> None:
    assert calculate_window_coverage([], [make_slot("s1")]) == 0.0
    assert calculate_concurrency_peak([]) == 0
    assert estimate_average_duration([]) == 0.0
    assert average_slot_weight([]) == 0.0


def test_coverage_never_decreases_when_slots_are_added() -> None:
    windows = [make_window("w1"), make_window("w2", offset_hours=4), make_window("w3", offset_hours=8)]
    slots = [make_slot("s1", "w1")]
    before = calculate_window_coverage(windows, slots)

    for extra in ("w1", "w2", "w3", "unknown"):
        slots.append(make_slot(f"x-{extra}", extra))
        after = calculate_window_coverage(windows, slots)
        assert after >= before
        before = after

    assert before == 1.0


def test_dependency_index_tracks_degrees_and_dangling_requirements() -> None:
    slots = [
        make_slot("a"),
        make_slot("b", requires=("a",)),
        make_slot("c", requires=("a", "ghost")),
    ]

    index = build_dependency_index(slots)

    assert index.in_degree == {"a": 0, "b": 1, "c": 2}
    assert index.out_degree == {"a": 2, "b": 0, "c": 0}
    assert index.dependents == {"a": ("b", "c")}
    assert index.dangling == (("c", "ghost"),)


def test_partition_keeps_only_slots_bound_to_known_windows() -> None:
    candidate = make_candidate(
        [make_window("w1")],
        [make_slot("s1", "w1"), make_slot("s2", "w9"), make_slot("s3", "w1")],
    )

    partition = to_partition(candidate)
    known = {window.id for window in partition.windows}

    assert [slot.id for slot in partition.slots] == ["s1", "s3"]
    assert set(partition.slots) <= set(candidate.profile.slots)
    assert all(slot.window_id in known for slot in partition.slots)


def test_sort_windows_is_chronological_and_stable() -> None:
    late = make_window("late", offset_hours=6)
    first = make_window("first")
    twin = make_window("twin")

    assert [window.id for window in sort_windows([late, first, twin])] == ["first", "twin", "late"]


def test_dedupe_keeps_cheaper_twin_at_first_position() -> None:
    slots = [
        make_slot("a", minutes=45),
        make_slot("b", minutes=10),
        make_slot("a", minutes=20),
        make_slot("a", minutes=20, weight=0.9),
    ]

    deduped = dedupe_slots(slots)

    assert [slot.id for slot in deduped] == ["a", "b"]
    assert deduped[0].estimated_minutes == 20
    assert deduped[0].weight == 0.5


def test_split_windows_skips_empty_windows_in_chronological_order() -> None:
    candidate = make_candidate(
        [
            make_window("later", offset_hours=8),
            make_window("empty", offset_hours=4),
            make_window("early"),
        ],
        [make_slot("s1", "later"), make_slot("s2", "early"), make_slot("s3", "early")],
    )
    plan = plan_candidate(candidate)

    slices = split_windows(plan)

    assert [item.window.id for item in slices] == ["early", "later"]
    assert [slot.id for slot in slices[0].slots] == ["s2", "s3"]


def test_window_capacity_is_length_times_parallelism() -> None:
    window = make_window(hours=2, parallelism=3)

    assert estimate_window_capacity(window) == 360.0
    inverted = replace(window, ends_at=window.starts_at)
    assert estimate_window_capacity(inverted) == 0.0
