"""Unit tests for persistence.plan_registry."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest
from factories import BASE_TIME, FakeClock, make_candidate, make_slot, make_window, two_window_candidate

from cadence_engine.persistence.plan_registry import CadencePlanRegistry
from cadence_engine.planning.planner import plan_candidate


def test_plan_ttl_defaults_to_multiple_of_candidate_ttl() -> None:
    registry = CadencePlanRegistry(15)

    assert registry.candidate_ttl == timedelta(minutes=15)
    assert registry.plan_ttl == timedelta(minutes=30)


@pytest.mark.parametrize(
    ("candidate_ttl", "plan_ttl", "message"),
    [
        (0, None, "candidate_ttl_minutes"),
        (-5, None, "candidate_ttl_minutes"),
        (10, 0, "plan_ttl_minutes"),
    ],
)
def test_rejects_non_positive_ttls(candidate_ttl: float, plan_ttl: float | None, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        CadencePlanRegistry(candidate_ttl, plan_ttl_minutes=plan_ttl)


def test_register_candidate_indexes_windows_and_slots() -> None:
    clock = FakeClock()
    registry = CadencePlanRegistry(30, clock=clock)
    candidate = two_window_candidate()

    entry = registry.register_candidate(candidate, "run-42-cadence")

    assert entry.key == f"run-42-{candidate.revision}-{int(BASE_TIME.timestamp() * 1000)}"
    assert entry.expires_at == BASE_TIME + timedelta(minutes=30)
    assert registry.get_candidate(entry.key) == entry
    assert registry.get_window("run-42-cadence", "w2") == candidate.profile.windows[1]
    assert registry.get_slot("run-42-cadence", "s4") == candidate.profile.slots[3]
    assert registry.get_slot("other-run", "s4") is None
    assert registry.size() == 1


def test_candidates_expire_after_ttl() -> None:
    clock = FakeClock()
    registry = CadencePlanRegistry(30, clock=clock)
    entry = registry.register_candidate(two_window_candidate(), "run-42-cadence")

    clock.advance(minutes=29)
    assert registry.get_candidate(entry.key) is not None

    clock.advance(minutes=1)
    assert registry.get_candidate(entry.key) is None
    assert registry.get_window("run-42-cadence", "w1") is None
    assert registry.size() == 0


def test_plans_outlive_candidates() -> None:
    clock = FakeClock()
    registry = CadencePlanRegistry(30, clock=clock)
    candidate = two_window_candidate()
    registry.register_candidate(candidate, "run-42-cadence")
    plan = plan_candidate(candidate, BASE_TIME)
    registry.register_plan(plan)

    clock.advance(minutes=45)

    assert registry.get_plan(plan.id) == plan
    assert registry.get_slot(plan.run_id, "s1") == plan.slots[0]
    assert registry.list_recent_candidates() == []

    clock.advance(minutes=15)
    assert registry.get_plan(plan.id) is None


def test_listings_are_newest_first_and_limited() -> None:
    clock = FakeClock()
    registry = CadencePlanRegistry(60, clock=clock)
    plans = []
    for revision in (1, 2, 3):
        candidate = make_candidate(
            [make_window("w1")], [make_slot("s1")], revision=revision
        )
        registry.register_candidate(candidate, "run-42-cadence")
        plans.append(plan_candidate(candidate, clock()))
        registry.register_plan(plans[-1])
        clock.advance(minutes=1)

    assert [entry.candidate.revision for entry in registry.list_recent_candidates()] == [3, 2, 1]
    assert [entry.plan.id for entry in registry.list_recent_plans(2)] == [plans[2].id, plans[1].id]
    assert registry.list_recent_plans(0) == []


def test_same_timestamp_listings_prefer_latest_registration() -> None:
    registry = CadencePlanRegistry(60, clock=FakeClock())
    for revision in (1, 2):
        registry.register_candidate(
            make_candidate([make_window("w1")], [make_slot("s1")], revision=revision),
            "run-42-cadence",
        )

    assert [entry.candidate.revision for entry in registry.list_recent_candidates()] == [2, 1]


def test_remove_run_drops_every_index_entry() -> None:
    registry = CadencePlanRegistry(30, clock=FakeClock())
    registry.register_candidate(two_window_candidate(), "run-42-cadence")
    registry.register_candidate(replace(two_window_candidate(), revision=2), "run-99-cadence")

    removed = registry.remove_run("run-42-cadence")

    # one candidate, two windows, five slots
    assert removed == 8
    assert registry.get_window("run-42-cadence", "w1") is None
    assert registry.get_window("run-99-cadence", "w1") is not None
    assert registry.size() == 1
    assert registry.remove_run("run-42-cadence") == 0
