"""Unit tests for planning.planner: candidate parsing, assembly, and plan construction."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
import yaml
from factories import (
    candidate_payload,
    make_candidate,
    make_run,
    make_session,
    make_slot,
    make_window,
    two_window_candidate,
)

from cadence_engine.domain.ids import CadenceRunId
from cadence_engine.domain.models import CadencePriority, CadenceSource, PlanOutcome
from cadence_engine.planning.planner import (
    EMPTY_PLAN_REASON,
    EMPTY_PLAN_WARNING,
    CandidateSchemaError,
    build_candidate_from_run,
    envelope_for_cadence_plan,
    load_cadence_candidate,
    parse_cadence_candidate,
    plan_candidate,
    revalidate_plan,
    validate_cadence_run_plan,
)
from cadence_engine.planning.policy import CadencePolicyEngine, PolicyThresholds
from cadence_engine.planning.topology import build_topology

if TYPE_CHECKING:
    from pathlib import Path

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def test_parse_rejects_non_mapping_payloads() -> None:
    with pytest.raises(CandidateSchemaError) as error:
        parse_cadence_candidate(["not", "a", "mapping"])

    assert error.value.path == "CadencePlanCandidate"


def test_parse_reports_failing_field_path() -> None:
    payload = candidate_payload()
    payload["profile"]["slots"][0]["weight"] = 2  # type: ignore[index]

    with pytest.raises(CandidateSchemaError) as error:
        parse_cadence_candidate(payload)

    assert error.value.path == "CadencePlanCandidate.profile.slots[0].weight"
    assert isinstance(error.value, ValueError)


def test_load_candidate_reads_yaml_and_json(tmp_path: Path) -> None:
    yaml_path = tmp_path / "candidate.yaml"
    json_path = tmp_path / "candidate.json"
    yaml_path.write_text(yaml.safe_dump(candidate_payload()), encoding="utf-8")
    json_path.write_text(json.dumps(candidate_payload()), encoding="utf-8")

    assert load_cadence_candidate(yaml_path) == two_window_candidate()
    assert load_cadence_candidate(json_path) == two_window_candidate()


def test_load_candidate_wraps_io_and_syntax_errors(tmp_path: Path) -> None:
    broken = tmp_path / "broken.yaml"
    broken.write_text("profile: [unclosed\n", encoding="utf-8")

    with pytest.raises(CandidateSchemaError, match="unable to read"):
        load_cadence_candidate(tmp_path / "missing.yaml")
    with pytest.raises(CandidateSchemaError, match="invalid candidate document"):
        load_cadence_candidate(broken)


def test_build_candidate_from_run_bakes_in_run_constraints() -> None:
    run = make_run(status=None)
    session = make_session(max_retries=9, approval_required=True)

    candidate = build_candidate_from_run(
        run,
        session,
        [make_window("w1")],
        [make_slot("s1")],
        CadenceSource.OPERATOR,
        revision=12,
    )

    alignment, retry_cap = candidate.constraints
    assert alignment.id == "run-run-42-prog-7-queued-sess-1-run-42-TICKET-9"
    assert alignment.key == "window_alignment"
    assert alignment.enabled
    assert retry_cap.id == "run-42-constraints"
    assert retry_cap.expression == "maxRetries <= 8"
    assert not retry_cap.enabled
    assert candidate.notes == ("run=run-42", "session=run-42", "windowCount=1")
    assert candidate.profile.priority is CadencePriority.HIGH
    assert candidate.profile.source is CadenceSource.OPERATOR
    assert candidate.revision == 12


def test_build_candidate_from_run_assigns_increasing_revisions() -> None:
    first = build_candidate_from_run(make_run(), make_session(), [], [], CadenceSource.PLANNER)
    second = build_candidate_from_run(make_run(), make_session(), [], [], CadenceSource.PLANNER)

    assert second.revision > first.revision
    assert first.constraints[1].enabled


def test_plan_candidate_produces_ready_plan() -> None:
    candidate = two_window_candidate()

    plan = plan_candidate(candidate, NOW)

    assert plan.id == "cadence-1"
    assert plan.run_id == f"run-1-{int(NOW.timestamp() * 1000)}"
    assert plan.outcome is PlanOutcome.READY
    assert plan.created_at == NOW
    assert plan.readiness_score == 4.571
    assert plan.policy_summary.enabled_constraints == 1
    assert plan.audit.approved
    assert plan.audit.approved_at == NOW
    assert plan.audit.reviewed_by == ("planner",)
    assert plan.audit.reason_trail == ("s1->s2", "s1->s3", "s2->s4", "s3->s4")


def test_plan_candidate_defers_blocked_candidates() -> None:
    candidate = make_candidate(
        [make_window("w1", parallelism=1)],
        [make_slot("a"), make_slot("b"), make_slot("c")],
    )

    plan = plan_candidate(candidate, NOW)

    assert plan.outcome is PlanOutcome.DEFERRED
    assert not plan.audit.approved
    assert plan.audit.approved_at is None
    assert plan.policy_summary.blocked_by_rules == ("concurrency peak 3 exceeds bound 2",)


def test_plan_slots_are_a_subset_bound_to_plan_windows() -> None:
    candidate = make_candidate(
        [make_window("w1")],
        [make_slot("s1", "w1"), make_slot("s2", "elsewhere")],
    )

    plan = plan_candidate(candidate, NOW)
    window_ids = {window.id for window in plan.windows}

    assert set(plan.slots) <= set(candidate.profile.slots)
    assert all(slot.window_id in window_ids for slot in plan.slots)
    assert [slot.id for slot in plan.slots] == ["s1"]


def test_plan_slots_collapse_duplicate_ids_to_the_shorter_twin() -> None:
    candidate = make_candidate(
        [make_window("w1")],
        [make_slot("s1", minutes=60.0), make_slot("s1", minutes=20.0), make_slot("s2")],
    )

    plan = plan_candidate(candidate, NOW)

    assert [slot.id for slot in plan.slots] == ["s1", "s2"]
    assert plan.slots[0].estimated_minutes == 20.0
    assert [slot.id for slot in plan.slots] == list(build_topology(candidate).order)


def test_digests_are_stable_and_content_sensitive() -> None:
    candidate = two_window_candidate()

    first = plan_candidate(candidate, NOW)
    second = plan_candidate(candidate, NOW)
    changed = plan_candidate(candidate.revise(notes=("other",)), NOW)

    assert first.candidate_hash == second.candidate_hash
    assert first.constraint_fingerprint == second.constraint_fingerprint
    assert changed.candidate_hash != first.candidate_hash
    assert changed.constraint_fingerprint != first.constraint_fingerprint


def test_plan_candidate_treats_naive_now_as_utc() -> None:
    plan = plan_candidate(two_window_candidate(), datetime(2026, 3, 2, 9, 0))

    assert plan.created_at == NOW


def test_zero_slot_plan_never_validates() -> None:
    plan = plan_candidate(make_candidate([make_window()], []), NOW)

    evaluation = validate_cadence_run_plan(plan)

    assert not evaluation.ok
    assert evaluation.reasons == (EMPTY_PLAN_REASON,)
    assert evaluation.warnings == (EMPTY_PLAN_WARNING,)
    assert evaluation.score == 0.0


def test_validate_run_plan_ignores_non_ascii_digits_in_run_id() -> None:
    plan = plan_candidate(two_window_candidate(), NOW)
    superscript = replace(plan, run_id=CadenceRunId("run-\u00b2"))

    evaluation = validate_cadence_run_plan(superscript)

    assert evaluation == validate_cadence_run_plan(plan)


def test_validate_run_plan_uses_the_given_policy() -> None:
    plan = plan_candidate(
        make_candidate(
            [make_window("w1", parallelism=1)],
            [make_slot("a"), make_slot("b"), make_slot("c")],
        ),
        NOW,
    )
    relaxed = CadencePolicyEngine(PolicyThresholds(concurrency_multiplier=5.0))

    assert not validate_cadence_run_plan(plan).ok
    assert validate_cadence_run_plan(plan, policy=relaxed).ok


def test_revalidate_projects_outcome_but_keeps_terminal_states() -> None:
    plan = plan_candidate(two_window_candidate(), NOW)
    empty = plan_candidate(make_candidate([make_window()], []), NOW)

    revalidated, evaluation = revalidate_plan(empty)
    assert not evaluation.ok
    assert revalidated.outcome is PlanOutcome.DEFERRED

    completed = plan.with_outcome(PlanOutcome.COMPLETED)
    kept, _ = revalidate_plan(completed)
    assert kept is completed

    deferred = plan.with_outcome(PlanOutcome.DEFERRED)
    restored, _ = revalidate_plan(deferred)
    assert restored.outcome is PlanOutcome.READY


def test_envelope_wraps_plan_with_versioned_id() -> None:
    plan = plan_candidate(two_window_candidate(), NOW)

    envelope = envelope_for_cadence_plan(plan)

    assert envelope.id == "env-cadence-1"
    assert envelope.version == 1
    assert envelope.payload is plan
    assert envelope.profile == plan.profile
    assert envelope.to_dict()["payload"]["id"] == "cadence-1"  # type: ignore[index]
