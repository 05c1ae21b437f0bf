"""Unit tests for cadence id helpers."""

from __future__ import annotations

import threading
from datetime import UTC, datetime

import pytest

from cadence_engine.domain.ids import (
    RevisionSequence,
    cadence_plan_id,
    cadence_slot_id,
    cadence_window_id,
    generate_prefixed_id,
    next_revision,
    run_plan_id,
    to_cadence_run_id,
    validate_prefixed_id,
)


def test_generate_prefixed_id_is_deterministic_for_fixed_inputs() -> None:
    moment = datetime(2026, 3, 2, 8, 15, 30, tzinfo=UTC)

    value = generate_prefixed_id("session", now=moment, token=lambda n: "AB" * n)

    assert value == "session-20260302T081530-abababab"
    validate_prefixed_id(value, "session")


def test_generate_prefixed_id_rejects_bad_prefixes() -> None:
    with pytest.raises(ValueError, match="lowercase alphanumeric"):
        generate_prefixed_id("bad-prefix")
    with pytest.raises(ValueError, match="lowercase alphanumeric"):
        generate_prefixed_id("")


def test_validate_prefixed_id_explains_each_failure() -> None:
    session_id = generate_prefixed_id("session")

    assert session_id.startswith("session-")
    with pytest.raises(ValueError, match="does not carry the 'plan' prefix"):
        validate_prefixed_id(session_id, "plan")
    with pytest.raises(ValueError, match="malformed"):
        validate_prefixed_id("session-20260302T081530-XYZ", "session")
    with pytest.raises(ValueError, match="impossible timestamp"):
        validate_prefixed_id("session-20261399T081530-abababab", "session")


def test_revision_sequence_is_monotonic_across_threads() -> None:
    sequence = RevisionSequence()
    seen: list[int] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(500):
            value = sequence.next()
            with lock:
                seen.append(value)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(seen) == list(range(1, 2001))
    assert sequence.current == 2000


def test_next_revision_never_repeats() -> None:
    first = next_revision()
    second = next_revision()

    assert second > first


def test_derived_ids_follow_naming_conventions() -> None:
    assert cadence_plan_id(7) == "cadence-7"
    assert cadence_window_id("run-1", 0) == "run-1-window-0"
    assert cadence_slot_id("run-1", "step-a") == "run-1-step-a"
    assert run_plan_id("run-1", "sess-1") == "run-1-sess-1"
    assert to_cadence_run_id("run-1") == "run-1-cadence"
