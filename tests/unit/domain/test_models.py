"""Unit tests for cadence domain models: strict parsing and canonical serialization."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from factories import candidate_payload, make_slot, make_window, two_window_candidate

from cadence_engine.domain.models import (
    CadencePlanCandidate,
    CadencePriority,
    CadenceSchemaError,
    CadenceSlot,
    CadenceWindow,
    datetime_to_iso8601z,
)


def test_candidate_round_trips_through_canonical_json() -> None:
    candidate = two_window_candidate()

    restored = CadencePlanCandidate.from_dict(json.loads(candidate.to_json()))

    assert restored == candidate
    assert restored.profile.priority is CadencePriority.NORMAL


def test_datetimes_serialize_as_utc_millisecond_strings() -> None:
    payload = make_window().to_dict()

    assert payload["starts_at"] == "2026-03-02T08:00:00.000Z"
    assert datetime_to_iso8601z(datetime(2026, 1, 1, 12, 30)) == "2026-01-01T12:30:00.000Z"


def test_window_rejects_unqualified_timezone() -> None:
    payload = make_window().to_dict()
    payload["timezone"] = "UTC"

    with pytest.raises(CadenceSchemaError, match=r"CadenceWindow\.timezone"):
        CadenceWindow.from_dict(payload)


def test_window_rejects_naive_datetimes() -> None:
    payload = make_window().to_dict()
    payload["starts_at"] = "2026-03-02T08:00:00"

    with pytest.raises(CadenceSchemaError, match="UTC offset"):
        CadenceWindow.from_dict(payload)


def test_slot_rejects_weight_outside_unit_interval() -> None:
    payload = make_slot("s1").to_dict()
    payload["weight"] = 1.5

    with pytest.raises(CadenceSchemaError, match=r"CadenceSlot\.weight: must be <= 1.0"):
        CadenceSlot.from_dict(payload)


def test_slot_optional_fields_default_to_empty() -> None:
    payload = make_slot("s1").to_dict()
    del payload["tags"]
    del payload["requires"]

    slot = CadenceSlot.from_dict(payload)

    assert slot.tags == ()
    assert slot.requires == ()


def test_candidate_rejects_unknown_fields_with_path() -> None:
    payload = candidate_payload()
    payload["extra"] = True

    with pytest.raises(CadenceSchemaError, match=r"unexpected fields: \['extra'\]"):
        CadencePlanCandidate.from_dict(payload)


def test_nested_errors_carry_the_full_field_path() -> None:
    payload = candidate_payload()
    profile = payload["profile"]
    assert isinstance(profile, dict)
    slots = profile["slots"]
    assert isinstance(slots, list)
    slots[1]["estimated_minutes"] = "soon"

    with pytest.raises(CadenceSchemaError, match=r"CadencePlanCandidate\.profile\.slots\[1\]"):
        CadencePlanCandidate.from_dict(payload)


def test_revise_increments_revision_and_keeps_original() -> None:
    candidate = two_window_candidate()

    revised = candidate.revise(notes=("refined",))

    assert revised.revision == candidate.revision + 1
    assert revised.notes == ("refined",)
    assert candidate.notes == ("fixture",)
    with pytest.raises(ValueError, match="revision is assigned"):
        candidate.revise(revision=9)


def test_window_duration_minutes() -> None:
    window = make_window(hours=1.5)

    assert window.duration_minutes == 90.0
    assert window.starts_at.tzinfo is UTC
