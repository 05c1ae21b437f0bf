"""Unit tests for the plain-text report renderer."""

from __future__ import annotations

import io
from datetime import UTC, datetime

import pytest
from factories import two_window_candidate

from cadence_engine.domain.models import CadenceEvaluation, PlanOutcome
from cadence_engine.planning.planner import plan_candidate
from cadence_engine.ui.render import CLIRenderer, format_table

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class _TTY(io.StringIO):
    def isatty(self) -> bool:
        return True


def test_format_table_pads_columns_to_widest_cell() -> None:
    lines = format_table(("ID", "MINUTES"), [("slot-long", 5), ("s", 120)])

    assert lines == [
        "ID         MINUTES",
        "---------  -------",
        "slot-long  5",
        "s          120",
    ]


def test_table_skips_empty_rows() -> None:
    out = io.StringIO()

    CLIRenderer(stream=out).table(("A",), [], title="Nothing:")

    assert out.getvalue() == ""


def test_plan_report_lists_slots_and_outcome() -> None:
    out = io.StringIO()
    plan = plan_candidate(two_window_candidate(), NOW)

    CLIRenderer(stream=out).plan(plan)

    text = out.getvalue()
    assert f"Outcome: {plan.outcome.value}" in text
    assert "Slots: 5" in text
    assert "SLOT" in text
    assert "Candidate hash" not in text
    assert "\033[" not in text


def test_verbose_plan_report_includes_hashes() -> None:
    out = io.StringIO()
    plan = plan_candidate(two_window_candidate(), NOW)

    CLIRenderer(stream=out, verbose=True).plan(plan)

    assert f"Candidate hash: {plan.candidate_hash}" in out.getvalue()


def test_outcome_is_colored_only_on_a_tty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    plan = plan_candidate(two_window_candidate(), NOW).with_outcome(PlanOutcome.BLOCKED)

    tty = _TTY()
    CLIRenderer(stream=tty).plan(plan)
    plain = _TTY()
    CLIRenderer(stream=plain, no_color=True).plan(plan)

    assert "Outcome: \033[31mblocked\033[0m" in tty.getvalue()
    assert "Outcome: blocked" in plain.getvalue()


def test_no_color_environment_disables_color(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")

    assert CLIRenderer(stream=_TTY()).color is False


def test_evaluation_and_recommendations() -> None:
    out = io.StringIO()
    renderer = CLIRenderer(stream=out)

    renderer.evaluation(
        CadenceEvaluation(ok=False, reasons=("no slots",), score=0.0, warnings=("thin",))
    )
    renderer.recommendations([])

    assert out.getvalue().splitlines() == [
        "Accepted: no",
        "Score: 0.000",
        "",
        "Reasons:",
        "  - no slots",
        "",
        "Warnings:",
        "  Warning: thin",
        "No recommendations.",
    ]
