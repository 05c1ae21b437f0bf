"""
Plain-text reports for the cadence CLI.

File: src/cadence_engine/ui/render.py

Purpose
- Render plans, evaluations, and recommendation lists as aligned text.
- Color plan outcomes only on a TTY, and never when ``NO_COLOR`` or ``--no-color`` is set.

Functional requirements
- Equal inputs render identical text, so reports can be diffed and asserted on.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING, Final, TextIO

from cadence_engine.domain.models import PlanOutcome

if TYPE_CHECKING:
    from cadence_engine.domain.models import CadenceEvaluation, CadenceRunPlan

_RESET: Final[str] = "\033[0m"
_OUTCOME_COLORS: Final[dict[PlanOutcome, str]] = {
    PlanOutcome.READY: "\033[32m",
    PlanOutcome.DEFERRED: "\033[33m",
    PlanOutcome.BLOCKED: "\033[31m",
}


def format_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> list[str]:
    """Left-aligned columns separated by two spaces, with a dashed rule under the header."""
    cells = [[str(value) for value in row] for row in rows]
    widths = [
        max([len(header), *(len(row[index]) for row in cells if index < len(row))])
        for index, header in enumerate(headers)
    ]

    def line(values: Sequence[str]) -> str:
        padded = (
            (values[index] if index < len(values) else "").ljust(width)
            for index, width in enumerate(widths)
        )
        return "  ".join(padded).rstrip()

    return [line(headers), "  ".join("-" * width for width in widths), *(line(row) for row in cells)]


class CLIRenderer:
    """Writes report sections to ``stream`` (stdout by default)."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream
        out = self.stream
        self._color = not no_color and not os.environ.get("NO_COLOR") and out.isatty()

    @property
    def stream(self) -> TextIO:
        # resolved lazily so pytest's capsys replacement of sys.stdout is honored
        return self._stream if self._stream is not None else sys.stdout

    @property
    def color(self) -> bool:
        return self._color

    def kv(self, key: str, value: object) -> None:
        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def section(self, title: str) -> None:
        self._write("")
        self._write(title)

    def warning(self, message: str) -> None:
        self._write(f"  Warning: {message}")

    def items(self, entries: Sequence[str], *, bullet: str = "-") -> None:
        for entry in entries:
            self._write(f"  {bullet} {entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        if not rows:
            return
        if title:
            self.section(title)
        for line in format_table(headers, rows):
            self._write(f"  {line}")

    def plan(self, plan: CadenceRunPlan) -> None:
        summary = plan.policy_summary
        self.kv("Plan", plan.id)
        self.kv("Run", plan.run_id)
        self.kv("Outcome", self._outcome(plan.outcome))
        self.kv("Readiness", f"{plan.readiness_score:.3f}")
        self.kv("Windows", len(plan.windows))
        self.kv("Slots", len(plan.slots))
        self.kv("Enabled constraints", summary.enabled_constraints)
        if self.verbose:
            self.kv("Candidate hash", plan.candidate_hash)
            self.kv("Constraint fingerprint", plan.constraint_fingerprint)

        self.table(
            ("SLOT", "WINDOW", "MINUTES", "WEIGHT", "REQUIRES"),
            [
                (
                    slot.id,
                    slot.window_id,
                    f"{slot.estimated_minutes:g}",
                    f"{slot.weight:.2f}",
                    ",".join(slot.requires) or "-",
                )
                for slot in plan.slots
            ],
            title="Slots:",
        )
        if summary.blocked_by_rules:
            self.section("Blocked by:")
            self.items(summary.blocked_by_rules)
        self._warnings(summary.warnings)

    def evaluation(self, evaluation: CadenceEvaluation) -> None:
        self.kv("Accepted", "yes" if evaluation.ok else "no")
        self.kv("Score", f"{evaluation.score:.3f}")
        if evaluation.reasons:
            self.section("Reasons:")
            self.items(evaluation.reasons)
        self._warnings(evaluation.warnings)

    def recommendations(self, hints: Sequence[str]) -> None:
        if not hints:
            self.text("No recommendations.")
            return
        self.section("Recommendations:")
        self.items(hints)

    def _warnings(self, warnings: Sequence[str]) -> None:
        if warnings:
            self.section("Warnings:")
            for message in warnings:
                self.warning(message)

    def _outcome(self, outcome: PlanOutcome) -> str:
        color = _OUTCOME_COLORS.get(outcome)
        if not self._color or color is None:
            return outcome.value
        return f"{color}{outcome.value}{_RESET}"

    def _write(self, line: str) -> None:
        print(line, file=self.stream)


def create_renderer(
    *,
    no_color: bool = False,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer", "format_table"]
