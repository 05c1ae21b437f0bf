"""
Planning metrics kept in process memory.

Counters, gauges, and summaries are keyed by metric name plus a sorted label
set. ``snapshot()`` renders keys as ``name{label=value,...}`` so exports are
stable across runs. One registry is shared by every orchestrator in a process;
a re-entrant lock guards all series.
"""

from __future__ import annotations

import json
import math
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from cadence_engine.domain.models import JSONValue

CANDIDATES_BUILT: Final[str] = "cadence.candidates_built"
PLANS_BUILT: Final[str] = "cadence.plans_built"
PLANS_REJECTED: Final[str] = "cadence.plans_rejected"
READINESS_SCORE: Final[str] = "cadence.readiness_score"
REJECTION_REASONS: Final[str] = "cadence.rejection_reasons"

Labels = tuple[tuple[str, str], ...]
SeriesKey = tuple[str, Labels]

_MAX_NAME: Final[int] = 128
_MAX_LABEL: Final[int] = 256


@dataclass(slots=True)
class Summary:
    """Running count/sum/min/max of observed samples."""

    samples: int = 0
    total: float = 0.0
    low: float = math.inf
    high: float = -math.inf

    def add(self, value: float) -> None:
        self.samples += 1
        self.total += value
        self.low = min(self.low, value)
        self.high = max(self.high, value)

    def to_dict(self) -> dict[str, JSONValue]:
        empty = self.samples == 0
        return {
            "count": self.samples,
            "sum": self.total,
            "min": None if empty else self.low,
            "max": None if empty else self.high,
            "avg": 0.0 if empty else self.total / self.samples,
        }


def render_key(key: SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    return name + "{" + ",".join(f"{label}={value}" for label, value in labels) + "}"


class MetricsRegistry:
    """Counters, gauges, and summaries for candidate and plan throughput."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock if clock is not None else (lambda: datetime.now(UTC))
        self._lock = threading.RLock()
        self._started_at = self._clock()
        self._counters: dict[SeriesKey, float] = {}
        self._gauges: dict[SeriesKey, float] = {}
        self._summaries: dict[SeriesKey, Summary] = {}

    # -- planning recorders -------------------------------------------------

    def record_candidate(self) -> None:
        self.inc(CANDIDATES_BUILT)

    def record_plan(self, outcome: str, readiness_score: float) -> None:
        """Count a registered plan by outcome and sample its readiness score."""
        with self._lock:
            self.inc(PLANS_BUILT, labels={"outcome": outcome})
            self.observe(READINESS_SCORE, readiness_score)

    def record_rejection(self, reason_count: int) -> None:
        with self._lock:
            self.inc(PLANS_REJECTED)
            self.observe(REJECTION_REASONS, reason_count)

    # -- generic series -----------------------------------------------------

    def inc(
        self,
        name: str,
        amount: float = 1.0,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        delta = _number(amount, "amount")
        if delta < 0:
            raise ValueError("counter increment amount must be >= 0")
        key = series_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + delta

    def set_gauge(
        self,
        name: str,
        value: float,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        key = series_key(name, labels)
        reading = _number(value, "value")
        with self._lock:
            self._gauges[key] = reading

    def observe(
        self,
        name: str,
        value: float,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        key = series_key(name, labels)
        sample = _number(value, "value")
        with self._lock:
            if key not in self._summaries:
                self._summaries[key] = Summary()
            self._summaries[key].add(sample)

    def get_counter(self, name: str, *, labels: Mapping[str, str] | None = None) -> float:
        with self._lock:
            return self._counters.get(series_key(name, labels), 0.0)

    def get_gauge(self, name: str, *, labels: Mapping[str, str] | None = None) -> float | None:
        with self._lock:
            return self._gauges.get(series_key(name, labels))

    def get_distribution(
        self,
        name: str,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> dict[str, JSONValue] | None:
        with self._lock:
            summary = self._summaries.get(series_key(name, labels))
            return None if summary is None else summary.to_dict()

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._summaries.clear()
            self._started_at = self._clock()

    def snapshot(self) -> dict[str, JSONValue]:
        with self._lock:
            counters = {render_key(key): self._counters[key] for key in sorted(self._counters)}
            gauges = {render_key(key): self._gauges[key] for key in sorted(self._gauges)}
            summaries = {
                render_key(key): self._summaries[key].to_dict() for key in sorted(self._summaries)
            }
            started_at = self._started_at
        return {
            "started_at": started_at.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "counters": counters,
            "gauges": gauges,
            "distributions": summaries,
        }

    def to_json(self, *, indent: int | None = None) -> str:
        separators = (",", ":") if indent is None else None
        return json.dumps(
            self.snapshot(),
            sort_keys=True,
            indent=indent,
            separators=separators,
            ensure_ascii=False,
        )


def series_key(name: str, labels: Mapping[str, str] | None = None) -> SeriesKey:
    """Validate ``name`` and ``labels`` and return the hashable series key."""
    if not isinstance(name, str) or not name.strip():
        raise ValueError("metric name must be a non-empty string")
    metric = name.strip()
    if len(metric) > _MAX_NAME:
        raise ValueError(f"metric name must be <= {_MAX_NAME} characters")
    pairs: list[tuple[str, str]] = []
    for label, value in (labels or {}).items():
        if not isinstance(label, str) or not isinstance(value, str):
            raise ValueError("metric labels must map strings to strings")
        label, value = label.strip(), value.strip()
        if not label or not value:
            raise ValueError(f"metric label {label!r} must have a non-empty key and value")
        if max(len(label), len(value)) > _MAX_LABEL:
            raise ValueError(f"metric label {label!r} exceeds {_MAX_LABEL} characters")
        pairs.append((label, value))
    return metric, tuple(sorted(pairs))


def _number(value: float, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field} must be numeric, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValueError(f"{field} must be finite")
    return float(value)


__all__ = [
    "CANDIDATES_BUILT",
    "PLANS_BUILT",
    "PLANS_REJECTED",
    "READINESS_SCORE",
    "REJECTION_REASONS",
    "MetricsRegistry",
    "Summary",
    "render_key",
    "series_key",
]
