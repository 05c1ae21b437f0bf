"""Stable constants shared across the cadence engine."""

from __future__ import annotations

from typing import Final

# Schema versions for serialized contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
ENVELOPE_SCHEMA_VERSION: Final[int] = 1

# Registry retention defaults (minutes).
DEFAULT_CANDIDATE_TTL_MINUTES: Final[float] = 30.0
DEFAULT_PLAN_TTL_MULTIPLIER: Final[float] = 2.0

# Policy rule thresholds.
DEFAULT_COVERAGE_FLOOR: Final[float] = 0.8
DEFAULT_CONCURRENCY_MULTIPLIER: Final[float] = 2.0
DEFAULT_RETRY_CEILING: Final[int] = 6
DEFAULT_DURATION_CEILING_MINUTES: Final[float] = 360.0

# Planner and orchestrator tuning.
EDGE_READINESS_PENALTY: Final[float] = 0.25
DEFAULT_READINESS_DAMPING: Final[float] = 0.91
DEFAULT_WINDOW_HOURS: Final[int] = 2
DEFAULT_LATEST_PLAN_LIMIT: Final[int] = 5
PLANNER_REVIEWER: Final[str] = "planner"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CANDIDATE_TTL_MINUTES",
    "DEFAULT_CONCURRENCY_MULTIPLIER",
    "DEFAULT_COVERAGE_FLOOR",
    "DEFAULT_DURATION_CEILING_MINUTES",
    "DEFAULT_LATEST_PLAN_LIMIT",
    "DEFAULT_PLAN_TTL_MULTIPLIER",
    "DEFAULT_READINESS_DAMPING",
    "DEFAULT_RETRY_CEILING",
    "DEFAULT_WINDOW_HOURS",
    "EDGE_READINESS_PENALTY",
    "ENVELOPE_SCHEMA_VERSION",
    "PLANNER_REVIEWER",
]
