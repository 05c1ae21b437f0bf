"""
cadence-engine: planning layer.

File: src/cadence_engine/planning/__init__.py

Purpose
- Topology, policy evaluation, plan construction, scoring, and orchestration entrypoints.

Functional requirements
- Plans are repeatable for equal candidates and timestamps.
"""

from cadence_engine.planning.orchestrator import (
    CadenceOrchestrator,
    OrchestrationMode,
    PlanRejectedError,
    create_cadence_orchestrator,
)
from cadence_engine.planning.planner import (
    CandidateSchemaError,
    build_candidate_from_run,
    envelope_for_cadence_plan,
    load_cadence_candidate,
    parse_cadence_candidate,
    plan_candidate,
    revalidate_plan,
    validate_cadence_run_plan,
)
from cadence_engine.planning.policy import CadencePolicyEngine, PolicyThresholds, evaluate_cadence
from cadence_engine.planning.scorecard import (
    build_plan_scorecard,
    rank_cadence_plans,
    summarize_plan_portfolio,
)
from cadence_engine.planning.topology import (
    SlotGraph,
    build_topology,
    split_by_execution_window,
    validate_topology,
)

__all__ = [
    "CadenceOrchestrator",
    "CadencePolicyEngine",
    "CandidateSchemaError",
    "OrchestrationMode",
    "PlanRejectedError",
    "PolicyThresholds",
    "SlotGraph",
    "build_candidate_from_run",
    "build_plan_scorecard",
    "build_topology",
    "create_cadence_orchestrator",
    "envelope_for_cadence_plan",
    "evaluate_cadence",
    "load_cadence_candidate",
    "parse_cadence_candidate",
    "plan_candidate",
    "rank_cadence_plans",
    "revalidate_plan",
    "split_by_execution_window",
    "summarize_plan_portfolio",
    "validate_cadence_run_plan",
    "validate_topology",
]
