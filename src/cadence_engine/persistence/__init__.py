"""In-memory persistence for cadence candidates and plans."""

from cadence_engine.persistence.plan_registry import CadencePlanRegistry, CandidateEntry, PlanEntry

__all__ = ["CadencePlanRegistry", "CandidateEntry", "PlanEntry"]
