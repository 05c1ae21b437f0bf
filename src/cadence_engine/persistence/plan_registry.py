"""In-memory TTL registry of cadence candidates and plans with lazy eviction."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from cadence_engine.constants import DEFAULT_CANDIDATE_TTL_MINUTES, DEFAULT_PLAN_TTL_MULTIPLIER

if TYPE_CHECKING:
    from cadence_engine.domain.ids import CadenceRunId
    from cadence_engine.domain.models import (
        CadencePlanCandidate,
        CadenceRunPlan,
        CadenceSlot,
        CadenceWindow,
    )

Clock = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class CandidateEntry:
    key: str
    run_id: str
    candidate: CadencePlanCandidate
    registered_at: datetime
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class PlanEntry:
    key: str
    plan: CadenceRunPlan
    registered_at: datetime
    expires_at: datetime


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CadencePlanRegistry:
    """
    Thread-safe registry keyed by candidate key, plan id, and ``run:window``/``run:slot``.

    Expired entries are evicted lazily on every operation; misses return ``None``.
    """

    def __init__(
        self,
        candidate_ttl_minutes: float = DEFAULT_CANDIDATE_TTL_MINUTES,
        *,
        plan_ttl_minutes: float | None = None,
        clock: Clock | None = None,
    ) -> None:
        if candidate_ttl_minutes <= 0:
            raise ValueError("candidate_ttl_minutes must be > 0")
        if plan_ttl_minutes is not None and plan_ttl_minutes <= 0:
            raise ValueError("plan_ttl_minutes must be > 0")

        self._candidate_ttl = timedelta(minutes=candidate_ttl_minutes)
        self._plan_ttl = timedelta(
            minutes=(
                plan_ttl_minutes
                if plan_ttl_minutes is not None
                else candidate_ttl_minutes * DEFAULT_PLAN_TTL_MULTIPLIER
            )
        )
        self._clock = clock if clock is not None else _utc_now
        self._lock = threading.RLock()
        self._candidates: dict[str, CandidateEntry] = {}
        self._plans: dict[str, PlanEntry] = {}
        self._windows: dict[str, tuple[CadenceWindow, datetime]] = {}
        self._slots: dict[str, tuple[CadenceSlot, datetime]] = {}

    @property
    def candidate_ttl(self) -> timedelta:
        return self._candidate_ttl

    @property
    def plan_ttl(self) -> timedelta:
        return self._plan_ttl

    def register_candidate(self, candidate: CadencePlanCandidate, run_id: CadenceRunId | str) -> CandidateEntry:
        """Store ``candidate`` under ``{program_run}-{revision}-{timestamp}`` and index its windows and slots."""
        with self._lock:
            now = self._clock()
            self._evict(now)
            key = f"{candidate.profile.program_run}-{candidate.revision}-{int(now.timestamp() * 1000)}"
            expires_at = now + self._candidate_ttl
            entry = CandidateEntry(
                key=key,
                run_id=str(run_id),
                candidate=candidate,
                registered_at=now,
                expires_at=expires_at,
            )
            self._candidates[key] = entry
            for window in candidate.profile.windows:
                self._windows[f"{run_id}:{window.id}"] = (window, expires_at)
            for slot in candidate.profile.slots:
                self._slots[f"{run_id}:{slot.id}"] = (slot, expires_at)
            return entry

    def register_plan(self, plan: CadenceRunPlan) -> PlanEntry:
        with self._lock:
            now = self._clock()
            self._evict(now)
            expires_at = now + self._plan_ttl
            entry = PlanEntry(key=plan.id, plan=plan, registered_at=now, expires_at=expires_at)
            self._plans[plan.id] = entry
            for window in plan.windows:
                self._windows[f"{plan.run_id}:{window.id}"] = (window, expires_at)
            for slot in plan.slots:
                self._slots[f"{plan.run_id}:{slot.id}"] = (slot, expires_at)
            return entry

    def get_candidate(self, key: str) -> CandidateEntry | None:
        with self._lock:
            self._evict(self._clock())
            return self._candidates.get(key)

    def get_plan(self, plan_id: str) -> CadenceRunPlan | None:
        with self._lock:
            self._evict(self._clock())
            entry = self._plans.get(plan_id)
            return None if entry is None else entry.plan

    def get_window(self, run_id: str, window_id: str) -> CadenceWindow | None:
        with self._lock:
            self._evict(self._clock())
            item = self._windows.get(f"{run_id}:{window_id}")
            return None if item is None else item[0]

    def get_slot(self, run_id: str, slot_id: str) -> CadenceSlot | None:
        with self._lock:
            self._evict(self._clock())
            item = self._slots.get(f"{run_id}:{slot_id}")
            return None if item is None else item[0]

    def list_recent_candidates(self, limit: int | None = None) -> list[CandidateEntry]:
        """Live candidates, newest first."""
        with self._lock:
            self._evict(self._clock())
            entries = sorted(
                reversed(list(self._candidates.values())),
                key=lambda entry: entry.registered_at,
                reverse=True,
            )
            return entries if limit is None else entries[: max(0, limit)]

    def list_recent_plans(self, limit: int | None = None) -> list[PlanEntry]:
        """Live plans, newest first."""
        with self._lock:
            self._evict(self._clock())
            entries = sorted(
                reversed(list(self._plans.values())),
                key=lambda entry: entry.registered_at,
                reverse=True,
            )
            return entries if limit is None else entries[: max(0, limit)]

    def remove_run(self, run_id: str) -> int:
        """Drop every candidate, plan, window, and slot recorded for ``run_id``; returns entries removed."""
        prefix = f"{run_id}:"
        with self._lock:
            self._evict(self._clock())
            removed = 0
            for key in [key for key, entry in self._candidates.items() if entry.run_id == run_id]:
                del self._candidates[key]
                removed += 1
            for key in [key for key, entry in self._plans.items() if entry.plan.run_id == run_id]:
                del self._plans[key]
                removed += 1
            for index in (self._windows, self._slots):
                for key in [key for key in index if key.startswith(prefix)]:
                    del index[key]
                    removed += 1
            return removed

    def size(self) -> int:
        """Number of live candidates and plans."""
        with self._lock:
            self._evict(self._clock())
            return len(self._candidates) + len(self._plans)

    def _evict(self, now: datetime) -> None:
        for key in [key for key, entry in self._candidates.items() if entry.expires_at <= now]:
            del self._candidates[key]
        for key in [key for key, entry in self._plans.items() if entry.expires_at <= now]:
            del self._plans[key]
        for index in (self._windows, self._slots):
            for key in [key for key, (_, expires_at) in index.items() if expires_at <= now]:
                del index[key]


__all__ = ["CadencePlanRegistry", "CandidateEntry", "Clock", "PlanEntry"]
