"""Frozen dataclass domain models with strict parsing and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, fields, is_dataclass, replace
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import Any, Protocol, Self, TypeVar

from cadence_engine.constants import ENVELOPE_SCHEMA_VERSION
from cadence_engine.domain.ids import (
    CadenceCandidateHash,
    CadenceConstraintFingerprint,
    CadenceEnvelopeId,
    CadencePolicyConstraintId,
    CadenceRunId,
    CadenceSlotId,
    CadenceWindowId,
    RecoveryCadenceId,
    RecoveryRunId,
    RunPlanId,
    TenantId,
    UserId,
)

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="_Parseable")
TEnum = TypeVar("TEnum", bound=Enum)
_N = TypeVar("_N", int, float)

_MAX_TEXT = 4096
_MAX_ID = 256
_MAX_ITEMS = 2048


class CadencePriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class CadenceSource(StrEnum):
    PLANNER = "planner"
    OPERATOR = "operator"
    AUTOMATION = "automation"
    POLICY = "policy"


class PlanOutcome(StrEnum):
    READY = "ready"
    DEFERRED = "deferred"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CadenceSchemaError(ValueError):
    """An untrusted cadence payload does not match the expected shape.

    ``path`` names the offending field, e.g. ``CadencePlanCandidate.profile.slots[1].weight``.
    """

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"{path}: {detail}")
        self.path = path
        self.detail = detail


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            item.name: to_jsonable(getattr(self, item.name), f"{type(self).__name__}.{item.name}")
            for item in fields(self)  # type: ignore[arg-type]
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())


class _Parseable(Protocol):
    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str | None = None) -> Self: ...


class _Fields:
    """Typed reads from one untrusted JSON object.

    The key set is checked up front; every accessor reports failures under
    ``<path>.<key>`` so nested models produce full field paths.
    """

    def __init__(
        self,
        data: object,
        path: str,
        required: Iterable[str],
        optional: Iterable[str] = (),
    ) -> None:
        if not isinstance(data, Mapping):
            raise CadenceSchemaError(path, f"expected object, got {type(data).__name__}")
        if any(not isinstance(key, str) for key in data):
            raise CadenceSchemaError(path, "object keys must be strings")
        needed = set(required)
        extra = sorted(set(data) - needed - set(optional))
        if extra:
            raise CadenceSchemaError(path, f"unexpected fields: {extra}")
        absent = sorted(needed - set(data))
        if absent:
            raise CadenceSchemaError(path, f"missing required fields: {absent}")
        self._data = data
        self.path = path

    def fail(self, key: str, detail: str) -> CadenceSchemaError:
        return CadenceSchemaError(f"{self.path}.{key}", detail)

    def raw(self, key: str, default: object = None) -> object:
        return self._data.get(key, default)

    def text(self, key: str, *, limit: int = _MAX_TEXT) -> str:
        return _text(self._data[key], f"{self.path}.{key}", limit)

    def ident(self, key: str) -> str:
        return self.text(key, limit=_MAX_ID)

    def flag(self, key: str) -> bool:
        value = self._data[key]
        if not isinstance(value, bool):
            raise self.fail(key, f"expected boolean, got {type(value).__name__}")
        return value

    def integer(self, key: str, *, low: int | None = None, high: int | None = None) -> int:
        value = self._data[key]
        if isinstance(value, bool) or not isinstance(value, int):
            raise self.fail(key, f"expected integer, got {type(value).__name__}")
        return _bounded(value, f"{self.path}.{key}", low, high)

    def number(self, key: str, *, low: float | None = None, high: float | None = None) -> float:
        value = self._data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self.fail(key, f"expected number, got {type(value).__name__}")
        if not math.isfinite(value):
            raise self.fail(key, "must be finite")
        return _bounded(float(value), f"{self.path}.{key}", low, high)

    def moment(self, key: str) -> datetime:
        value = self._data[key]
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError as exc:
                raise self.fail(key, f"invalid ISO-8601 datetime ({exc})") from exc
        if not isinstance(value, datetime):
            raise self.fail(key, f"expected ISO-8601 string, got {type(value).__name__}")
        if value.utcoffset() is None:
            raise self.fail(key, "datetime must carry a UTC offset")
        return value.astimezone(UTC)

    def choice(self, enum_type: type[TEnum], key: str) -> TEnum:
        value = self._data[key]
        if isinstance(value, enum_type):
            return value
        try:
            return enum_type(value)
        except ValueError:
            options = ", ".join(sorted(str(member.value) for member in enum_type))
            raise self.fail(key, f"invalid value {value!r}; expected one of: {options}") from None

    def texts(self, key: str) -> tuple[str, ...]:
        path = f"{self.path}.{key}"
        return tuple(
            _text(item, f"{path}[{index}]", _MAX_TEXT)
            for index, item in enumerate(self._items(key))
        )

    def model(self, model: type[TModel], key: str) -> TModel:
        return _nested(model, self._data[key], f"{self.path}.{key}")

    def models(self, model: type[TModel], key: str) -> tuple[TModel, ...]:
        path = f"{self.path}.{key}"
        return tuple(
            _nested(model, item, f"{path}[{index}]") for index, item in enumerate(self._items(key))
        )

    def _items(self, key: str) -> list[object]:
        value = self._data.get(key, ())
        if not isinstance(value, (list, tuple)):
            raise self.fail(key, f"expected array, got {type(value).__name__}")
        if len(value) > _MAX_ITEMS:
            raise self.fail(key, f"too many items (>{_MAX_ITEMS})")
        return list(value)


# ---------------------------------------------------------------------------
# Cadence scheduling models
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CadenceWindow(CanonicalModel):
    """Bounded scheduling interval with concurrency, retry, and approval limits."""

    id: CadenceWindowId
    title: str
    starts_at: datetime
    ends_at: datetime
    timezone: str
    max_parallelism: int
    max_retries: int
    required_approvals: int

    @property
    def duration_minutes(self) -> float:
        return (self.ends_at - self.starts_at).total_seconds() / 60.0

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str | None = None) -> CadenceWindow:
        read = _Fields(
            data,
            path or "CadenceWindow",
            required=(
                "id",
                "title",
                "starts_at",
                "ends_at",
                "timezone",
                "max_parallelism",
                "max_retries",
                "required_approvals",
            ),
        )
        zone = read.text("timezone", limit=128)
        if "/" not in zone:
            raise read.fail("timezone", "window timezone must be qualified (Region/City)")
        return cls(
            id=CadenceWindowId(read.ident("id")),
            title=read.text("title"),
            starts_at=read.moment("starts_at"),
            ends_at=read.moment("ends_at"),
            timezone=zone,
            max_parallelism=read.integer("max_parallelism", low=1, high=100),
            max_retries=read.integer("max_retries", low=0, high=20),
            required_approvals=read.integer("required_approvals", low=0, high=10),
        )


@dataclass(frozen=True, slots=True)
class CadenceSlot(CanonicalModel):
    """One unit of schedulable work bound to exactly one window."""

    id: CadenceSlotId
    window_id: CadenceWindowId
    planned_for: datetime
    plan_id: RunPlanId
    step_id: str
    command: str
    weight: float
    estimated_minutes: float
    tags: tuple[str, ...] = ()
    requires: tuple[CadenceSlotId, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str | None = None) -> CadenceSlot:
        read = _Fields(
            data,
            path or "CadenceSlot",
            required=(
                "id",
                "window_id",
                "planned_for",
                "plan_id",
                "step_id",
                "command",
                "weight",
                "estimated_minutes",
            ),
            optional=("tags", "requires"),
        )
        return cls(
            id=CadenceSlotId(read.ident("id")),
            window_id=CadenceWindowId(read.ident("window_id")),
            planned_for=read.moment("planned_for"),
            plan_id=RunPlanId(read.ident("plan_id")),
            step_id=read.ident("step_id"),
            command=read.text("command"),
            weight=read.number("weight", low=0.0, high=1.0),
            estimated_minutes=read.number("estimated_minutes", low=1.0, high=10_000.0),
            tags=read.texts("tags"),
            requires=tuple(CadenceSlotId(item) for item in read.texts("requires")),
        )


@dataclass(frozen=True, slots=True)
class CadenceProfile(CanonicalModel):
    tenant: TenantId
    program_run: RecoveryRunId
    windows: tuple[CadenceWindow, ...]
    slots: tuple[CadenceSlot, ...]
    priority: CadencePriority = CadencePriority.NORMAL
    source: CadenceSource = CadenceSource.PLANNER

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str | None = None) -> CadenceProfile:
        read = _Fields(
            data,
            path or "CadenceProfile",
            required=("tenant", "program_run", "windows", "slots", "priority", "source"),
        )
        return cls(
            tenant=TenantId(read.ident("tenant")),
            program_run=RecoveryRunId(read.ident("program_run")),
            windows=read.models(CadenceWindow, "windows"),
            slots=read.models(CadenceSlot, "slots"),
            priority=read.choice(CadencePriority, "priority"),
            source=read.choice(CadenceSource, "source"),
        )


@dataclass(frozen=True, slots=True)
class CadencePolicyConstraint(CanonicalModel):
    """Named rule instance; ``expression`` is descriptive and never executed."""

    id: CadencePolicyConstraintId
    key: str
    expression: str
    enabled: bool
    weight: float

    @classmethod
    def from_dict(
        cls, data: Mapping[str, object], *, path: str | None = None
    ) -> CadencePolicyConstraint:
        read = _Fields(
            data,
            path or "CadencePolicyConstraint",
            required=("id", "key", "expression", "enabled", "weight"),
        )
        return cls(
            id=CadencePolicyConstraintId(read.text("id", limit=512)),
            key=read.ident("key"),
            expression=read.text("expression"),
            enabled=read.flag("enabled"),
            weight=read.number("weight", low=0.0, high=1.0),
        )


@dataclass(frozen=True, slots=True)
class CadencePlanCandidate(CanonicalModel):
    """Immutable plan proposal. Refinements produce new candidates via :meth:`revise`."""

    profile: CadenceProfile
    constraints: tuple[CadencePolicyConstraint, ...] = ()
    notes: tuple[str, ...] = ()
    revision: int = 0

    @property
    def enabled_constraints(self) -> tuple[CadencePolicyConstraint, ...]:
        return tuple(constraint for constraint in self.constraints if constraint.enabled)

    def revise(self, **changes: object) -> CadencePlanCandidate:
        """Return a refined copy with ``revision`` incremented."""
        if "revision" in changes:
            raise ValueError("revision is assigned by revise(); do not pass it explicitly")
        return replace(self, revision=self.revision + 1, **changes)  # type: ignore[arg-type]

    @classmethod
    def from_dict(
        cls, data: Mapping[str, object], *, path: str | None = None
    ) -> CadencePlanCandidate:
        read = _Fields(
            data,
            path or "CadencePlanCandidate",
            required=("profile", "constraints", "notes", "revision"),
        )
        return cls(
            profile=read.model(CadenceProfile, "profile"),
            constraints=read.models(CadencePolicyConstraint, "constraints"),
            notes=read.texts("notes"),
            revision=read.integer("revision", low=0),
        )


@dataclass(frozen=True, slots=True)
class PolicySummary(CanonicalModel):
    enabled_constraints: int
    blocked_by_rules: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PlanAudit(CanonicalModel):
    created_by: CadenceSource
    reviewed_by: tuple[UserId, ...] = ()
    approved: bool = False
    approved_at: datetime | None = None
    reason_trail: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CadenceRunPlan(CanonicalModel):
    """Finalized, scored, audit-stamped plan derived from a candidate."""

    id: RecoveryCadenceId
    run_id: CadenceRunId
    profile: CadenceProfile
    candidate_hash: CadenceCandidateHash
    constraint_fingerprint: CadenceConstraintFingerprint
    created_at: datetime
    outcome: PlanOutcome
    slots: tuple[CadenceSlot, ...]
    windows: tuple[CadenceWindow, ...]
    readiness_score: float
    policy_summary: PolicySummary
    audit: PlanAudit

    def with_outcome(self, outcome: PlanOutcome) -> CadenceRunPlan:
        """Return a copy carrying ``outcome``; every other field is preserved."""
        if outcome is self.outcome:
            return self
        return replace(self, outcome=outcome)


@dataclass(frozen=True, slots=True)
class CadenceEvaluation(CanonicalModel):
    ok: bool
    reasons: tuple[str, ...] = ()
    score: float = 0.0
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CadenceEnvelope(CanonicalModel):
    id: CadenceEnvelopeId
    profile: CadenceProfile
    payload: CadenceRunPlan
    version: int = ENVELOPE_SCHEMA_VERSION


# ---------------------------------------------------------------------------
# Inbound contracts supplied by the recovery orchestrator
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RecoveryRunState(CanonicalModel):
    run_id: RecoveryRunId
    program_id: str
    status: str | None = None
    started_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class SessionConstraints(CanonicalModel):
    max_retries: int
    operator_approval_required: bool = False


@dataclass(frozen=True, slots=True)
class RunSession(CanonicalModel):
    id: str
    run_id: RecoveryRunId
    ticket_id: str
    constraints: SessionConstraints


@dataclass(frozen=True, slots=True)
class RecoveryStep(CanonicalModel):
    id: str
    title: str
    command: str
    timeout_ms: int
    dependencies: tuple[str, ...] = ()
    required_approvals: int = 1
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ReadinessSignal(CanonicalModel):
    signal_id: str
    target_id: str
    source: str
    severity: str = "low"


@dataclass(frozen=True, slots=True)
class ReadinessConstraintSet(CanonicalModel):
    policy_id: str
    minimum_active_targets: int
    max_signals_per_minute: int | None = None


@dataclass(frozen=True, slots=True)
class CadenceExecutionContext(CanonicalModel):
    run: RecoveryRunState
    session: RunSession
    run_plan: CadenceRunPlan


# ---------------------------------------------------------------------------
# Parsing and serialization helpers
# ---------------------------------------------------------------------------


def canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def datetime_to_iso8601z(value: datetime) -> str:
    """Millisecond UTC timestamp with a ``Z`` suffix; naive values are taken as UTC."""
    aware = value if value.utcoffset() is not None else value.replace(tzinfo=UTC)
    stamp = aware.astimezone(UTC).isoformat(timespec="milliseconds")
    return stamp.removesuffix("+00:00") + "Z"


def to_jsonable(value: Any, path: str) -> JSONValue:
    """Convert model field values into plain JSON data."""
    if isinstance(value, Enum):
        return to_jsonable(value.value, path)
    if isinstance(value, datetime):
        return datetime_to_iso8601z(value)
    if isinstance(value, float) and not math.isfinite(value):
        raise CadenceSchemaError(path, "float values must be finite")
    if value is None or isinstance(value, (str, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item, f"{path}[{index}]") for index, item in enumerate(value)]
    if isinstance(value, Mapping):
        if any(not isinstance(key, str) for key in value):
            raise CadenceSchemaError(path, "dict keys must be strings")
        return {key: to_jsonable(item, f"{path}.{key}") for key, item in value.items()}
    if is_dataclass(value) and not isinstance(value, type):
        return {
            item.name: to_jsonable(getattr(value, item.name), f"{path}.{item.name}")
            for item in fields(value)
        }
    raise CadenceSchemaError(path, f"cannot serialize value of type {type(value).__name__}")


def _text(value: object, path: str, limit: int) -> str:
    if not isinstance(value, str):
        raise CadenceSchemaError(path, f"expected string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise CadenceSchemaError(path, "must not be blank")
    if len(stripped) > limit:
        raise CadenceSchemaError(path, f"must be <= {limit} characters")
    return stripped


def _bounded(value: _N, path: str, low: _N | None, high: _N | None) -> _N:
    if low is not None and value < low:
        raise CadenceSchemaError(path, f"must be >= {low}")
    if high is not None and value > high:
        raise CadenceSchemaError(path, f"must be <= {high}")
    return value


def _nested(model: type[TModel], value: object, path: str) -> TModel:
    if isinstance(value, model):
        return value
    if not isinstance(value, Mapping):
        raise CadenceSchemaError(path, f"expected object, got {type(value).__name__}")
    return model.from_dict(value, path=path)


__all__ = [
    "CadenceEnvelope",
    "CadenceEvaluation",
    "CadenceExecutionContext",
    "CadencePlanCandidate",
    "CadencePolicyConstraint",
    "CadencePriority",
    "CadenceProfile",
    "CadenceRunPlan",
    "CadenceSchemaError",
    "CadenceSlot",
    "CadenceSource",
    "CadenceWindow",
    "CanonicalModel",
    "JSONScalar",
    "JSONValue",
    "PlanAudit",
    "PlanOutcome",
    "PolicySummary",
    "ReadinessConstraintSet",
    "ReadinessSignal",
    "RecoveryRunState",
    "RecoveryStep",
    "RunSession",
    "SessionConstraints",
    "canonical_json",
    "datetime_to_iso8601z",
    "to_jsonable",
]
