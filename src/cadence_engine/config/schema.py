"""
cadence-engine: configuration schema and validation.

File: src/cadence_engine/config/schema.py

Purpose
- Define built-in configuration defaults for the registry, policy, orchestrator, and logging.
- Validate config payloads and report structured issues (field path + message).

Functional requirements
- Unknown sections and fields are rejected; a mismatched schema version explains the migration.
- Deep merges are deterministic so precedence layers compose predictably.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from cadence_engine.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_CANDIDATE_TTL_MINUTES,
    DEFAULT_CONCURRENCY_MULTIPLIER,
    DEFAULT_COVERAGE_FLOOR,
    DEFAULT_DURATION_CEILING_MINUTES,
    DEFAULT_LATEST_PLAN_LIMIT,
    DEFAULT_PLAN_TTL_MULTIPLIER,
    DEFAULT_READINESS_DAMPING,
    DEFAULT_RETRY_CEILING,
    DEFAULT_WINDOW_HOURS,
)

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("observability", "log_dir"),)


class MetaConfig(TypedDict):
    schema_version: int


class RegistryConfig(TypedDict):
    candidate_ttl_minutes: float
    plan_ttl_multiplier: float


class PolicyConfig(TypedDict):
    coverage_floor: float
    concurrency_multiplier: float
    retry_ceiling: int
    duration_ceiling_minutes: float


class OrchestratorSettings(TypedDict):
    readiness_damping: float
    default_window_hours: int
    latest_plan_limit: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str
    redact_secrets: bool


class CadenceConfig(TypedDict):
    meta: MetaConfig
    registry: RegistryConfig
    policy: PolicyConfig
    orchestrator: OrchestratorSettings
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[CadenceConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "registry": {
        "candidate_ttl_minutes": DEFAULT_CANDIDATE_TTL_MINUTES,
        "plan_ttl_multiplier": DEFAULT_PLAN_TTL_MULTIPLIER,
    },
    "policy": {
        "coverage_floor": DEFAULT_COVERAGE_FLOOR,
        "concurrency_multiplier": DEFAULT_CONCURRENCY_MULTIPLIER,
        "retry_ceiling": DEFAULT_RETRY_CEILING,
        "duration_ceiling_minutes": DEFAULT_DURATION_CEILING_MINUTES,
    },
    "orchestrator": {
        "readiness_damping": DEFAULT_READINESS_DAMPING,
        "default_window_hours": DEFAULT_WINDOW_HOURS,
        "latest_plan_limit": DEFAULT_LATEST_PLAN_LIMIT,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "log_dir": "logs/",
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class _Field:
    kind: Literal["int", "float", "bool", "str", "enum"]
    minimum: float | None = None
    maximum: float | None = None
    choices: tuple[str, ...] = ()


_SCHEMA: Final[dict[str, dict[str, _Field]]] = {
    "meta": {"schema_version": _Field("int", minimum=1)},
    "registry": {
        "candidate_ttl_minutes": _Field("float", minimum=0.001),
        "plan_ttl_multiplier": _Field("float", minimum=1.0),
    },
    "policy": {
        "coverage_floor": _Field("float", minimum=0.0, maximum=1.0),
        "concurrency_multiplier": _Field("float", minimum=0.001),
        "retry_ceiling": _Field("int", minimum=0, maximum=20),
        "duration_ceiling_minutes": _Field("float", minimum=1.0, maximum=10_000.0),
    },
    "orchestrator": {
        "readiness_damping": _Field("float", minimum=0.0, maximum=1.0),
        "default_window_hours": _Field("int", minimum=1, maximum=48),
        "latest_plan_limit": _Field("int", minimum=1, maximum=1000),
    },
    "observability": {
        "log_level": _Field("enum", choices=LOG_LEVELS),
        "log_format": _Field("enum", choices=LOG_FORMATS),
        "log_dir": _Field("str"),
        "redact_secrets": _Field("bool"),
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One failing setting: a dotted ``section.field`` path and what is wrong with it."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """The merged config has at least one issue; ``issues`` lists every one of them."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        rendered = (
            "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
            or "unknown validation failure"
        )
        super().__init__(f"invalid config:\n{rendered}")


def default_config() -> CadenceConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def field_types() -> dict[tuple[str, str], str]:
    """``(section, field) -> kind`` for every known setting, used for env coercion."""

    return {
        (section, name): rule.kind
        for section, fields in _SCHEMA.items()
        for name, rule in fields.items()
    }


def migration_guidance(found_version: int) -> str:
    if found_version < CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade cadence.toml to the current schema"
        )
    if found_version > CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade the cadence-engine runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Copy ``base`` and lay ``overlay`` over it; nested tables merge, anything else replaces."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate a complete config and return structured issues."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(ConfigValidationIssue("<root>", f"expected object, got {type(config).__name__}"))
        return ConfigValidationResult(config=None, issues=tuple(issues))

    for key in sorted(str(key) for key in config):
        if key not in _SCHEMA:
            issues.append(ConfigValidationIssue(key, "unknown section"))

    normalized: dict[str, Any] = {}
    for section, fields in _SCHEMA.items():
        raw = config.get(section)
        if not isinstance(raw, Mapping):
            issues.append(ConfigValidationIssue(section, "missing or non-object section"))
            continue
        for key in sorted(str(key) for key in raw):
            if key not in fields:
                issues.append(ConfigValidationIssue(f"{section}.{key}", "unknown field"))
        out: dict[str, Any] = {}
        for name, rule in fields.items():
            path = f"{section}.{name}"
            if name not in raw:
                issues.append(ConfigValidationIssue(path, "missing required field"))
                continue
            parsed = _check(raw[name], rule, path, issues)
            if parsed is not None:
                out[name] = parsed
        normalized[section] = out

    version = normalized.get("meta", {}).get("schema_version")
    if isinstance(version, int) and version != CONFIG_SCHEMA_VERSION:
        issues.append(ConfigValidationIssue("meta.schema_version", migration_guidance(version)))

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return the normalized config or raise ``ConfigValidationError``."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _check(
    value: object,
    rule: _Field,
    path: str,
    issues: list[ConfigValidationIssue],
) -> object | None:
    if rule.kind == "bool":
        if isinstance(value, bool):
            return value
        issues.append(ConfigValidationIssue(path, f"expected boolean, got {type(value).__name__}"))
        return None

    if rule.kind in ("str", "enum"):
        if not isinstance(value, str) or not value.strip():
            issues.append(ConfigValidationIssue(path, "expected non-empty string"))
            return None
        text = value.strip()
        if rule.kind == "enum" and text not in rule.choices:
            expected = ", ".join(rule.choices)
            issues.append(
                ConfigValidationIssue(path, f"invalid value {text!r}; expected one of: {expected}")
            )
            return None
        return text

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.append(ConfigValidationIssue(path, f"expected number, got {type(value).__name__}"))
        return None
    if rule.kind == "int" and not isinstance(value, int):
        issues.append(ConfigValidationIssue(path, f"expected integer, got {type(value).__name__}"))
        return None
    number = value if rule.kind == "int" else float(value)
    if not math.isfinite(number):
        issues.append(ConfigValidationIssue(path, "must be finite"))
        return None
    if rule.minimum is not None and number < rule.minimum:
        issues.append(ConfigValidationIssue(path, f"must be >= {rule.minimum:g}"))
        return None
    if rule.maximum is not None and number > rule.maximum:
        issues.append(ConfigValidationIssue(path, f"must be <= {rule.maximum:g}"))
        return None
    return number


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            _merge_into(existing, value)
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "CadenceConfig",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "assert_valid_config",
    "default_config",
    "field_types",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
