"""Unit tests for config.schema."""

from __future__ import annotations

import pytest

from cadence_engine.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    field_types,
    merge_config,
    migration_guidance,
    validate_config,
)


def _issue_paths(config: object) -> list[str]:
    return [issue.path for issue in validate_config(config).issues]


def test_defaults_are_valid_and_copied() -> None:
    config = default_config()
    config["policy"]["coverage_floor"] = 0.1

    assert DEFAULT_CONFIG["policy"]["coverage_floor"] == 0.8
    assert validate_config(default_config()).is_valid


def test_integers_are_accepted_for_float_fields() -> None:
    config = merge_config(default_config(), {"registry": {"candidate_ttl_minutes": 45}})

    validated = assert_valid_config(config)

    assert validated["registry"]["candidate_ttl_minutes"] == 45.0
    assert isinstance(validated["registry"]["candidate_ttl_minutes"], float)


def test_non_mapping_root_is_rejected() -> None:
    result = validate_config(["not", "a", "table"])

    assert result.config is None
    assert result.issues[0].path == "<root>"
    assert "expected object, got list" in result.issues[0].message


def test_unknown_sections_and_fields_are_reported() -> None:
    config = merge_config(
        default_config(),
        {"scheduler": {"enabled": True}, "policy": {"coverage_ceiling": 0.9}},
    )

    assert _issue_paths(config) == ["scheduler", "policy.coverage_ceiling"]


def test_missing_section_and_field_are_reported() -> None:
    config = default_config()
    del config["orchestrator"]
    del config["registry"]["plan_ttl_multiplier"]

    paths = _issue_paths(config)

    assert "orchestrator" in paths
    assert "registry.plan_ttl_multiplier" in paths


@pytest.mark.parametrize(
    ("overlay", "path", "message"),
    [
        ({"policy": {"coverage_floor": 1.5}}, "policy.coverage_floor", "must be <= 1"),
        ({"policy": {"retry_ceiling": 2.5}}, "policy.retry_ceiling", "expected integer"),
        ({"policy": {"retry_ceiling": True}}, "policy.retry_ceiling", "expected number"),
        ({"registry": {"candidate_ttl_minutes": float("inf")}}, "registry.candidate_ttl_minutes", "finite"),
        ({"observability": {"log_level": "TRACE"}}, "observability.log_level", "expected one of"),
        ({"observability": {"log_dir": "  "}}, "observability.log_dir", "non-empty string"),
        ({"observability": {"redact_secrets": "yes"}}, "observability.redact_secrets", "expected boolean"),
        ({"orchestrator": {"default_window_hours": 0}}, "orchestrator.default_window_hours", "must be >= 1"),
    ],
)
def test_field_checks(overlay: dict[str, dict[str, object]], path: str, message: str) -> None:
    result = validate_config(merge_config(default_config(), overlay))

    assert not result.is_valid
    (issue,) = result.issues
    assert issue.path == path
    assert message in issue.message


def test_schema_version_mismatch_explains_migration() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 2}})

    with pytest.raises(ConfigValidationError) as error:
        assert_valid_config(config)

    assert "meta.schema_version" in str(error.value)
    assert "upgrade the cadence-engine runtime" in str(error.value)


def test_migration_guidance_covers_both_directions() -> None:
    assert "upgrade cadence.toml" in migration_guidance(0)
    assert migration_guidance(1) == "schema version is current"


def test_merge_config_is_deep_and_leaves_inputs_untouched() -> None:
    base = default_config()
    overlay = {"policy": {"retry_ceiling": 3}}

    merged = merge_config(base, overlay)

    assert merged["policy"]["retry_ceiling"] == 3
    assert merged["policy"]["coverage_floor"] == 0.8
    assert base["policy"]["retry_ceiling"] == 6


def test_field_types_cover_every_section() -> None:
    kinds = field_types()

    assert kinds[("policy", "retry_ceiling")] == "int"
    assert kinds[("observability", "redact_secrets")] == "bool"
    assert {section for section, _ in kinds} == set(DEFAULT_CONFIG)
