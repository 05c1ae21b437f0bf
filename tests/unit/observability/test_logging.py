"""Unit tests for observability.logging."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from cadence_engine.config.schema import default_config
from cadence_engine.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    setup_structured_logging,
    shutdown_logging,
)


@pytest.fixture(autouse=True)
def _stop_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _records(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_json_sink_writes_per_session_file(tmp_path: Path) -> None:
    handle = setup_structured_logging(LoggingConfig(session_id="sess-1", base_log_dir=tmp_path))

    handle.logger.info("planner started", extra={"slot_count": 3})
    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "sess-1" / "cadence.jsonl"
    (record,) = _records(handle.log_path)
    assert record["message"] == "planner started"
    assert record["level"] == "INFO"
    assert record["session_id"] == "sess-1"
    assert record["fields"] == {"slot_count": 3}
    assert str(record["timestamp"]).endswith("Z")
    assert get_active_logging_handle() is None


def test_structlog_events_carry_correlation_and_redaction(tmp_path: Path) -> None:
    handle = setup_structured_logging(LoggingConfig(session_id="sess-2", base_log_dir=tmp_path))
    logger = structlog.get_logger("cadence_engine.planning.orchestrator")

    with correlation_scope(run_id="run-42", plan_id="cadence-7"):
        logger.info("cadence.plan_computed", api_token="abc123", readiness_score=4.5)
    logger.info("cadence.after_scope")
    shutdown_logging(handle)

    first, second = _records(handle.log_path)
    assert first["message"] == "cadence.plan_computed"
    assert first["run_id"] == "run-42"
    assert first["plan_id"] == "cadence-7"
    assert first["fields"] == {"api_token": "***REDACTED***", "readiness_score": 4.5}
    assert "run_id" not in second


def test_level_filter_drops_debug_records(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(session_id="sess-3", base_log_dir=tmp_path, level="WARNING")
    )

    handle.logger.info("quiet")
    handle.logger.warning("loud")
    shutdown_logging(handle)

    assert [record["message"] for record in _records(handle.log_path)] == ["loud"]


def test_text_format_skips_json_encoding(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(session_id="sess-4", base_log_dir=tmp_path, log_format="text")
    )

    handle.logger.info("plain line")
    shutdown_logging(handle)

    text = handle.log_path.read_text(encoding="utf-8")
    assert "INFO cadence_engine plain line" in text


def test_redaction_can_be_disabled(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(session_id="sess-5", base_log_dir=tmp_path, redact_secrets=False)
    )

    handle.logger.info("password=hunter2")
    shutdown_logging(handle)

    assert _records(handle.log_path)[0]["message"] == "password=hunter2"


def test_new_session_replaces_active_handle(tmp_path: Path) -> None:
    first = setup_structured_logging(LoggingConfig(session_id="a", base_log_dir=tmp_path))
    second = setup_structured_logging(LoggingConfig(session_id="b", base_log_dir=tmp_path))

    assert first.is_shutdown
    assert get_active_logging_handle() is second
    assert logging.getLogger("cadence_engine").handlers != []


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"session_id": "  "}, "session_id must not be empty"),
        ({"log_filename": "nested/cadence.jsonl"}, "path separators"),
        ({"queue_size": 0}, "queue_size"),
        ({"level": "LOUD"}, "unsupported logging level"),
    ],
)
def test_invalid_configs_are_rejected(
    tmp_path: Path, overrides: dict[str, object], message: str
) -> None:
    settings: dict[str, object] = {"session_id": "sess", "base_log_dir": tmp_path, **overrides}

    with pytest.raises(ValueError, match=message):
        setup_structured_logging(LoggingConfig(**settings))  # type: ignore[arg-type]


def test_from_config_reads_observability_section() -> None:
    config = default_config()
    config["observability"]["log_format"] = "text"
    config["observability"]["redact_secrets"] = False

    settings = LoggingConfig.from_config(config, session_id="sess")

    assert settings.log_format == "text"
    assert settings.redact_secrets is False
    assert settings.level == "INFO"
    assert settings.base_log_dir == "logs/"


def test_correlation_scope_nests_and_unbinds() -> None:
    with correlation_scope(session_id="s", run_id="r"):
        with correlation_scope(run_id=None, plan_id="p"):
            assert get_correlation_context() == {"session_id": "s", "plan_id": "p"}
        assert get_correlation_context() == {"session_id": "s", "run_id": "r"}
    assert get_correlation_context() == {}


def test_default_redactor_handles_nested_values() -> None:
    redacted = default_log_redactor(
        {
            "headers": {"Authorization": "Bearer abc.def"},
            "notes": ["token: xyz", "Bearer abc.def"],
            "count": 2,
        }
    )

    assert redacted == {
        "headers": {"Authorization": "***REDACTED***"},
        "notes": ["token:***REDACTED***", "Bearer ***REDACTED***"],
        "count": 2,
    }
