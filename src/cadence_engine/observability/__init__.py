"""Public observability primitives: structured logging and metrics."""

from cadence_engine.observability.logging import (
    LoggingConfig,
    LoggingHandle,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    setup_structured_logging,
    shutdown_logging,
)
from cadence_engine.observability.metrics import MetricsRegistry

__all__ = [
    "LoggingConfig",
    "LoggingHandle",
    "MetricsRegistry",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_structured_logging",
    "shutdown_logging",
]
