"""
cadence-engine config package public API.

File: src/cadence_engine/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``cadence.toml`` + ``CADENCE_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from cadence_engine.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from cadence_engine.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "load_config",
    "validate_config",
]
