"""
cadence-engine: runtime config loader.

File: src/cadence_engine/config/loader.py

Purpose
- Build the effective config from four layers: built-in defaults, ``cadence.toml``,
  ``CADENCE_<SECTION>_<FIELD>`` environment variables, and CLI overrides.

Functional requirements
- Later layers win: CLI > env > file > defaults.
- A missing default file is fine; a missing explicit file is an error.
- Env values are parsed as the type of the setting they override.
- Relative ``log_dir`` paths resolve against the config file's directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import reduce
from pathlib import Path
from typing import Any, Final

from cadence_engine.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    field_types,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "cadence.toml"
ENV_PREFIX: Final[str] = "CADENCE_"

_BOOL_WORDS: Final[dict[str, bool]] = {
    "1": True,
    "true": True,
    "t": True,
    "yes": True,
    "y": True,
    "on": True,
    "0": False,
    "false": False,
    "f": False,
    "no": False,
    "n": False,
    "off": False,
}


class ConfigLoadError(ValueError):
    """Raised when a config layer cannot be read or parsed."""


@dataclass(frozen=True, slots=True)
class ConfigLayer:
    """One precedence layer; ``values`` is a partial ``section -> field -> value`` overlay."""

    source: str
    values: dict[str, Any]


def config_layers(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[Path, list[ConfigLayer]]:
    """Return the resolved config file path and its layers, lowest precedence first."""

    path = _config_file(config_path)
    layers = [
        ConfigLayer("defaults", dict(default_config())),
        ConfigLayer("file", _read_toml(path, required=config_path is not None)),
        ConfigLayer("env", env_overrides(os.environ if environ is None else environ)),
        ConfigLayer("cli", _cli_overlay(cli_overrides or {})),
    ]
    return path, layers


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Merge every layer, validate the result, and resolve path settings."""

    path, layers = config_layers(config_path, cli_overrides=cli_overrides, environ=environ)
    merged = reduce(merge_config, (layer.values for layer in layers), {})
    return normalize_paths(assert_valid_config(merged), base_dir=path.parent)


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay built from ``CADENCE_*`` variables that name a known setting."""

    overlay: dict[str, Any] = {}
    for (section, name), kind in sorted(field_types().items()):
        variable = env_name_for(section, name)
        if variable in environ:
            overlay.setdefault(section, {})[name] = _parse_env(variable, environ[variable], kind)
    return overlay


def normalize_paths(config: Mapping[str, Any], *, base_dir: Path) -> dict[str, Any]:
    """Copy of ``config`` with relative path settings anchored at ``base_dir``."""

    resolved = merge_config({}, config)
    for section, name in PATH_FIELDS:
        raw = resolved.get(section, {}).get(name)
        if isinstance(raw, str):
            target = Path(os.path.expandvars(raw)).expanduser()
            if not target.is_absolute():
                target = base_dir / target
            resolved[section][name] = Path(os.path.normpath(target)).as_posix()
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def env_name_for(section: str, name: str) -> str:
    return f"{ENV_PREFIX}{section}_{name}".upper()


def _config_file(config_path: str | Path | None) -> Path:
    if config_path is None:
        return Path(DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc


def _parse_bool(raw: str) -> bool:
    return _BOOL_WORDS[raw.lower()]


_ENV_PARSERS: Final[dict[str, tuple[Callable[[str], object], str]]] = {
    "int": (int, "an integer"),
    "float": (float, "a number"),
    "bool": (_parse_bool, "a boolean (true/false/1/0/yes/no/on/off)"),
    "str": (str, "a string"),
    "enum": (str, "a string"),
}


def _parse_env(variable: str, raw: str, kind: str) -> object:
    parser, expected = _ENV_PARSERS[kind]
    try:
        return parser(raw.strip())
    except (KeyError, ValueError) as exc:
        raise ConfigLoadError(f"{variable} must be {expected}") from exc


def _cli_overlay(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    """Expand dotted ``section.field`` keys; ``None`` values mean "not given"."""

    overlay: dict[str, Any] = {}
    for key, value in sorted(cli_overrides.items()):
        if value is None:
            continue
        section, dot, name = key.partition(".")
        if not dot or not section or not name or "." in name:
            raise ConfigLoadError(f"invalid CLI override key {key!r}; expected section.field")
        overlay.setdefault(section, {})[name] = value
    return overlay


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLayer",
    "ConfigLoadError",
    "config_layers",
    "dump_effective_config",
    "env_name_for",
    "env_overrides",
    "load_config",
    "normalize_paths",
]
