"""Data-dir-aware configuration loading for tasksync."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional, Tuple

import yaml

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = REPO_ROOT / "config"
DEFAULT_DATA_DIR = "~/.tasksync"

DiagnosticLevel = Literal["info", "warning", "error"]
ConfigurationStatus = Literal["ready", "missing", "invalid"]


SchemaSpec = Dict[str, Any]

DEFAULT_CONNECTIVITY_TARGETS: List[str] = ["google.com:443"]

# Environment variable -> (section, key, caster)
ENV_OVERRIDES: Dict[str, Tuple[str, str, type]] = {
    "TASKSYNC_LOG_LEVEL": ("logging", "level", str),
    "SYNC_BATCH_SIZE": ("sync", "batch_size", int),
    "API_BASE_URL": ("remote", "base_url", str),
}


CONFIG_SCHEMA: SchemaSpec = {
    "runtime": {
        "type": dict,
        "schema": {
            "name": {"type": str, "default": "tasksync"},
        },
        "default": {},
    },
    "logging": {
        "type": dict,
        "schema": {
            "level": {"type": str, "default": "INFO"},
            "structured": {"type": bool, "default": True},
        },
        "default": {},
    },
    "storage": {
        "type": dict,
        "schema": {
            "database": {"type": str, "default": "state/tasksync.sqlite3"},
        },
        "default": {},
    },
    "remote": {
        "type": dict,
        "schema": {
            "base_url": {"type": str, "default": "http://localhost:3000/api"},
            "timeout": {"type": (int, float), "default": 30, "min": 0.1},
            "api_key": {"type": str, "default": ""},
        },
        "default": {},
    },
    "sync": {
        "type": dict,
        "schema": {
            "enabled": {"type": bool, "default": True},
            "batch_size": {"type": int, "default": 50, "min": 1},
            "max_attempts": {"type": int, "default": 3, "min": 1},
            "dispatch_mode": {"type": str, "default": "batch", "choices": ("batch", "single")},
            "collapse_superseded": {"type": bool, "default": False},
            "auto_interval": {"type": (int, float), "default": 0, "min": 0},
        },
        "default": {},
    },
    "connectivity": {
        "type": dict,
        "schema": {
            "strategy": {"type": str, "default": "health", "choices": ("health", "tcp")},
            "targets": {
                "type": list,
                "item_type": str,
                "default_factory": lambda: list(DEFAULT_CONNECTIVITY_TARGETS),
            },
            "timeout": {"type": (int, float), "default": 5.0, "min": 0.1},
        },
        "default": {},
    },
    "api": {
        "type": dict,
        "schema": {
            "host": {"type": str, "default": "127.0.0.1"},
            "port": {"type": int, "default": 8000, "min": 1, "max": 65535},
            "cors_origins": {"type": list, "item_type": str, "default_factory": list},
        },
        "default": {},
    },
}


@dataclass
class Diagnostic:
    """Represents a configuration validation or loading issue."""

    level: DiagnosticLevel
    message: str
    source: Optional[Path] = None


@dataclass
class ConfigurationBundle:
    """All configuration data tasksync needs at runtime."""

    data_dir: Path
    status: ConfigurationStatus
    merged: Dict[str, Any] = field(default_factory=dict)
    repo_defaults: Dict[str, Any] = field(default_factory=dict)
    local_overrides: Dict[str, Any] = field(default_factory=dict)
    files_loaded: List[Path] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    log_path: Optional[Path] = None

    def section(self, name: str) -> Dict[str, Any]:
        if not self.merged:
            return {}
        return self.merged.get(name, {}) or {}


def resolve_data_dir(
    env: Optional[Mapping[str, str]] = None,
    default: str = DEFAULT_DATA_DIR,
) -> Path:
    """Resolve the data directory from the environment."""

    env_source = env if env is not None else os.environ
    raw = env_source.get("TASKSYNC_HOME", default)
    return Path(raw).expanduser()


def load_runtime_configuration(
    data_dir: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ConfigurationBundle:
    """Build the runtime configuration from three layers.

    Repository defaults (``config/*.yml``) are overlaid by per-machine files
    under ``<data_dir>/config`` and finally by ``ENV_OVERRIDES``. Nothing here
    raises on bad input: problems are recorded as diagnostics, offending
    values fall back to their schema defaults, and any error marks the bundle
    ``invalid``.
    """

    env_source = env if env is not None else os.environ
    resolved_dir = data_dir or resolve_data_dir(env_source)
    diagnostics: List[Diagnostic] = []

    repo_defaults, files_loaded = _read_layer(DEFAULT_CONFIG_DIR, "repo defaults", diagnostics)
    local_overrides: Dict[str, Any] = {}
    status: ConfigurationStatus = "ready"

    if not resolved_dir.exists():
        _report(diagnostics, "error", f"Data directory '{resolved_dir}' does not exist.")
        status = "missing"
    elif not resolved_dir.is_dir():
        _report(diagnostics, "error", f"Data path '{resolved_dir}' is not a directory.")
        status = "invalid"
    else:
        local_overrides, local_files = _read_layer(resolved_dir / "config", "local overrides", diagnostics)
        files_loaded = files_loaded + local_files

    merged = deepcopy(repo_defaults)
    _deep_merge_dicts(merged, local_overrides)
    _apply_env_overrides(merged, env_source, diagnostics)
    _validate_mapping(merged, CONFIG_SCHEMA, "config", diagnostics)

    if status == "ready" and any(diag.level == "error" for diag in diagnostics):
        status = "invalid"

    return ConfigurationBundle(
        data_dir=resolved_dir,
        status=status,
        merged=merged,
        repo_defaults=repo_defaults,
        local_overrides=local_overrides,
        files_loaded=files_loaded,
        diagnostics=diagnostics,
    )


def _report(
    diagnostics: List[Diagnostic],
    level: DiagnosticLevel,
    message: str,
    source: Optional[Path] = None,
) -> None:
    diagnostics.append(Diagnostic(level=level, message=message, source=source))


def _read_layer(
    directory: Path,
    label: str,
    diagnostics: List[Diagnostic],
) -> Tuple[Dict[str, Any], List[Path]]:
    """Merge every ``*.yml``/``*.yaml`` file in ``directory`` in sorted order."""

    layer: Dict[str, Any] = {}
    loaded: List[Path] = []

    if not directory.exists():
        _report(diagnostics, "warning", f"No configuration directory found at '{directory}' ({label}).", directory)
        return layer, loaded
    if not directory.is_dir():
        _report(diagnostics, "error", f"Configuration path '{directory}' ({label}) is not a directory.", directory)
        return layer, loaded

    for path in sorted(directory.glob("*.yml")) + sorted(directory.glob("*.yaml")):
        try:
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            _report(diagnostics, "error", f"Failed to parse '{path}': {exc}", path)
            continue

        if document is not None and not isinstance(document, MutableMapping):
            _report(diagnostics, "warning", f"Ignoring '{path}' because it does not contain a mapping.", path)
            continue

        _deep_merge_dicts(layer, dict(document or {}))
        loaded.append(path)

    if not loaded:
        _report(diagnostics, "info", f"No YAML files found under '{directory}' ({label}).", directory)
    return layer, loaded


def _apply_env_overrides(
    merged: Dict[str, Any],
    env: Mapping[str, str],
    diagnostics: List[Diagnostic],
) -> None:
    for variable, (section, key, caster) in ENV_OVERRIDES.items():
        raw = env.get(variable)
        if not raw:
            continue
        try:
            value = caster(raw)
        except ValueError:
            _report(diagnostics, "warning", f"Ignoring {variable}={raw!r}: expected {caster.__name__}.")
            continue
        target = merged.setdefault(section, {})
        if isinstance(target, MutableMapping):
            target[key] = value


def _deep_merge_dicts(dest: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    """Recursively merge ``source`` into ``dest``; scalars and lists replace."""

    for key, value in source.items():
        current = dest.get(key)
        if isinstance(current, MutableMapping) and isinstance(value, Mapping):
            _deep_merge_dicts(current, value)
        else:
            dest[key] = deepcopy(value)


def _schema_default(rule: SchemaSpec) -> Any:
    factory = rule.get("default_factory")
    if callable(factory):
        return factory()
    return deepcopy(rule.get("default"))


def _type_name(expected: Any) -> str:
    if isinstance(expected, tuple):
        return ", ".join(t.__name__ for t in expected)
    return expected.__name__


def _validate_mapping(
    target: Dict[str, Any],
    schema: SchemaSpec,
    path: str,
    diagnostics: List[Diagnostic],
) -> None:
    for key in target:
        if key not in schema:
            _report(diagnostics, "warning", f"Unknown configuration key '{path}.{key}'.")

    for key, rule in schema.items():
        child_path = f"{path}.{key}"
        if key not in target:
            if "default" in rule or "default_factory" in rule:
                target[key] = _schema_default(rule)
            continue

        expected = rule.get("type")
        if expected is dict:
            if not isinstance(target[key], dict):
                _report(diagnostics, "error", f"'{child_path}' must be a mapping.")
                target[key] = _schema_default(rule) or {}
            _validate_mapping(target[key], rule.get("schema", {}), child_path, diagnostics)
        elif expected is list:
            target[key] = _validate_list(target[key], rule, child_path, diagnostics)
        elif expected is not None:
            target[key] = _validate_scalar(target[key], rule, child_path, diagnostics)


def _validate_list(value: Any, rule: SchemaSpec, path: str, diagnostics: List[Diagnostic]) -> List[Any]:
    if not isinstance(value, list):
        _report(diagnostics, "error", f"'{path}' must be a list.")
        return _schema_default(rule) or []

    item_type = rule.get("item_type")
    if item_type is None:
        return value

    kept: List[Any] = []
    for index, item in enumerate(value):
        if isinstance(item, item_type):
            kept.append(item)
        else:
            _report(diagnostics, "error", f"'{path}[{index}]' must be of type {item_type.__name__}.")
    return kept


def _validate_scalar(value: Any, rule: SchemaSpec, path: str, diagnostics: List[Diagnostic]) -> Any:
    expected = rule["type"]
    # bool is an int subclass; only accept it where the schema asks for bool.
    wrong_type = not isinstance(value, expected) or (isinstance(value, bool) and expected is not bool)
    if wrong_type:
        _report(diagnostics, "error", f"'{path}' must be of type {_type_name(expected)}.")
        return _schema_default(rule)

    choices = rule.get("choices")
    if choices is not None and value not in choices:
        _report(diagnostics, "error", f"'{path}' must be one of: {', '.join(choices)}.")
        return _schema_default(rule)

    lower, upper = rule.get("min"), rule.get("max")
    if (lower is not None and value < lower) or (upper is not None and value > upper):
        bounds = f">= {lower}" if upper is None else f"between {lower} and {upper}"
        _report(diagnostics, "error", f"'{path}' must be {bounds}; got {value!r}.")
        return _schema_default(rule)

    return value


__all__ = [
    "ConfigurationBundle",
    "ConfigurationStatus",
    "DEFAULT_CONFIG_DIR",
    "Diagnostic",
    "load_runtime_configuration",
    "resolve_data_dir",
]
