"""Layered configuration loading for MineSync."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional, Tuple

import yaml

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = REPO_ROOT / "config"
USER_CONFIG_ENV = "MINESYNC_CONFIG_DIR"
DEFAULT_USER_CONFIG_DIR = "~/.config/minesync"

DiagnosticLevel = Literal["info", "warning", "error"]
ConfigurationStatus = Literal["ready", "missing", "invalid"]


SchemaSpec = Dict[str, Any]

DEFAULT_MANIFEST_ENDPOINT = "127.0.0.1:9998"
DEFAULT_UPLOAD_ENDPOINT = "127.0.0.1:9999"
DEFAULT_DOWNLOAD_ENDPOINT = "127.0.0.1:9997"
DEFAULT_MAX_MESSAGE_SIZE = 512 * 1024 * 1024  # largest frame body accepted from a server


CONFIG_SCHEMA: SchemaSpec = {
    "logging": {
        "type": dict,
        "schema": {
            "level": {"type": str, "default": "INFO"},
            "structured": {"type": bool, "default": False},
        },
        "default": {},
    },
    "ui": {
        "type": dict,
        "schema": {
            "verbose": {"type": bool, "default": True},
        },
        "default": {},
    },
    "saves": {
        "type": dict,
        "schema": {
            "root": {"type": str, "default": ""},
            "platform": {"type": str, "default": ""},
        },
        "default": {},
    },
    "endpoints": {
        "type": dict,
        "schema": {
            "manifest": {"type": str, "default": DEFAULT_MANIFEST_ENDPOINT},
            "upload": {"type": str, "default": DEFAULT_UPLOAD_ENDPOINT},
            "download": {"type": str, "default": DEFAULT_DOWNLOAD_ENDPOINT},
        },
        "default": {},
    },
    "transport": {
        "type": dict,
        "schema": {
            "connect_timeout": {"type": (int, float), "default": 5.0},
            "io_timeout": {"type": (int, float), "default": 60.0},
            "retries": {"type": int, "default": 2},
            "retry_delay": {"type": (int, float), "default": 0.5},
            "max_message_size": {"type": int, "default": DEFAULT_MAX_MESSAGE_SIZE},
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
    """All configuration data MineSync needs at runtime."""

    config_dir: Path
    status: ConfigurationStatus
    merged: Dict[str, Any] = field(default_factory=dict)
    repo_defaults: Dict[str, Any] = field(default_factory=dict)
    user_overrides: Dict[str, Any] = field(default_factory=dict)
    files_loaded: List[Path] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    log_path: Optional[Path] = None


def resolve_config_dir(
    env: Optional[Mapping[str, str]] = None,
    default: str = DEFAULT_USER_CONFIG_DIR,
) -> Path:
    """Resolve the user configuration directory from the environment."""

    env_source = env or os.environ
    raw = env_source.get(USER_CONFIG_ENV, default)
    return Path(raw).expanduser()


def load_runtime_configuration(config_dir: Optional[Path] = None) -> ConfigurationBundle:
    """Load repository defaults and user overrides."""

    resolved_dir = config_dir or resolve_config_dir()
    diagnostics: List[Diagnostic] = []
    files_loaded: List[Path] = []

    repo_defaults, repo_files = _load_directory_configs(
        DEFAULT_CONFIG_DIR,
        diagnostics,
        label="repo defaults",
    )
    files_loaded.extend(repo_files)

    status: ConfigurationStatus = "ready"
    user_overrides: Dict[str, Any] = {}

    if not resolved_dir.exists():
        # Running without a user config is normal; defaults apply.
        diagnostics.append(
            Diagnostic(
                level="info",
                message=f"Config directory '{resolved_dir}' does not exist; using defaults.",
                source=resolved_dir,
            )
        )
    elif not resolved_dir.is_dir():
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Config path '{resolved_dir}' is not a directory.",
                source=resolved_dir,
            )
        )
        status = "invalid"
    else:
        user_overrides, override_files = _load_directory_configs(
            resolved_dir,
            diagnostics,
            label="user overrides",
        )
        files_loaded.extend(override_files)

    merged = deepcopy(repo_defaults)
    _deep_merge_dicts(merged, user_overrides)

    _validate_schema(merged, diagnostics)

    if status == "ready" and any(diag.level == "error" for diag in diagnostics):
        status = "invalid"

    return ConfigurationBundle(
        config_dir=resolved_dir,
        status=status,
        merged=merged,
        repo_defaults=repo_defaults,
        user_overrides=user_overrides,
        files_loaded=files_loaded,
        diagnostics=diagnostics,
    )


def _load_directory_configs(
    directory: Path,
    diagnostics: List[Diagnostic],
    label: str,
) -> Tuple[Dict[str, Any], List[Path]]:
    """Load all YAML files from a directory, merging them in order."""

    data: Dict[str, Any] = {}
    loaded_files: List[Path] = []

    if not directory.exists():
        diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"No configuration directory found at '{directory}' ({label}).",
                source=directory,
            )
        )
        return data, loaded_files

    if not directory.is_dir():
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Configuration path '{directory}' ({label}) is not a directory.",
                source=directory,
            )
        )
        return data, loaded_files

    yaml_files = sorted(directory.glob("*.yml")) + sorted(directory.glob("*.yaml"))

    for yaml_file in yaml_files:
        try:
            content = yaml.safe_load(yaml_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"Failed to parse '{yaml_file}': {exc}",
                    source=yaml_file,
                )
            )
            continue

        if content is None:
            loaded_files.append(yaml_file)
            continue

        if not isinstance(content, MutableMapping):
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Ignoring '{yaml_file}' because it does not contain a mapping.",
                    source=yaml_file,
                )
            )
            continue

        _deep_merge_dicts(data, dict(content))
        loaded_files.append(yaml_file)

    if not loaded_files:
        diagnostics.append(
            Diagnostic(
                level="info",
                message=f"No YAML files found under '{directory}' ({label}).",
                source=directory,
            )
        )

    return data, loaded_files


def _deep_merge_dicts(dest: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    """Recursively merge mapping values."""

    for key, value in source.items():
        if (
            key in dest
            and isinstance(dest[key], MutableMapping)
            and isinstance(value, Mapping)
        ):
            _deep_merge_dicts(dest[key], value)
        else:
            dest[key] = deepcopy(value)


def _default_from_spec(spec: SchemaSpec) -> Any:
    if "default_factory" in spec and callable(spec["default_factory"]):
        return spec["default_factory"]()
    return deepcopy(spec.get("default"))


def _validate_schema(config: Dict[str, Any], diagnostics: List[Diagnostic]) -> None:
    _validate_section(config, CONFIG_SCHEMA, "config", diagnostics)


def _validate_section(
    target: Dict[str, Any],
    schema: SchemaSpec,
    path: str,
    diagnostics: List[Diagnostic],
) -> None:
    if not isinstance(target, dict):
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Configuration section '{path}' must be a mapping.",
            )
        )
        return

    for key in list(target.keys()):
        if key not in schema:
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Unknown configuration key '{path}.{key}'.",
                )
            )

    for key, spec in schema.items():
        child_path = f"{path}.{key}"
        if key not in target:
            if "default" in spec or "default_factory" in spec:
                target[key] = _default_from_spec(spec)
                if spec.get("type") is dict:
                    _validate_section(target[key], spec.get("schema", {}), child_path, diagnostics)
            continue

        value = target[key]
        expected_type = spec.get("type")

        if expected_type is dict:
            if not isinstance(value, dict):
                diagnostics.append(
                    Diagnostic(
                        level="error",
                        message=f"'{child_path}' must be a mapping.",
                    )
                )
                target[key] = _default_from_spec(spec) or {}
                _validate_section(target[key], spec.get("schema", {}), child_path, diagnostics)
                continue
            _validate_section(value, spec.get("schema", {}), child_path, diagnostics)
        elif expected_type and (
            not isinstance(value, expected_type)
            # YAML booleans are ints; never accept them for numeric keys.
            or (isinstance(value, bool) and expected_type is not bool)
        ):
            if isinstance(expected_type, tuple):
                type_name = ", ".join(t.__name__ for t in expected_type)
            else:
                type_name = expected_type.__name__
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"'{child_path}' must be of type {type_name}.",
                )
            )
            target[key] = _default_from_spec(spec)


__all__ = [
    "ConfigurationBundle",
    "ConfigurationStatus",
    "CONFIG_SCHEMA",
    "DEFAULT_CONFIG_DIR",
    "Diagnostic",
    "load_runtime_configuration",
    "resolve_config_dir",
]
