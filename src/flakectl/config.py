"""Configuration loader for flakectl.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults, with every path derived from ``HOME``.
2. ``~/.config/flakectl/config.yml`` (or the path in ``FLAKECTL_CONFIG_FILE``).
3. Environment variables prefixed with ``FLAKECTL_``.
4. Explicit overrides supplied programmatically.

Environment keys use double underscores to express nesting, e.g.::

    export FLAKECTL_READINESS__ATTEMPTS=60
    export FLAKECTL_BINARIES__DOCKER=/usr/local/bin/docker

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The legacy ``LOG_LEVEL=QUIET`` switch is honoured when
``FLAKECTL_LOG_LEVEL`` is not set. The resulting configuration is exposed as
immutable ``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

from .errors import FlakectlError
from .exit_codes import ExitCode

ENV_PREFIX = "FLAKECTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
LEGACY_LOG_LEVEL_VAR = "LOG_LEVEL"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

DATA_DIR_NAME = "docker"
TEMP_DIR_NAME = "tmp"


class ConfigError(FlakectlError):
    """Raised when configuration parsing fails."""

    exit_code = ExitCode.VALIDATION


@dataclass(frozen=True)
class ReadinessConfig:
    """Bounds for the engine readiness poll."""

    attempts: int = 30
    interval: float = 1.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"attempts": self.attempts, "interval": self.interval}


@dataclass(frozen=True)
class BinariesConfig:
    """External executables invoked by flakectl."""

    docker: str = "docker"
    systemctl: str = "systemctl"
    rootless_setup: str = "dockerd-rootless-setuptool.sh"
    dockerd_rootless: str = "/usr/bin/dockerd-rootless.sh"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "docker": self.docker,
            "systemctl": self.systemctl,
            "rootless_setup": self.rootless_setup,
            "dockerd_rootless": self.dockerd_rootless,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for flakectl."""

    config_file: Path
    home: Path
    redirect_root: Path
    systemd_user_dir: Path
    service_name: str
    image_name: str
    dockerfile: Path
    build_context: Path
    workspace_mount: str
    shell: str
    redirect_marker: str
    templates_dir: Path | None
    log_level: str
    readiness: ReadinessConfig
    binaries: BinariesConfig

    @property
    def data_dir(self) -> Path:
        """Persistent engine data, always a direct child of the redirect root."""
        return self.redirect_root / DATA_DIR_NAME

    @property
    def temp_dir(self) -> Path:
        """Ephemeral engine data, always a direct child of the redirect root."""
        return self.redirect_root / TEMP_DIR_NAME

    @property
    def unit_file(self) -> Path:
        """Path of the managed systemd user unit."""
        return self.systemd_user_dir / f"{self.service_name}.service"

    @property
    def quiet(self) -> bool:
        """Return ``True`` when INFO messages should be suppressed."""
        return self.log_level == "QUIET"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "home": str(self.home),
            "redirect_root": str(self.redirect_root),
            "data_dir": str(self.data_dir),
            "temp_dir": str(self.temp_dir),
            "systemd_user_dir": str(self.systemd_user_dir),
            "service_name": self.service_name,
            "image_name": self.image_name,
            "dockerfile": str(self.dockerfile),
            "build_context": str(self.build_context),
            "workspace_mount": self.workspace_mount,
            "shell": self.shell,
            "redirect_marker": self.redirect_marker,
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
            "log_level": self.log_level,
            "readiness": self.readiness.to_dict(),
            "binaries": self.binaries.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": None,  # derived from home when absent
    "home": None,  # derived from HOME when absent
    "redirect_root": None,
    "systemd_user_dir": None,
    "service_name": "docker",
    "image_name": "nix-flake-env",
    "dockerfile": "Dockerfile",
    "build_context": ".",
    "workspace_mount": "/workspace",
    "shell": "bash",
    "redirect_marker": "goinfre",
    "templates_dir": None,
    "log_level": "INFO",
    "readiness": {
        "attempts": 30,
        "interval": 1.0,
    },
    "binaries": {
        "docker": "docker",
        "systemctl": "systemctl",
        "rootless_setup": "dockerd-rootless-setuptool.sh",
        "dockerd_rootless": "/usr/bin/dockerd-rootless.sh",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "QUIET"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    home = _determine_home(resolved_env)
    config_path = _determine_config_path(home, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    # LOG_LEVEL is shared with unrelated tools; only adopt values we understand.
    legacy_level = resolved_env.get(LEGACY_LOG_LEVEL_VAR, "").strip().upper()
    if legacy_level in ALLOWED_LOG_LEVELS:
        merged["log_level"] = legacy_level

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)
    if merged.get("home") is None:
        merged["home"] = str(home)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_home(env: Mapping[str, str]) -> Path:
    raw = env.get("HOME")
    if raw:
        return Path(raw)
    return Path.home()


def _determine_config_path(
    home: Path,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return home / ".config" / "flakectl" / "config.yml"


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    log_level = str(raw.get("log_level", "INFO")).upper()
    if log_level not in ALLOWED_LOG_LEVELS:
        allowed = ", ".join(sorted(ALLOWED_LOG_LEVELS))
        raise ConfigError(f"Unsupported log_level '{log_level}'. Allowed: {allowed}.")

    readiness = raw.get("readiness")
    if readiness is not None:
        readiness_map = _as_dict(readiness, "readiness")
        unknown = set(readiness_map.keys()) - {"attempts", "interval"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown readiness configuration keys: {joined}.")

    binaries = raw.get("binaries")
    if binaries is not None:
        binaries_map = _as_dict(binaries, "binaries")
        unknown = set(binaries_map.keys()) - set(BinariesConfig().to_dict())
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown binaries configuration keys: {joined}.")

    for key in ("service_name", "image_name", "redirect_marker", "shell"):
        value = raw.get(key)
        # Env values arrive YAML-coerced; FLAKECTL_IMAGE_NAME=123 is still a name.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"{key} must be a non-empty string.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    home = _to_path(raw.get("home"))
    redirect_value = raw.get("redirect_root")
    redirect_root = _to_path(redirect_value) if redirect_value else home / "goinfre"
    if not redirect_root.is_absolute():
        raise ConfigError(f"redirect_root must be an absolute path. Got {redirect_root}.")

    systemd_value = raw.get("systemd_user_dir")
    systemd_user_dir = (
        _to_path(systemd_value) if systemd_value else home / ".config" / "systemd" / "user"
    )

    templates_value = raw.get("templates_dir")
    templates_dir = _to_path(templates_value) if templates_value else None

    readiness_mapping = _as_dict(raw.get("readiness"), "readiness")
    attempts = _expect_int(readiness_mapping.get("attempts"), "readiness.attempts", default=30)
    if attempts < 1:
        raise ConfigError("readiness.attempts must be at least 1.")
    interval = _expect_non_negative_float(
        readiness_mapping.get("interval"), "readiness.interval", default=1.0
    )

    binaries_mapping = _as_dict(raw.get("binaries"), "binaries")
    default_binaries = BinariesConfig()
    binaries = BinariesConfig(
        docker=str(binaries_mapping.get("docker", default_binaries.docker)),
        systemctl=str(binaries_mapping.get("systemctl", default_binaries.systemctl)),
        rootless_setup=str(
            binaries_mapping.get("rootless_setup", default_binaries.rootless_setup)
        ),
        dockerd_rootless=str(
            binaries_mapping.get("dockerd_rootless", default_binaries.dockerd_rootless)
        ),
    )

    workspace_mount = str(raw.get("workspace_mount", "/workspace"))
    if not workspace_mount.startswith("/"):
        raise ConfigError(f"workspace_mount must be an absolute path. Got {workspace_mount!r}.")

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        home=home,
        redirect_root=redirect_root,
        systemd_user_dir=systemd_user_dir,
        service_name=str(raw.get("service_name")),
        image_name=str(raw.get("image_name")),
        dockerfile=_to_path(raw.get("dockerfile", "Dockerfile")),
        build_context=_to_path(raw.get("build_context", ".")),
        workspace_mount=workspace_mount,
        shell=str(raw.get("shell")),
        redirect_marker=str(raw.get("redirect_marker")),
        templates_dir=templates_dir,
        log_level=str(raw.get("log_level", "INFO")).upper(),
        readiness=ReadinessConfig(attempts=attempts, interval=interval),
        binaries=binaries,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_non_negative_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(f"Expected {label} to be numeric. Got {type(value).__name__}.")
    if numeric < 0:
        raise ConfigError(f"{label} must not be negative. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "BinariesConfig",
    "ConfigError",
    "ReadinessConfig",
    "load_config",
]
