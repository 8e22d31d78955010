"""Tests for the redirect environment."""
from __future__ import annotations

from flakectl.bootstrap.environment import (
    EngineEnvironment,
    EnvironmentConfigurator,
    socket_uri,
)
from flakectl.config import AppConfig


def test_socket_uri_uses_uid() -> None:
    """The rootless socket lives under the user's runtime directory."""
    assert socket_uri(4242) == "unix:///run/user/4242/docker.sock"


def test_apply_exports_three_variables(config: AppConfig) -> None:
    """apply() sets DOCKER_HOST, TMPDIR and XDG_DATA_HOME in the target mapping."""
    environ: dict[str, str] = {"PATH": "/usr/bin"}
    configurator = EnvironmentConfigurator(config=config, environ=environ, getuid=lambda: 1000)

    engine_env = configurator.apply()

    assert environ == {
        "PATH": "/usr/bin",
        "DOCKER_HOST": "unix:///run/user/1000/docker.sock",
        "TMPDIR": str(config.temp_dir),
        "XDG_DATA_HOME": str(config.redirect_root),
    }
    assert engine_env == configurator.compute()


def test_apply_is_idempotent(config: AppConfig) -> None:
    """Applying twice leaves the same environment."""
    environ: dict[str, str] = {}
    configurator = EnvironmentConfigurator(config=config, environ=environ, getuid=lambda: 1000)

    configurator.apply()
    snapshot = dict(environ)
    configurator.apply()

    assert environ == snapshot


def test_as_env_overlays_base(config: AppConfig) -> None:
    """as_env copies the base mapping and overrides stale redirect values."""
    engine_env = EngineEnvironment(
        docker_host="unix:///run/user/7/docker.sock",
        tmpdir=config.temp_dir,
        xdg_data_home=config.redirect_root,
    )
    base = {"HOME": str(config.home), "TMPDIR": "/tmp"}

    env = engine_env.as_env(base)

    assert env["HOME"] == str(config.home)
    assert env["TMPDIR"] == str(config.temp_dir)
    assert base["TMPDIR"] == "/tmp"
