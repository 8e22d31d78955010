"""Tests for the template rendering engine."""
from __future__ import annotations

from pathlib import Path

import pytest
from jinja2 import UndefinedError

from flakectl.templates import TemplateEngine

UNIT_CONTEXT = {
    "search_path": "/usr/bin:/bin",
    "redirect_root": "/home/student/goinfre",
    "temp_dir": "/home/student/goinfre/tmp",
    "exec_start": "/usr/bin/dockerd-rootless.sh",
    "restart_sec": 2,
    "start_limit_burst": 3,
    "start_limit_interval": "60s",
}


def test_render_to_string_uses_builtin_templates() -> None:
    """The packaged unit template renders with strict variables."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string("systemd/docker.service.j2", UNIT_CONTEXT)

    assert "Description=Docker Application Container Engine (Rootless)" in output
    assert "Environment=XDG_DATA_HOME=/home/student/goinfre\n" in output
    assert "ExecReload=/bin/kill -s HUP $MAINPID" in output
    assert output.endswith("WantedBy=default.target\n")


def test_missing_variable_is_an_error() -> None:
    """StrictUndefined rejects incomplete contexts."""
    engine = TemplateEngine.with_overrides(None)
    context = dict(UNIT_CONTEXT)
    del context["temp_dir"]

    with pytest.raises(UndefinedError):
        engine.render_to_string("systemd/docker.service.j2", context)


def test_render_to_path_writes_with_mode(tmp_path: Path) -> None:
    """Rendering to a file writes content, respects the mode and leaves no temp file."""
    engine = TemplateEngine.with_overrides(None)
    destination = tmp_path / "user" / "docker.service"

    changed = engine.render_to_path(
        "systemd/docker.service.j2", destination, UNIT_CONTEXT, mode=0o600
    )

    assert changed is True
    assert oct(destination.stat().st_mode & 0o777) == "0o600"
    assert sorted(p.name for p in destination.parent.iterdir()) == ["docker.service"]

    # Second render with same content is reported as unchanged.
    changed_again = engine.render_to_path(
        "systemd/docker.service.j2", destination, UNIT_CONTEXT, mode=0o600
    )
    assert changed_again is False


def test_override_path_takes_precedence(tmp_path: Path) -> None:
    """Override templates shadow the built-in ones."""
    override_dir = tmp_path / "templates"
    override_template = override_dir / "systemd" / "docker.service.j2"
    override_template.parent.mkdir(parents=True)
    override_template.write_text("override {{ redirect_root }}", encoding="utf-8")

    engine = TemplateEngine.with_overrides(override_dir)

    rendered = engine.render_to_string("systemd/docker.service.j2", UNIT_CONTEXT)

    assert rendered == "override /home/student/goinfre"


def test_missing_override_directory_falls_back(tmp_path: Path) -> None:
    """A configured but absent override directory is ignored."""
    engine = TemplateEngine.with_overrides(tmp_path / "nope")

    rendered = engine.render_to_string("systemd/docker.service.j2", UNIT_CONTEXT)

    assert "Type=notify" in rendered


def test_failed_write_leaves_no_temp_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failure while moving the rendered file into place removes the temp file."""
    engine = TemplateEngine.with_overrides(None)
    destination = tmp_path / "user" / "docker.service"

    def refuse(self: Path, target: Path) -> Path:
        raise PermissionError(f"cannot replace {target}")

    monkeypatch.setattr(Path, "replace", refuse)

    with pytest.raises(PermissionError):
        engine.render_to_path("systemd/docker.service.j2", destination, UNIT_CONTEXT)

    assert list(destination.parent.iterdir()) == []
