"""Unit tests for bootstrap filesystem planning helpers."""
from __future__ import annotations

import os
from pathlib import Path

import pytest

from flakectl.bootstrap.filesystem import (
    DirectoryProvisioner,
    DirectorySpec,
    apply_directory_plan,
    plan_directories,
)
from flakectl.config import AppConfig
from flakectl.errors import ProvisionError
from flakectl.logging import StatusLogger


def test_plan_creates_missing_directory(tmp_path: Path) -> None:
    """Plan should create directories that are absent on disk."""
    target = tmp_path / "goinfre" / "docker"
    spec = DirectorySpec(path=target, mode=0o750)

    plan = plan_directories([spec])
    assert any(action.kind == "mkdir" for action in plan.actions)

    apply_directory_plan(plan)
    assert target.is_dir()
    assert target.stat().st_mode & 0o777 == 0o750


def test_plan_adjusts_permissions(tmp_path: Path) -> None:
    """Plan should adjust permissions when they differ from expectations."""
    target = tmp_path / "goinfre" / "tmp"
    target.mkdir(parents=True)
    os.chmod(target, 0o700)

    plan = plan_directories([DirectorySpec(path=target, mode=0o750)])

    assert [action.kind for action in plan.actions] == ["chmod"]
    apply_directory_plan(plan)
    assert target.stat().st_mode & 0o777 == 0o750


def test_plan_is_empty_when_satisfied(tmp_path: Path) -> None:
    """Existing directories without a mode requirement need no action."""
    target = tmp_path / "present"
    target.mkdir()

    plan = plan_directories([DirectorySpec(path=target)])

    assert plan.actions == []
    assert plan.warnings == []


def test_plan_warns_on_non_directory(tmp_path: Path) -> None:
    """Plan should warn when the target path is not a directory."""
    target = tmp_path / "goinfre"
    target.write_text("not a directory", encoding="utf-8")

    plan = plan_directories([DirectorySpec(path=target)])

    assert plan.actions == []
    assert plan.warnings == [f"{target} exists but is not a directory."]


def test_provisioner_creates_layout_idempotently(
    config: AppConfig, capsys: pytest.CaptureFixture[str]
) -> None:
    """ensure() creates data, temp and unit directories and tolerates repeats."""
    provisioner = DirectoryProvisioner(config=config, logger=StatusLogger())

    first = provisioner.ensure()
    second = provisioner.ensure()

    for path in (config.data_dir, config.temp_dir, config.systemd_user_dir):
        assert path.is_dir()
    assert len(first.actions) == 3
    assert second.actions == []
    err = capsys.readouterr().err
    assert "[INFO] Ensuring goinfre directories exist..." in err
    assert "[SUCCESS] Goinfre directories ready" in err


def test_provisioner_rejects_file_in_the_way(config: AppConfig) -> None:
    """A regular file where the redirect root belongs is fatal."""
    config.redirect_root.parent.mkdir(parents=True, exist_ok=True)
    config.redirect_root.write_text("oops", encoding="utf-8")
    provisioner = DirectoryProvisioner(config=config, logger=StatusLogger())

    with pytest.raises(ProvisionError):
        provisioner.ensure()


def test_provisioner_wraps_os_errors(
    config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Permission problems surface as ProvisionError naming the path."""
    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == config.data_dir:
            raise PermissionError(13, "Permission denied", str(self))
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)
    provisioner = DirectoryProvisioner(config=config, logger=StatusLogger())

    with pytest.raises(ProvisionError, match="Failed to create .*docker: Permission denied"):
        provisioner.ensure()
