"""Single execution capability shared by every component that shells out."""
from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

LOGGER = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127
COMMAND_NOT_EXECUTABLE = 126


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Exit status and captured output of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Return ``True`` when the command exited with status zero."""
        return self.returncode == 0

    def message(self) -> str:
        """Return the most useful diagnostic text for a failed command."""
        return self.stderr.strip() or self.stdout.strip() or "no output"


class CommandRunner(Protocol):
    """Run external commands and locate executables on ``PATH``."""

    def run(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        capture_output: bool = True,
    ) -> CommandResult: ...

    def which(self, name: str) -> str | None: ...


@dataclass(slots=True)
class SubprocessRunner:
    """``subprocess``-backed runner; never raises for non-zero exits."""

    def run(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        capture_output: bool = True,
    ) -> CommandResult:
        """Execute *args* and return its exit status and output."""
        command = tuple(args)
        LOGGER.debug("exec: %s", shlex.join(command))
        try:
            completed = subprocess.run(  # noqa: S603
                list(command),
                capture_output=capture_output,
                text=True,
                check=False,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as exc:
            return CommandResult(command, COMMAND_NOT_FOUND, "", f"{command[0]} not found: {exc}")
        except PermissionError as exc:
            return CommandResult(
                command, COMMAND_NOT_EXECUTABLE, "", f"{command[0]} not executable: {exc}"
            )
        LOGGER.debug("exit %s: %s", completed.returncode, command[0])
        return CommandResult(
            command,
            completed.returncode,
            completed.stdout or "",
            completed.stderr or "",
        )

    def which(self, name: str) -> str | None:
        """Return the resolved path for *name*, or ``None`` when absent."""
        return shutil.which(name)


__all__ = ["CommandResult", "CommandRunner", "SubprocessRunner"]
