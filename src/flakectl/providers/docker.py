"""Docker client provider bound to the redirected rootless daemon."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..bootstrap.environment import EngineEnvironment
from ..commands import CommandResult, CommandRunner
from ..errors import DockerError

DATA_ROOT_FORMAT = "{{.DockerRootDir}}"
IMAGE_SIZE_FORMAT = "{{.Size}}"


@dataclass(slots=True)
class DockerProvider:
    """Run ``docker`` with the redirect variables applied to every call."""

    runner: CommandRunner
    environment: EngineEnvironment
    docker_bin: str = "docker"

    def available(self) -> bool:
        """Return ``True`` when the docker client is installed."""
        return self.runner.which(self.docker_bin) is not None

    def data_root(self) -> str:
        """Return the daemon's reported ``DockerRootDir``."""
        result = self._docker("system", "info", "--format", DATA_ROOT_FORMAT)
        if not result.ok:
            raise DockerError(f"docker system info failed: {result.message()}")
        return result.stdout.strip()

    def is_ready(self) -> bool:
        """Return ``True`` when the daemon answers a version query."""
        return self._docker("version").ok

    def build(self, tag: str, *, context: Path, dockerfile: Path) -> CommandResult:
        """Build *tag*; output streams straight to the terminal."""
        return self._docker(
            "build",
            "-t",
            tag,
            "-f",
            str(dockerfile),
            str(context),
            capture_output=False,
        )

    def image_exists(self, name: str) -> bool:
        """Return ``True`` when an image named *name* is present locally."""
        result = self._docker("images", "-q", name)
        return result.ok and bool(result.stdout.strip())

    def image_size(self, name: str) -> str | None:
        """Return the human-readable size docker reports for *name*."""
        result = self._docker("images", name, "--format", IMAGE_SIZE_FORMAT)
        if not result.ok:
            return None
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return lines[-1] if lines else None

    def remove_image(self, name: str) -> CommandResult:
        """Remove *name*; the caller decides whether failure matters."""
        return self._docker("rmi", name)

    def prune(self) -> CommandResult:
        """Remove every unused image, container, network and build cache entry."""
        return self._docker("system", "prune", "-af")

    def run_command(self, image: str, *, workdir: Path, mount: str, shell: str) -> list[str]:
        """Return the argv of an interactive, self-removing session in *image*."""
        return [
            self.docker_bin,
            "run",
            "-it",
            "--rm",
            "-v",
            f"{workdir}:{mount}",
            "-w",
            mount,
            image,
            shell,
        ]

    def _docker(self, *args: str, capture_output: bool = True) -> CommandResult:
        return self.runner.run(
            [self.docker_bin, *args],
            env=self.environment.as_env(),
            capture_output=capture_output,
        )


__all__ = ["DockerError", "DockerProvider"]
