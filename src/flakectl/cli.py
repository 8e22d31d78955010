"""Command line entry point for flakectl.

``flakectl`` takes at most one flag. Without one it provisions rootless
Docker under ``~/goinfre`` and replaces itself with an interactive shell in
the flake image; ``--cleanup`` and ``--show-side-effects`` undo or inspect
what provisioning leaves behind.
"""
from __future__ import annotations

import os
import textwrap
import time
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from pathlib import Path

import click
import typer
from rich.text import Text
from typer.core import TyperCommand

from .bootstrap import (
    DirectoryProvisioner,
    EnvironmentConfigurator,
    RootlessRuntimeEnsurer,
    StorageLocationVerifier,
)
from .cleanup import CleanupOrchestrator
from .commands import CommandRunner, SubprocessRunner
from .config import AppConfig, ConfigError, load_config
from .errors import FlakectlError, UsageError
from .launcher import ExecLauncher, ImageBuilderLauncher, SessionLauncher
from .logging import StatusLogger, configure_debug_logging, make_console
from .pipeline import ProvisioningPipeline
from .providers import DockerProvider, SystemdProvider
from .report import SideEffectReporter
from .templates import TemplateEngine

PROG_NAME = "flakectl"

console = make_console(stderr=False)
err_console = make_console()

USAGE = textwrap.dedent(
    f"""\
    Usage: {PROG_NAME} [OPTIONS]

    Enter a Nix flake environment in one shot with rootless Docker.

    OPTIONS:
        --cleanup             Clean up all side effects and exit
        --show-side-effects   Show the side effects currently present and exit
        -h, --help            Show this help message

    SIDE EFFECTS:
    This command creates the following persistent changes:
      • ~/.config/systemd/user/docker.service (systemd service file)
      • Docker systemd service enabled for user
      • ~/goinfre/docker/ (Docker data directory)
      • ~/goinfre/tmp/ (Docker temporary directory)
      • Docker images built from Dockerfile

    All Docker data is stored in ~/goinfre/ to avoid home directory quota issues.
    Use --cleanup to remove all side effects.
    """
)

app = typer.Typer(add_completion=False, help="Enter a Nix flake environment with rootless Docker.")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by the three modes."""

    config: AppConfig
    logger: StatusLogger
    runner: CommandRunner
    templates: TemplateEngine
    configurator: EnvironmentConfigurator
    systemd: SystemdProvider
    docker: DockerProvider
    directories: DirectoryProvisioner
    verifier: StorageLocationVerifier
    runtime: RootlessRuntimeEnsurer
    builder: ImageBuilderLauncher

    def pipeline(self) -> ProvisioningPipeline:
        """Return a fresh pipeline over the shared components."""
        return ProvisioningPipeline(
            directories=self.directories,
            environment=self.configurator,
            runtime=self.runtime,
            verifier=self.verifier,
            builder=self.builder,
            logger=self.logger,
        )

    def cleanup(self) -> CleanupOrchestrator:
        """Return the cleanup orchestrator."""
        return CleanupOrchestrator(
            config=self.config,
            systemd=self.systemd,
            docker=self.docker,
            logger=self.logger,
        )

    def reporter(self) -> SideEffectReporter:
        """Return the side-effect reporter."""
        return SideEffectReporter(config=self.config, systemd=self.systemd, docker=self.docker)


def build_runtime(
    config: AppConfig,
    *,
    runner: CommandRunner | None = None,
    launcher: SessionLauncher | None = None,
    logger: StatusLogger | None = None,
    environ: MutableMapping[str, str] | None = None,
    getuid: Callable[[], int] = os.getuid,
    geteuid: Callable[[], int] = os.geteuid,
    sleep: Callable[[float], None] = time.sleep,
    cwd: Callable[[], Path] = Path.cwd,
) -> RuntimeContext:
    """Wire every component from *config*; keyword arguments replace host access."""
    configure_debug_logging(config.log_level == "DEBUG")
    runner = runner or SubprocessRunner()
    logger = logger or StatusLogger(quiet=config.quiet)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    configurator = EnvironmentConfigurator(
        config=config,
        logger=logger,
        environ=os.environ if environ is None else environ,
        getuid=getuid,
    )
    systemd = SystemdProvider(
        templates=templates,
        runner=runner,
        unit_dir=config.systemd_user_dir,
        service_name=config.service_name,
        systemctl_bin=config.binaries.systemctl,
    )
    docker = DockerProvider(
        runner=runner,
        environment=configurator.compute(),
        docker_bin=config.binaries.docker,
    )
    verifier = StorageLocationVerifier(
        docker=docker, marker=config.redirect_marker, logger=logger
    )
    ensurer = RootlessRuntimeEnsurer(
        config=config,
        systemd=systemd,
        docker=docker,
        runner=runner,
        verifier=verifier,
        logger=logger,
        geteuid=geteuid,
        sleep=sleep,
    )
    builder = ImageBuilderLauncher(
        config=config,
        docker=docker,
        logger=logger,
        launcher=launcher or ExecLauncher(),
        cwd=cwd,
    )
    return RuntimeContext(
        config=config,
        logger=logger,
        runner=runner,
        templates=templates,
        configurator=configurator,
        systemd=systemd,
        docker=docker,
        directories=DirectoryProvisioner(config=config, logger=logger),
        verifier=verifier,
        runtime=ensurer,
        builder=builder,
    )


def _ensure_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    runtime = build_runtime(load_config())
    ctx.obj = runtime
    return runtime


def _usage_error(ctx: click.Context, message: str) -> typer.Exit:
    runtime = ctx.obj
    logger = runtime.logger if isinstance(runtime, RuntimeContext) else StatusLogger()
    error = UsageError(message)
    logger.error(str(error))
    err_console.print(Text(USAGE))
    return typer.Exit(code=int(error.exit_code))


def _show_side_effects(runtime: RuntimeContext) -> None:
    config = runtime.config
    runtime.logger.info("=== Current Side Effects ===")
    console.print()
    console.print(Text(runtime.reporter().report().render()))
    console.print()
    runtime.logger.info(
        f"All side effects are contained in {config.redirect_root}/ "
        f"and {config.systemd_user_dir}/"
    )
    runtime.logger.info(f"Use '{PROG_NAME} --cleanup' to remove all side effects")


class FlakectlCommand(TyperCommand):
    """Route click's own parse failures through the flakectl usage error."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            raise _usage_error(ctx, exc.format_message()) from exc


@app.command(
    cls=FlakectlCommand,
    context_settings={
        "allow_extra_args": True,
        "ignore_unknown_options": True,
        "help_option_names": [],
    }
)
def run(
    ctx: typer.Context,
    cleanup: bool = typer.Option(False, "--cleanup", help="Clean up all side effects and exit."),
    show_side_effects: bool = typer.Option(
        False, "--show-side-effects", help="Show the side effects currently present and exit."
    ),
    help_: bool = typer.Option(False, "--help", "-h", help="Show this help message."),
) -> None:
    """Provision rootless Docker under goinfre and enter the flake environment."""
    if ctx.args:
        raise _usage_error(ctx, f"Unknown option: {ctx.args[0]}")
    if sum((cleanup, show_side_effects, help_)) > 1:
        raise _usage_error(ctx, "Only one option may be given")
    if help_:
        console.print(Text(USAGE))
        raise typer.Exit(code=0)

    try:
        runtime = _ensure_runtime(ctx)
    except ConfigError as exc:
        StatusLogger().error(str(exc))
        raise typer.Exit(code=int(exc.exit_code)) from exc

    try:
        if cleanup:
            runtime.cleanup().cleanup_all()
        elif show_side_effects:
            _show_side_effects(runtime)
        else:
            runtime.pipeline().run()
    except FlakectlError as exc:
        runtime.logger.error(str(exc))
        raise typer.Exit(code=int(exc.exit_code)) from exc
    raise typer.Exit(code=0)


def main() -> None:
    """Console script entry point."""
    app(prog_name=PROG_NAME)


__all__ = ["RuntimeContext", "app", "build_runtime", "main"]
