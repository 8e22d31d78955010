"""Tagged status messages for the operator.

Every message is written to standard error with one of the ``[INFO]``,
``[SUCCESS]``, ``[WARNING]`` or ``[ERROR]`` tags. INFO lines are dropped in
quiet mode; the other tags are always shown.
"""
from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

LOGGER = logging.getLogger(__name__)

TAG_STYLES: dict[str, str] = {
    "INFO": "cyan",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "bold red",
}


def make_console(*, stderr: bool = True) -> Console:
    """Return a console that never wraps or highlights operator messages."""
    return Console(stderr=stderr, highlight=False, soft_wrap=True)


class StatusLogger:
    """Write tagged status lines to a ``rich`` console bound to stderr."""

    def __init__(self, console: Console | None = None, *, quiet: bool = False) -> None:
        self.console = console or make_console()
        self.quiet = quiet

    def info(self, message: str) -> None:
        """Emit an informational line unless quiet mode is active."""
        LOGGER.debug("info: %s", message)
        if self.quiet:
            return
        self._emit("INFO", message)

    def success(self, message: str) -> None:
        """Emit a success line."""
        self._emit("SUCCESS", message)

    def warning(self, message: str) -> None:
        """Emit a warning line."""
        self._emit("WARNING", message)

    def error(self, message: str) -> None:
        """Emit an error line."""
        self._emit("ERROR", message)

    def plain(self, message: str) -> None:
        """Emit an untagged line, e.g. a directory listing under a warning."""
        self.console.print(Text(message))

    def _emit(self, tag: str, message: str) -> None:
        line = Text(f"[{tag}]", style=TAG_STYLES[tag])
        line.append(f" {message}")
        self.console.print(line)


def configure_debug_logging(enabled: bool) -> None:
    """Route module loggers to stderr when debug tracing is requested."""
    if not enabled:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=make_console(), show_path=False)],
    )


__all__ = ["StatusLogger", "configure_debug_logging", "make_console"]
