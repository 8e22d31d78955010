"""Jinja2 template rendering for managed files."""
from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
)


class TemplateEngine:
    """Render packaged templates, optionally shadowed by an override directory."""

    def __init__(self, environment: Environment) -> None:
        self.environment = environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers templates found in *override_dir*."""
        loaders: list[BaseLoader] = []
        if override_dir is not None and override_dir.is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("flakectl", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        return cls(environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context*."""
        template = self.environment.get_template(template_name)
        return template.render(**context)

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render into *destination*, overwriting it atomically.

        The file is always rewritten. Returns ``True`` when the content differs
        from what was there before.
        """
        content = self.render_to_string(template_name, context)
        previous = destination.read_text(encoding="utf-8") if destination.exists() else None
        destination.parent.mkdir(parents=True, exist_ok=True)
        temp = destination.with_name(f".{destination.name}.tmp")
        try:
            temp.write_text(content, encoding="utf-8")
            temp.chmod(mode)
            temp.replace(destination)
        except OSError:
            temp.unlink(missing_ok=True)
            raise
        return previous != content


__all__ = ["TemplateEngine"]
