"""Shared Jinja2 template loading with per-workspace override support."""

from __future__ import annotations

from pathlib import Path

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
)


def build_template_environment(group: str, *, workdir: Path | None = None) -> Environment:
    """Build a Jinja2 environment with workspace overrides before packaged defaults.

    Overrides are loaded from ``.fedideploy/templates/`` inside the
    workspace, either namespaced (``.fedideploy/templates/config/``) or flat.
    Undefined variables raise instead of rendering as empty strings.
    """

    loaders: list[BaseLoader] = []
    if workdir is not None:
        template_root = workdir / ".fedideploy" / "templates"
        loaders.append(FileSystemLoader([str(template_root / group), str(template_root)]))

    loaders.append(PackageLoader("fedideploy", f"templates/{group}"))
    return Environment(
        loader=ChoiceLoader(loaders),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
    )
