"""Click classes that carry worked invocations behind ``--examples``.

Provisioning commands need several environment variables and flags before
they do anything useful, so each one ships a short block of runnable
invocations. ``--help`` stays about options; ``--examples`` prints the
block and exits before any argument validation or settings loading.
"""

from __future__ import annotations

import textwrap
from typing import Any

import click


class _ShowsExamples:
    """Mixin that turns an ``examples=`` keyword into an eager flag."""

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if examples:
            self.params.append(_examples_flag(textwrap.dedent(examples).rstrip()))


def _examples_flag(text: str) -> click.Option:
    def callback(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value or ctx.resilient_parsing:
            return
        click.echo(f"Usage for '{ctx.command_path}':\n")
        click.echo(textwrap.indent(text, "  "))
        ctx.exit(0)

    return click.Option(
        ["--examples"],
        is_flag=True,
        expose_value=False,
        is_eager=True,
        callback=callback,
        help="Print example invocations and exit.",
    )


class FediCommand(_ShowsExamples, click.Command):
    """A command accepting ``examples=``."""


class FediGroup(_ShowsExamples, click.Group):
    """A group whose subcommands also accept ``examples=`` without ``cls=``."""

    command_class = FediCommand
