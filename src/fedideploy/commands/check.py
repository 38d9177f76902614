"""Command: verify required tools and environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from fedideploy.commands._base import FediCommand

if TYPE_CHECKING:
    from fedideploy.commands._context import AppContext


@click.command(
    cls=FediCommand,
    examples="""\
  fedideploy check
  fedideploy --json check""",
)
@click.pass_obj
def check(app: AppContext) -> None:
    """Check that the host can run a deployment. Writes nothing."""
    from fedideploy.services.preflight import PreflightService

    app.emit(PreflightService(app.workspace, app.settings).check())
