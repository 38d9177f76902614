"""Command: run or resume the post-start bootstrap."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from fedideploy.commands._base import FediCommand

if TYPE_CHECKING:
    from fedideploy.commands._context import AppContext


@click.command(
    cls=FediCommand,
    examples="""\
  fedideploy bootstrap
  fedideploy -v bootstrap   # list each completed stage""",
)
@click.option("--reset", is_flag=True, help="Forget recorded progress and start from the top.")
@click.pass_obj
def bootstrap(app: AppContext, reset: bool) -> None:
    """Migrate, seed, create the admin and load relays. Resumes after a failure."""
    from fedideploy.services.bootstrap import BootstrapService

    if reset:
        if app.interactive and not click.confirm(
            "Re-run every bootstrap stage, including admin creation?", default=False
        ):
            raise click.Abort
        app.workspace.clear_state()
    app.emit(BootstrapService(app.workspace, app.settings).run())
