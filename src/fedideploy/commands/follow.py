"""Command: follow remote accounts as the admin."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from fedideploy.commands._base import FediCommand

if TYPE_CHECKING:
    from fedideploy.commands._context import AppContext


@click.command(
    cls=FediCommand,
    examples="""\
  fedideploy follow
  fedideploy follow --handle Gargron@mastodon.social --handle nasa@mastodon.social
  fedideploy -v follow   # show every handle""",
)
@click.option(
    "--handle",
    "handles",
    multiple=True,
    help="Account to follow (user@domain). Repeatable; defaults to the built-in list.",
)
@click.pass_obj
def follow(app: AppContext, handles: tuple[str, ...]) -> None:
    """Register an app, log in as the admin and follow accounts one by one."""
    from fedideploy.services.federation import FollowService

    app.emit(FollowService(app.workspace, app.settings).run(handles=handles or None))
