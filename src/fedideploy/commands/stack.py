"""Command group: start, stop and inspect the compose project."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from fedideploy.commands._base import FediGroup

if TYPE_CHECKING:
    from fedideploy.commands._context import AppContext
    from fedideploy.services.stack import StackService


@click.group(
    cls=FediGroup,
    examples="""\
  fedideploy stack up
  fedideploy stack status
  fedideploy --json stack status
  fedideploy stack restart
  fedideploy stack down""",
)
def stack() -> None:
    """Manage the running services in dependency order."""


def _service(app: AppContext) -> StackService:
    from fedideploy.services.stack import StackService

    return StackService(app.workspace, app.settings)


@stack.command(examples="  fedideploy stack up")
@click.pass_obj
def up(app: AppContext) -> None:
    """Start every service, waiting for each dependency to turn healthy."""
    app.emit(_service(app).up())


@stack.command(examples="  fedideploy stack down")
@click.pass_obj
def down(app: AppContext) -> None:
    """Stop and remove the project's containers."""
    app.emit(_service(app).down())


@stack.command(examples="  fedideploy stack restart")
@click.pass_obj
def restart(app: AppContext) -> None:
    """Stop everything, then start again in dependency order."""
    app.emit(_service(app).restart())


@stack.command(examples="  fedideploy stack status\n  fedideploy -q stack status")
@click.pass_obj
def status(app: AppContext) -> None:
    """Show the health of every declared service."""
    app.emit(_service(app).status())
