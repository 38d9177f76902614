"""Command: the full provisioning run."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from fedideploy.commands._base import FediCommand
from fedideploy.commands.render import prompt_target

if TYPE_CHECKING:
    from fedideploy.commands._context import AppContext


@click.command(
    cls=FediCommand,
    examples="""\
  export POSTGRES_PASSWORD=... REDIS_PASSWORD=... LETS_ENCRYPT_EMAIL=admin@example.org
  fedideploy deploy --domain social.example.org --ip 203.0.113.5
  fedideploy --no-interact deploy --domain social.example.org --ip 203.0.113.5 --skip-follow""",
)
@click.option("--domain", default=None, help="Public domain of the instance.")
@click.option("--ip", default=None, help="Public IP address of the host.")
@click.option("--force", is_flag=True, help="Re-render even if a configuration exists.")
@click.option("--skip-follow", is_flag=True, help="Stop after bootstrap.")
@click.pass_obj
def deploy(
    app: AppContext,
    domain: str | None,
    ip: str | None,
    force: bool,
    skip_follow: bool,
) -> None:
    """Check, render, start, bootstrap and federate a Mastodon instance."""
    from fedideploy.services.deploy import DeployService
    from fedideploy.services.preflight import PreflightService

    # Environment first: a missing variable must fail before any prompt.
    env_check = PreflightService(app.workspace, app.settings).check_environment()
    if not env_check.ok:
        update = {"op": "deploy", "data": {"failed_step": "preflight"}}
        app.emit(env_check.model_copy(update=update))
        return

    if force or not app.workspace.is_rendered():
        domain, ip = prompt_target(app, domain, ip)
    result = DeployService(app.workspace, app.settings).deploy(
        domain or "", ip or "", force=force, skip_follow=skip_follow
    )
    app.emit(result)
