"""Command: render the env file, Caddyfile and compose file."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import click

from fedideploy.commands._base import FediCommand

if TYPE_CHECKING:
    from fedideploy.commands._context import AppContext


def prompt_target(app: AppContext, domain: str | None, ip: str | None) -> tuple[str, str]:
    """Fill in *domain* and *ip* from prompts when interactive.

    In non-interactive mode a missing value stays empty and the service
    reports it as a missing field.
    """
    if not domain and app.interactive:
        domain = click.prompt("Domain name for your Mastodon instance")
    if not ip and app.interactive:
        ip = click.prompt("Public IP address of this server")
    return (domain or "").strip(), (ip or "").strip()


@click.command(
    cls=FediCommand,
    examples="""\
  fedideploy render --domain social.example.org --ip 203.0.113.5
  fedideploy -w /srv/mastodon render
  fedideploy render --force   # regenerate every secret""",
)
@click.option("--domain", default=None, help="Public domain of the instance.")
@click.option("--ip", default=None, help="Public IP address of the host.")
@click.option("--force", is_flag=True, help="Overwrite an existing env file (rotates secrets).")
@click.pass_obj
def render(app: AppContext, domain: str | None, ip: str | None, force: bool) -> None:
    """Generate secrets and render the deployment's configuration files."""
    from fedideploy.domain.deployment import load_required_environment
    from fedideploy.services.preflight import PreflightService
    from fedideploy.services.render import RenderService

    env_check = PreflightService(app.workspace, app.settings).check_environment()
    if not env_check.ok:
        app.emit(env_check)
        return

    values, _missing = load_required_environment(os.environ)
    assert values is not None
    domain, ip = prompt_target(app, domain, ip)
    app.emit(RenderService(app.workspace, app.settings).render_new(domain, ip, values, force=force))
