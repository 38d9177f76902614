"""Root CLI group for fedideploy with global flags and command registration."""

from __future__ import annotations

from pathlib import Path

import click

from fedideploy import __version__
from fedideploy.commands import register_commands
from fedideploy.commands._context import AppContext
from fedideploy.config.settings import FediSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="fedideploy")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("--no-interact", is_flag=True, help="Non-interactive mode (no prompts).")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option(
    "-w",
    "--workdir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Deployment directory (default: config file's directory or CWD).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    no_interact: bool,
    config_path: str | None,
    workdir: Path | None,
) -> None:
    """fedideploy — provision a self-hosted Mastodon instance."""
    ctx.ensure_object(dict)
    settings = FediSettings.from_cli(
        config_path=config_path,
        workdir=workdir.resolve() if workdir else None,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
        no_interact=no_interact,
    )
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
