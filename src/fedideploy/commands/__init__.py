"""Subcommand modules for fedideploy.

Provides register_commands() which uses deferred imports to keep
``fedideploy --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the ``stack`` group and the standalone commands on the root group."""
    # --- Groups ---
    from fedideploy.commands.stack import stack

    cli.add_command(stack)

    # --- Standalone commands ---
    from fedideploy.commands.bootstrap import bootstrap
    from fedideploy.commands.check import check
    from fedideploy.commands.deploy import deploy
    from fedideploy.commands.follow import follow
    from fedideploy.commands.render import render

    cli.add_command(check)
    cli.add_command(render)
    cli.add_command(bootstrap)
    cli.add_command(follow)
    cli.add_command(deploy)
