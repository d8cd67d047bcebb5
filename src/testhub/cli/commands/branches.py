"""testhub branches -- list known branches."""

from __future__ import annotations

import click

from testhub.cli.formatting import format_branches


@click.command()
@click.option("-a", "--all", "show_all", is_flag=True, help="Include merged branches.")
@click.pass_context
def branches(ctx: click.Context, show_all: bool) -> None:
    """List branches with their head commit."""
    from testhub.cli import _hub_session

    with _hub_session(ctx) as (hub, console):
        format_branches(hub.list_branches(include_merged=show_all), console)
