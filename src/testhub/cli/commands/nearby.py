"""testhub nearby -- commits around one commit in a branch."""

from __future__ import annotations

import click

from testhub.cli.formatting import format_commits


@click.command()
@click.argument("ref", default="head")
@click.option("-b", "--branch", default=None, help="Branch to navigate.")
@click.option("-n", "--limit", default=None, type=click.IntRange(min=1), help="Window size.")
@click.pass_context
def nearby(ctx: click.Context, ref: str, branch: str | None, limit: int | None) -> None:
    """Show a window of commits centered on REF, newest first."""
    from testhub.cli import _hub_session

    with _hub_session(ctx) as (hub, console):
        target = hub.get_commit(ref, branch)
        window = hub.nearby(target.sha, branch, limit)
        format_commits(list(reversed(window)), console, mark=target.sha)
