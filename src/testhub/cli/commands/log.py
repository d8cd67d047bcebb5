"""testhub log -- list a branch's commits, newest first."""

from __future__ import annotations

import click

from testhub.cli.formatting import format_commits


@click.command()
@click.option("-b", "--branch", default=None, help="Branch to list (default branch if omitted).")
@click.option("-p", "--page", default=1, type=click.IntRange(min=1), help="1-based page number.")
@click.option("-n", "--per-page", default=None, type=click.IntRange(min=1), help="Commits per page.")
@click.pass_context
def log(ctx: click.Context, branch: str | None, page: int, per_page: int | None) -> None:
    """Show one page of branch history."""
    from testhub.cli import _hub_session

    with _hub_session(ctx) as (hub, console):
        format_commits(hub.log(branch, page=page, per_page=per_page), console)
