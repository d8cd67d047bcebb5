"""testhub show -- details and test status of one commit."""

from __future__ import annotations

import click

from testhub.cli.formatting import format_commit_detail


@click.command()
@click.argument("ref", default="head")
@click.option("-b", "--branch", default=None, help="Branch used to resolve head/auto.")
@click.pass_context
def show(ctx: click.Context, ref: str, branch: str | None) -> None:
    """Show a commit by sha, short sha, 'head' or 'auto'."""
    from testhub.cli import _hub_session

    with _hub_session(ctx) as (hub, console):
        commit = hub.get_commit(ref, branch)
        format_commit_detail(
            commit,
            hub.computer_info(commit.sha, branch),
            hub.compilation_status(commit.sha, branch),
            hub.branches_containing(commit.sha, branch),
            console,
        )
