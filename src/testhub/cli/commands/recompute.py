"""testhub recompute -- rebuild a commit's rollup status from stored results."""

from __future__ import annotations

import click


@click.command()
@click.argument("ref", default="head")
@click.option("-b", "--branch", default=None, help="Branch used to resolve head/auto.")
@click.pass_context
def recompute(ctx: click.Context, ref: str, branch: str | None) -> None:
    """Recompute test case and commit status for REF."""
    from testhub.cli import _hub_session

    with _hub_session(ctx) as (hub, console):
        commit = hub.get_commit(ref, branch)
        status = hub.recompute(commit.sha, branch)
        console.print(f"{commit.short_sha}: {status.value}", highlight=False)
