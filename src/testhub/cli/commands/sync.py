"""testhub sync -- mirror commits, branches and pull requests from the remote."""

from __future__ import annotations

import click

from testhub.cli.formatting import format_sync_report


@click.command()
@click.option("-b", "--branch", default=None, help="Sync only this branch.")
@click.option("--force", is_flag=True, help="Fetch and upsert the full history.")
@click.option(
    "--days-before",
    default=None,
    type=click.IntRange(min=1),
    help="Initial lookback window in days.",
)
@click.pass_context
def sync(ctx: click.Context, branch: str | None, force: bool, days_before: int | None) -> None:
    """Bring the local mirror up to date with the remote."""
    from testhub.cli import _hub_session

    with _hub_session(ctx) as (hub, console):
        report = hub.sync(branch, force=force, days_before=days_before)
        format_sync_report(report, console)
