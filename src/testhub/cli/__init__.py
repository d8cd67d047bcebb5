"""testhub CLI -- terminal interface for the commit mirror.

This module is NEVER imported from testhub/__init__.py.
It is only loaded via the ``testhub`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from testhub.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console

    from testhub.hub import TestHub
    from testhub.models.config import HubConfig
    from testhub.remote.protocols import RemoteSource


@click.group()
@click.option(
    "--db",
    default=".testhub.db",
    envvar="TESTHUB_DB_PATH",
    help="Path to testhub database.",
)
@click.option(
    "--repo",
    default=None,
    envvar="TESTHUB_REPO_PATH",
    help="Remote repository as owner/repo.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log sync progress to stderr.")
@click.pass_context
def cli(ctx: click.Context, db: str, repo: str | None, verbose: bool) -> None:
    """testhub: mirror a repository's commits and roll up test status."""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db
    ctx.obj["repo_path"] = repo
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def _load_config(ctx: click.Context) -> HubConfig:
    from testhub.models.config import HubConfig

    return HubConfig.from_env(db_path=ctx.obj["db_path"], repo_path=ctx.obj["repo_path"])


def _build_remote(config: HubConfig) -> RemoteSource | None:
    """GitHub client for *config*, or None when no token is configured."""
    if not config.github_token:
        return None

    from testhub.remote.client import GitHubClient

    return GitHubClient(
        config.repo_path,
        token=config.github_token,
        base_url=config.github_api_url,
    )


@contextmanager
def _hub_session(ctx: click.Context) -> Iterator[tuple[TestHub, Console]]:
    """Context manager that opens a TestHub, yields (hub, console), and handles cleanup.

    Ensures the hub and remote are closed on exit and formats exceptions
    as CLI errors.
    """
    from testhub.hub import TestHub

    console = get_console()
    try:
        config = _load_config(ctx)
        remote = _build_remote(config)
        try:
            hub = TestHub.open(config.db_path, config=config, remote=remote)
            try:
                yield hub, console
            finally:
                hub.close()
        finally:
            if remote is not None:
                remote.close()
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


# Register subcommands after cli group is defined
from testhub.cli.commands.sync import sync  # noqa: E402
from testhub.cli.commands.log import log  # noqa: E402
from testhub.cli.commands.show import show  # noqa: E402
from testhub.cli.commands.nearby import nearby  # noqa: E402
from testhub.cli.commands.branches import branches  # noqa: E402
from testhub.cli.commands.recompute import recompute  # noqa: E402

cli.add_command(sync)
cli.add_command(log)
cli.add_command(show)
cli.add_command(nearby)
cli.add_command(branches)
cli.add_command(recompute)
