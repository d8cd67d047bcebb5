"""Rich formatting helpers for the testhub CLI.

Provides functions that format SDK data structures for terminal display.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from testhub.models.status import CompilationStatus, Status

if TYPE_CHECKING:
    from testhub.models.branch import BranchInfo
    from testhub.models.commit import CommitInfo
    from testhub.models.computer import ComputerSpecInfo
    from testhub.models.sync import SyncReport

_STATUS_STYLES = {
    Status.UNTESTED: "dim",
    Status.PASSING: "green",
    Status.FAILING: "red",
    Status.CHECKSUM_MISMATCH: "yellow",
    Status.MIXED: "magenta",
}

_COMPILATION_STYLES = {
    CompilationStatus.UNKNOWN: "dim",
    CompilationStatus.SUCCESS: "green",
    CompilationStatus.FAILURE: "red",
    CompilationStatus.MIXED: "yellow",
}


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def _status_markup(status: Status) -> str:
    style = _STATUS_STYLES[status]
    return f"[{style}]{status.value}[/{style}]"


def format_commits(entries: list[CommitInfo], console: Console, *, mark: str | None = None) -> None:
    """Display commits as a compact table. *mark* highlights one sha."""
    if not entries:
        console.print("[dim]No commits.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("", width=1)
    table.add_column("Sha", style="yellow", width=7)
    table.add_column("Time", style="dim")
    table.add_column("Status")
    table.add_column("Tests", justify="right")
    table.add_column("Author", style="cyan")
    table.add_column("Message")

    for entry in entries:
        pointer = ">" if mark is not None and entry.sha == mark else ""
        message = escape(entry.message_first_line(60))
        if entry.pull_request:
            message = f"[bold]PR[/bold] {message}"
        table.add_row(
            pointer,
            entry.short_sha,
            entry.commit_time.strftime("%Y-%m-%d %H:%M"),
            _status_markup(entry.status),
            f"{entry.passed_count}/{entry.test_case_count}",
            escape(entry.author),
            message,
        )

    console.print(table)


def format_commit_detail(
    commit: CommitInfo,
    specs: list[ComputerSpecInfo],
    compilation: CompilationStatus,
    branches: list[str],
    console: Console,
) -> None:
    """Display one commit with its rollups and per-computer completion."""
    console.print(f"[yellow]commit {commit.sha}[/yellow]")
    console.print(f"  Author:   {escape(commit.author)} <{escape(commit.author_email)}>")
    console.print(f"  Date:     {commit.commit_time.strftime('%Y-%m-%d %H:%M:%S')} UTC")
    if branches:
        console.print(f"  Branches: {escape(', '.join(branches))}")
    if commit.github_url:
        console.print(f"  URL:      {escape(commit.github_url)}")
    console.print(f"  Status:   {_status_markup(commit.status)}")
    style = _COMPILATION_STYLES[compilation]
    console.print(f"  Compiled: [{style}]{compilation.value}[/{style}]")
    console.print(
        f"  Tests:    {commit.test_case_count} total, "
        f"[green]{commit.passed_count} passing[/green], "
        f"[red]{commit.failed_count} failing[/red], "
        f"[magenta]{commit.mixed_count} mixed[/magenta], "
        f"[yellow]{commit.checksum_count} checksum[/yellow], "
        f"{commit.untested_count} untested"
    )
    console.print()
    console.print(f"    {escape(commit.message_first_line())}")
    rest = commit.message_rest()
    if rest:
        console.print(f"    [dim]{escape(rest)}[/dim]")

    if not specs:
        return

    console.print()
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Computer", style="cyan")
    table.add_column("Spec")
    table.add_column("Done", justify="right")
    table.add_column("Compiled")
    for spec in specs:
        done_style = "green" if spec.complete else "yellow"
        comp_style = _COMPILATION_STYLES[spec.compilation]
        table.add_row(
            escape(spec.computer),
            escape(str(spec.spec)),
            f"[{done_style}]{spec.numerator}/{spec.denominator}[/{done_style}]",
            f"[{comp_style}]{spec.compilation.value}[/{comp_style}]",
        )
    console.print(table)


def format_branches(branches: list[BranchInfo], console: Console) -> None:
    """Display branches with head and merged state."""
    if not branches:
        console.print("[dim]No branches.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Branch", style="cyan")
    table.add_column("Head", style="yellow", width=7)
    table.add_column("Commits", justify="right")
    table.add_column("State")
    for branch in branches:
        state = "[dim]merged[/dim]" if branch.merged else "[green]open[/green]"
        table.add_row(
            escape(branch.name),
            branch.head_sha[:7] if branch.head_sha else "-",
            str(branch.commit_count or 0),
            state,
        )
    console.print(table)


def format_sync_report(report: SyncReport, console: Console) -> None:
    """Summarize a sync pass per branch."""
    for result in report.branches:
        if result.merged:
            detail = "[dim]not on remote, marked merged[/dim]"
        elif result.halted:
            detail = f"[yellow]no overlap within {result.lookbacks[-1]} days, halted[/yellow]"
        elif result.already_synchronized:
            detail = "[dim]already synchronized[/dim]"
        else:
            detail = f"{result.added} added, {result.populated} populated"
        console.print(f"[cyan]{escape(result.branch)}[/cyan]: {detail}", highlight=False)

    for name in report.merged_branches:
        console.print(f"[dim]merged:[/dim] {escape(name)}")
    if report.opened_pull_requests or report.closed_pull_requests:
        console.print(
            f"Pull requests: {len(report.opened_pull_requests)} opened, "
            f"{len(report.closed_pull_requests)} closed"
        )
    for sha in report.rejected:
        console.print(f"[yellow]rejected:[/yellow] {escape(sha)}")
    console.print(f"[bold]{report}[/bold]", highlight=False)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {message}", highlight=False)
