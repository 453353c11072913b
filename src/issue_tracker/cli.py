"""CLI for the agent issue tracker.

Usage:
    issue-tracker serve                              # Dashboard + MCP over HTTP
    issue-tracker mcp                                # MCP over stdio
    issue-tracker create "Fix the bug" -c bug        # Create issue
    issue-tracker list --status=created              # List issues
    issue-tracker show <id>                          # Show issue details
    issue-tracker peek -c bug -c feature             # Next issue, no changes
    issue-tracker next                               # Take next issue to work on
    issue-tracker return <id> -m "blocked"           # Return to created
    issue-tracker complete <id> -m "done"            # Mark completed
    issue-tracker review                             # Take next issue to review
    issue-tracker close <id> -r closed -m "LGTM"     # Close or reject
"""

from __future__ import annotations

import asyncio
import dataclasses
import json as json_mod
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from issue_tracker import __version__
from issue_tracker.config import VALID_POLICIES, TrackerConfig, load_config
from issue_tracker.engine import IssueTracker
from issue_tracker.errors import AlreadyClosedError, DecodeError, NotFoundError
from issue_tracker.logging import setup_logging
from issue_tracker.models import VALID_CLASSIFICATIONS, VALID_RESOLUTIONS, VALID_STATUSES, Issue
from issue_tracker.types.api import EmptySelection

T = TypeVar("T")


def _fail(message: str, as_json: bool) -> NoReturn:
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _get_tracker(ctx: click.Context, as_json: bool = False) -> IssueTracker:
    """Open the tracker for the configured file, exiting 1 on a corrupt artifact."""
    config: TrackerConfig = ctx.obj["config"]
    setup_logging(config.resolved_log_dir)
    try:
        return IssueTracker.from_config(config)
    except DecodeError as e:
        _fail(str(e), as_json)


def _run(as_json: bool, op: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    try:
        return op(*args, **kwargs)
    except (NotFoundError, AlreadyClosedError, ValueError, OSError) as e:
        _fail(str(e), as_json)


def _echo_issue(issue: Issue, as_json: bool, headline: str | None = None) -> None:
    if as_json:
        click.echo(json_mod.dumps(issue.to_dict(), indent=2, default=str))
        return
    if headline:
        click.echo(headline)
        return
    click.echo(f"ID:             {issue.id}")
    click.echo(f"Title:          {issue.title}")
    click.echo(f"Classification: {issue.classification}")
    click.echo(f"Status:         {issue.status}")
    click.echo(f"Created:        {issue.created_at}")
    click.echo(f"Modified:       {issue.modified_at}")
    if issue.description:
        click.echo(f"\n--- Description ---\n{issue.description}")
    click.echo("\n--- History ---")
    for entry in issue.history:
        click.echo(f"  {entry.timestamp} [{entry.agent}] {entry.action}")
    if issue.comments:
        click.echo("\n--- Comments ---")
        for comment in issue.comments:
            click.echo(f"  {comment.timestamp} [{comment.agent}] {comment.text}")


def _echo_selection(issue: Issue | None, as_json: bool, reason: str, verb: str) -> None:
    if issue is None:
        if as_json:
            click.echo(json_mod.dumps(EmptySelection(status="empty", reason=reason)))
        else:
            click.echo(reason)
        return
    _echo_issue(issue, as_json, None if as_json else f"{verb} {issue.id} [{issue.classification}]: {issue.title}")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="issue-tracker")
@click.option(
    "--file",
    "issues_file",
    envvar="ISSUES_FILE",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Issue store file (default: ./issues.json)",
)
@click.option(
    "--policy",
    envvar="ISSUES_SELECTION_POLICY",
    type=click.Choice(sorted(VALID_POLICIES), case_sensitive=False),
    default=None,
    help="Selection policy for 'next' (default: fifo)",
)
@click.option("--actor", default="cli", help="Agent name recorded in history (default: cli)")
@click.pass_context
def cli(ctx: click.Context, issues_file: Path | None, policy: str | None, actor: str) -> None:
    """Agent issue tracker."""
    ctx.ensure_object(dict)
    try:
        config = load_config()
    except ValueError as e:
        _fail(str(e), False)
    if issues_file is not None:
        config = dataclasses.replace(config, issues_file=issues_file.resolve())
    if policy is not None:
        config = dataclasses.replace(config, selection_policy=policy.lower())
    ctx.obj["config"] = config
    ctx.obj["actor"] = actor


@cli.command()
@click.option("--host", envvar="ISSUES_HOST", default=None, help="Bind host (default: 127.0.0.1)")
@click.option("--port", envvar="PORT", type=click.IntRange(1, 65535), default=None, help="Port (default: 3000)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Serve the dashboard, JSON API and MCP over HTTP."""
    from issue_tracker.dashboard import main as dashboard_main

    config: TrackerConfig = ctx.obj["config"]
    tracker = _get_tracker(ctx)
    dashboard_main(tracker, host=host or config.host, port=port or config.port)


@cli.command()
@click.pass_context
def mcp(ctx: click.Context) -> None:
    """Serve MCP over stdio."""
    from issue_tracker.mcp_server import run_stdio

    asyncio.run(run_stdio(_get_tracker(ctx)))


@cli.command()
@click.argument("title")
@click.option(
    "--classification",
    "-c",
    required=True,
    type=click.Choice(VALID_CLASSIFICATIONS),
    help="Issue classification",
)
@click.option("--description", "-d", default="", help="Description")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(ctx: click.Context, title: str, classification: str, description: str, as_json: bool) -> None:
    """Create a new issue."""
    tracker = _get_tracker(ctx, as_json)
    issue = _run(as_json, tracker.create_issue, title, description, classification, ctx.obj["actor"])
    _echo_issue(issue, as_json, f"Created {issue.id}: {issue.title}")


@cli.command("list")
@click.option("--status", default=None, type=click.Choice(VALID_STATUSES), help="Filter by status")
@click.option("--classification", "-c", default=None, type=click.Choice(VALID_CLASSIFICATIONS), help="Filter by classification")
@click.option("--skip", default=0, type=click.IntRange(min=0), help="Skip the first N matches")
@click.option("--take", default=None, type=click.IntRange(min=0), help="Show at most N matches")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_cmd(
    ctx: click.Context,
    status: str | None,
    classification: str | None,
    skip: int,
    take: int | None,
    as_json: bool,
) -> None:
    """List issues in creation order."""
    tracker = _get_tracker(ctx, as_json)
    issues = _run(as_json, tracker.list_issues, status=status, classification=classification, skip=skip, take=take)
    if as_json:
        click.echo(json_mod.dumps([i.to_dict() for i in issues], indent=2, default=str))
        return
    for issue in issues:
        click.echo(f"{issue.id} [{issue.classification}] {issue.status:<12} {issue.title}")
    click.echo(f"\n{len(issues)} issues")


@cli.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx: click.Context, issue_id: str, as_json: bool) -> None:
    """Show issue details with history and comments."""
    tracker = _get_tracker(ctx, as_json)
    _echo_issue(_run(as_json, tracker.get_issue, issue_id), as_json)


@cli.command()
@click.option(
    "--classification",
    "-c",
    "classifications",
    multiple=True,
    type=click.Choice(VALID_CLASSIFICATIONS),
    help="Classification in priority order (repeatable, default: bug, improvement, feature)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def peek(ctx: click.Context, classifications: tuple[str, ...], as_json: bool) -> None:
    """Show the next issue that would be worked on, without taking it."""
    tracker = _get_tracker(ctx, as_json)
    issue = _run(as_json, tracker.peek_next_issue, list(classifications or VALID_CLASSIFICATIONS))
    _echo_selection(issue, as_json, "No created issues in the requested classifications", "Next:")


@cli.command("next")
@click.option("--classification", "-c", default=None, type=click.Choice(VALID_CLASSIFICATIONS), help="Only take this classification")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def next_cmd(ctx: click.Context, classification: str | None, as_json: bool) -> None:
    """Take the next created issue and set it to in_progress."""
    tracker = _get_tracker(ctx, as_json)
    issue = _run(as_json, tracker.select_next_to_work, ctx.obj["actor"], classification=classification)
    _echo_selection(issue, as_json, "No issues available with status 'created'", "Started")


@cli.command("return")
@click.argument("issue_id")
@click.option("--comment", "-m", required=True, help="Why the issue is being returned")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def return_cmd(ctx: click.Context, issue_id: str, comment: str, as_json: bool) -> None:
    """Return an issue to created status."""
    tracker = _get_tracker(ctx, as_json)
    issue = _run(as_json, tracker.return_issue, issue_id, comment, ctx.obj["actor"])
    _echo_issue(issue, as_json, f"Returned {issue.id}: {issue.title}")


@cli.command()
@click.argument("issue_id")
@click.option("--comment", "-m", required=True, help="Summary of the work done")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def complete(ctx: click.Context, issue_id: str, comment: str, as_json: bool) -> None:
    """Mark an issue as completed and ready for review."""
    tracker = _get_tracker(ctx, as_json)
    issue = _run(as_json, tracker.complete_issue, issue_id, comment, ctx.obj["actor"])
    _echo_issue(issue, as_json, f"Completed {issue.id}: {issue.title}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def review(ctx: click.Context, as_json: bool) -> None:
    """Take the oldest completed issue and set it to in_review."""
    tracker = _get_tracker(ctx, as_json)
    issue = _run(as_json, tracker.select_next_to_review, ctx.obj["actor"])
    _echo_selection(issue, as_json, "No issues available with status 'completed'", "Reviewing")


@cli.command()
@click.argument("issue_id")
@click.option("--resolution", "-r", required=True, type=click.Choice(sorted(VALID_RESOLUTIONS)), help="Final resolution")
@click.option("--comment", "-m", required=True, help="Final comment")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def close(ctx: click.Context, issue_id: str, resolution: str, comment: str, as_json: bool) -> None:
    """Close an issue as closed or rejected."""
    tracker = _get_tracker(ctx, as_json)
    issue = _run(as_json, tracker.close_issue, issue_id, resolution, comment, ctx.obj["actor"])
    _echo_issue(issue, as_json, f"Closed {issue.id} as {resolution}: {issue.title}")


if __name__ == "__main__":
    cli()
