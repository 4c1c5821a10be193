"""
multi-git command line interface.

Every command resolves its target group through :class:`Manager`, fans the
work out and renders one row per repository. The exit status is 1 when any
repository failed, a release step halted, or the group could not be resolved.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .errors import MultiGitError
from .formatters import OutputFormatter
from .group import Group, Halted, OperationResult
from .manager import Manager
from .repository import FlowKind
from .schema import get_tool_schema

T = TypeVar("T")


class FlowAction(StrEnum):
    START = "start"
    PUBLISH = "publish"
    FINISH = "finish"


# =============================================================================
# CLI Application
# =============================================================================


app = typer.Typer(
    name="multi-git",
    help="Run git and git-flow commands across a group of repositories.",
    no_args_is_help=True,
)

GROUP_OPTION = typer.Option(None, "--group", "-g", help="Configured group to act on")
PROJECT_OPTION = typer.Option(None, "--project", "-p", help="Single configured project to act on")
JSON_OPTION = typer.Option(False, "--json", "-j", help="Output as JSON")
SEQUENTIAL_OPTION = typer.Option(False, "--sequential", "-s", help="Run sequentially instead of parallel")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"multi-git {__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool):
    """Send log records to stderr through rich; debug level with --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output MCP-compatible tool schema for AI agents",
    ),
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (overrides auto-resolution)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every git invocation",
    ),
):
    """multi-git: run git and git-flow commands across a group of repositories."""
    setup_logging(verbose)
    ctx.obj = {"config": config}
    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


# =============================================================================
# Helpers
# =============================================================================


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(force_terminal=not json_output)
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


def resolve_group(
    ctx: typer.Context,
    formatter: OutputFormatter,
    group: str | None,
    project: str | None,
    sequential: bool,
) -> Group:
    config = (ctx.obj or {}).get("config")
    manager = Manager(config_path=config, sequential=sequential)
    try:
        return manager.get_group(group, project)
    except MultiGitError as e:
        formatter.print_error(e)
        raise typer.Exit(1) from e


def with_progress(console: Console, json_output: bool, description: str, work: Callable[[], T]) -> T:
    """Run ``work`` behind a spinner unless the output is JSON."""
    if json_output:
        return work()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(description, total=None)
        return work()


def exit_on_failure(results: list[OperationResult]):
    if any(not r.success for r in results):
        raise typer.Exit(1)


def run_simple(
    ctx: typer.Context,
    operation: str,
    description: str,
    work: Callable[[Group], list[OperationResult]],
    group: str | None,
    project: str | None,
    json_output: bool,
    sequential: bool,
    render: Callable[[OutputFormatter, list[OperationResult]], None] | None = None,
):
    console, formatter = get_console_and_formatter(json_output)
    target = resolve_group(ctx, formatter, group, project, sequential)
    results = with_progress(console, json_output, description, lambda: work(target))
    if render is None:
        formatter.print_operation_results(results, operation)
    else:
        render(formatter, results)
    exit_on_failure(results)


# =============================================================================
# Commands
# =============================================================================


@app.command()
def status(
    ctx: typer.Context,
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """Show version, working tree and sync status of every repository."""
    console, formatter = get_console_and_formatter(json_output)
    target = resolve_group(ctx, formatter, group, project, sequential)
    results = with_progress(console, json_output, "Analyzing...", target.detailed_status)
    formatter.print_status(results, title=f"{target.name} Status")
    exit_on_failure(results)


@app.command()
def fetch(
    ctx: typer.Context,
    remote: str = typer.Argument(None, help="Remote to fetch"),
    branch: str = typer.Argument(None, help="Branch to fetch"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """Fetch every repository, then show status."""
    console, formatter = get_console_and_formatter(json_output)
    target = resolve_group(ctx, formatter, group, project, sequential)

    def work() -> list[OperationResult]:
        fetched = target.fetch(remote, branch)
        statuses = target.detailed_status()
        return [s if f.success else f for f, s in zip(fetched, statuses)]

    results = with_progress(console, json_output, "Fetching and analyzing...", work)
    formatter.print_status(results, title=f"{target.name} Status")
    exit_on_failure(results)


@app.command()
def pull(
    ctx: typer.Context,
    remote: str = typer.Argument(None, help="Remote to pull from (default: upstream)"),
    branch: str = typer.Argument(None, help="Branch to pull (default: upstream)"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """Fetch, then merge into repositories that are clean and behind."""
    run_simple(
        ctx,
        "pull",
        "Pulling repositories...",
        lambda target: target.pull(remote, branch),
        group,
        project,
        json_output,
        sequential,
        render=lambda formatter, results: formatter.print_pull_results(results),
    )


@app.command()
def push(
    ctx: typer.Context,
    remote: str = typer.Argument(None, help="Remote to push to"),
    branch: str = typer.Argument(None, help="Branch to push"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """Push every repository."""
    run_simple(
        ctx, "push", "Pushing repositories...", lambda target: target.push(remote, branch),
        group, project, json_output, sequential,
    )


@app.command()
def checkout(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Branch, tag or commit to check out"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """Check out the same ref in every repository."""
    run_simple(
        ctx, "checkout", f"Checking out {ref}...", lambda target: target.checkout(ref),
        group, project, json_output, sequential,
    )


@app.command()
def add(
    ctx: typer.Context,
    files: list[str] = typer.Argument(..., help="Paths to stage"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """Stage files in every repository."""
    run_simple(
        ctx, "add", "Staging files...", lambda target: target.add_files(files),
        group, project, json_output, sequential,
    )


@app.command()
def unstage(
    ctx: typer.Context,
    files: list[str] = typer.Argument(..., help="Paths to unstage"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """Unstage files in every repository."""
    run_simple(
        ctx, "unstage", "Unstaging files...", lambda target: target.unstage_files(files),
        group, project, json_output, sequential,
    )


@app.command(context_settings={"ignore_unknown_options": True})
def stash(
    ctx: typer.Context,
    args: list[str] = typer.Argument(None, help="Arguments passed to git stash"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """Run git stash in every repository."""
    run_simple(
        ctx, "stash", "Stashing...", lambda target: target.stash(args or []),
        group, project, json_output, sequential,
    )


# =============================================================================
# git-flow commands
# =============================================================================


def run_flow(
    ctx: typer.Context,
    kind: FlowKind,
    action: FlowAction,
    name: str | None,
    base: str | None,
    group: str | None,
    project: str | None,
    json_output: bool,
    sequential: bool,
):
    console, formatter = get_console_and_formatter(json_output)
    operation = f"{kind} {action}"
    if action == FlowAction.START and not name:
        formatter.print_error(MultiGitError(f"A {kind} name is required"))
        raise typer.Exit(1)

    target = resolve_group(ctx, formatter, group, project, sequential)

    def work() -> list[OperationResult]:
        # Branch state is derived from remote branches too
        target.fetch()
        if action == FlowAction.START:
            return target.flow_start(kind, name, base)
        if action == FlowAction.PUBLISH:
            return target.flow_publish(kind, name)
        return target.flow_finish(kind, name)

    results = with_progress(console, json_output, f"Running {operation}...", work)
    formatter.print_flow_results(results, operation)
    exit_on_failure(results)


@app.command()
def feature(
    ctx: typer.Context,
    action: FlowAction = typer.Argument(..., help="start, publish or finish"),
    name: str = typer.Argument(None, help="Feature name (default: current feature branch)"),
    base: str = typer.Argument(None, help="Branch to start from (default: develop)"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """[git-flow] Start, publish or finish a feature in every repository."""
    run_flow(ctx, FlowKind.FEATURE, action, name, base, group, project, json_output, sequential)


@app.command()
def hotfix(
    ctx: typer.Context,
    action: FlowAction = typer.Argument(..., help="start, publish or finish"),
    name: str = typer.Argument(None, help="Hotfix name (default: current hotfix branch)"),
    base: str = typer.Argument(None, help="Branch to start from (default: master)"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """[git-flow] Start, publish or finish a hotfix in every repository."""
    run_flow(ctx, FlowKind.HOTFIX, action, name, base, group, project, json_output, sequential)


@app.command()
def bugfix(
    ctx: typer.Context,
    action: FlowAction = typer.Argument(..., help="start, publish or finish"),
    name: str = typer.Argument(None, help="Bugfix name (default: current bugfix branch)"),
    base: str = typer.Argument(None, help="Branch to start from (default: develop)"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """[git-flow] Start, publish or finish a bugfix in every repository."""
    run_flow(ctx, FlowKind.BUGFIX, action, name, base, group, project, json_output, sequential)


@app.command()
def support(
    ctx: typer.Context,
    action: FlowAction = typer.Argument(..., help="start or publish"),
    name: str = typer.Argument(None, help="Support branch name (default: current support branch)"),
    base: str = typer.Argument(None, help="Tag or commit to start from"),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """[git-flow] Start or publish a support branch in every repository."""
    if action == FlowAction.FINISH:
        _, formatter = get_console_and_formatter(json_output)
        formatter.print_error(MultiGitError("Support branches cannot be finished"))
        raise typer.Exit(1)
    run_flow(ctx, FlowKind.SUPPORT, action, name, base, group, project, json_output, sequential)


@app.command()
def release(
    ctx: typer.Context,
    action: FlowAction = typer.Argument(..., help="start, publish or finish"),
    version: str = typer.Argument(
        None,
        help="start: patch, minor, major, pre* or a literal version (default: patch); "
        "publish/finish: release name (default: active release)",
    ),
    base: str = typer.Argument(None, help="Branch to start from (default: develop)"),
    push_defaults: bool = typer.Option(
        False,
        "--push",
        help="finish: push master, develop and tags afterwards",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="start: skip the confirmation prompt",
    ),
    group: str = GROUP_OPTION,
    project: str = PROJECT_OPTION,
    json_output: bool = JSON_OPTION,
    sequential: bool = SEQUENTIAL_OPTION,
):
    """[git-flow] Start, publish or finish a release in every repository."""
    console, formatter = get_console_and_formatter(json_output)
    target = resolve_group(ctx, formatter, group, project, sequential)
    operation = f"release {action}"

    if action == FlowAction.PUBLISH:

        def publish() -> list[OperationResult]:
            target.fetch()
            return target.release_publish(version)

        results = with_progress(console, json_output, "Publishing release...", publish)
        formatter.print_flow_results(results, operation)
        exit_on_failure(results)
        return

    if action == FlowAction.START:
        bump = version or "patch"
        if not (yes or json_output):
            names = ", ".join(m.name for m in target.members)
            typer.confirm(f"Start a {bump} release on {names}?", abort=True)

        def start() -> Any:
            target.fetch()
            return target.release_start(bump, base)

        outcome = with_progress(console, json_output, "Starting release...", start)
    else:

        def finish() -> Any:
            target.fetch()
            return target.release_finish(version, push=push_defaults)

        outcome = with_progress(console, json_output, "Finishing release...", finish)

    if isinstance(outcome, Halted):
        formatter.print_halted(outcome, "creation" if action == FlowAction.START else "operation")
        raise typer.Exit(1)
    formatter.print_flow_results(outcome.results, operation)
    exit_on_failure(outcome.results)


@app.command()
def init():
    """Write a starter configuration to ~/.mg-config.json."""
    console = Console()
    path, created = Manager().init_config()
    if created:
        console.print(f"[green]✓[/] Wrote starter configuration to [cyan]{path}[/]")
    else:
        console.print(f"[dim]Configuration already exists at {path}[/]")
