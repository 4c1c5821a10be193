"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .flow import FlowResult
from .git import PullSummary
from .repository import RepositoryStatus

if TYPE_CHECKING:
    from .group import Halted, OperationResult


def compute_unique_display_names(results: list[OperationResult]) -> dict[Path, str]:
    """Map each member path to its name, widened with parent directories when names collide."""
    by_name: dict[str, list[Path]] = defaultdict(list)
    for result in results:
        by_name[result.name].append(result.path)

    names: dict[Path, str] = {}
    for name, paths in by_name.items():
        if len(paths) == 1:
            names[paths[0]] = name
            continue
        depth = 2
        while depth <= max(len(p.parts) for p in paths):
            candidates = ["/".join(p.parts[-depth:]) for p in paths]
            if len(set(candidates)) == len(candidates):
                break
            depth += 1
        for path in paths:
            names[path] = "/".join(path.parts[-depth:])
    return names


def _last_line(text: str, width: int = 60) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1][:width] if lines else ""


class OutputFormatter:
    """Format group results for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def _print_json(self, output: Any):
        self.console.print(
            json.dumps(output, indent=2, default=str),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )

    @staticmethod
    def _summary(results: list[OperationResult]) -> dict:
        return {
            "total": len(results),
            "success": sum(1 for r in results if r.success),
            "failed": sum(1 for r in results if not r.success),
        }

    def _print_success_count(self, results: list[OperationResult]):
        summary = self._summary(results)
        color = "green" if summary["failed"] == 0 else "red"
        self.console.print(f"\n[bold]Success:[/] [{color}]{summary['success']}/{summary['total']}[/]")

    def _error_cell(self, result: OperationResult) -> str:
        code = getattr(result.error, "code", None)
        prefix = f"{code}: " if code else ""
        return f"[red]{escape(prefix + _last_line(result.message))}[/]"

    # -- status ------------------------------------------------------------------

    def print_status(self, results: list[OperationResult], title: str = "Status"):
        """Print one status row per member: version, tree state, branch and sync counts."""
        if self.use_json:
            self._print_json({"results": [r.to_dict() for r in results], "summary": self._summary(results)})
            return
        if not results:
            self.console.print("[dim]No repositories found[/]")
            return

        display_names = compute_unique_display_names(results)
        table = Table(title=title)
        table.add_column("Project", style="cyan", no_wrap=True)
        table.add_column("Version")
        table.add_column("Status", justify="center")
        table.add_column("Branch")
        table.add_column("Upstream")
        table.add_column("Ahead", justify="right")
        table.add_column("Behind", justify="right")

        for result in results:
            name = display_names.get(result.path, result.name)
            if not result.success:
                table.add_row(name, "", self._error_cell(result), "", "", "", "")
                continue
            status: RepositoryStatus = result.payload
            tree = (
                "[green]clean[/]"
                if status.is_clean
                else f"[yellow]dirty ({status.edit_count})[/]"
            )
            table.add_row(
                name,
                escape(status.version),
                tree,
                f"[green]{escape(status.current)}[/]",
                escape(status.tracking) if status.tracking else "[dim]none[/]",
                f"[yellow]{status.ahead}[/]" if status.ahead else "0",
                f"[blue]{status.behind}[/]" if status.behind else "0",
            )

        self.console.print(table)
        if any(not r.success for r in results):
            self._print_success_count(results)

    # -- generic results ---------------------------------------------------------

    def print_operation_results(self, results: list[OperationResult], operation: str):
        """Print one ✓/✗ row per member with git's last output line."""
        if self.use_json:
            self._print_json({"results": [r.to_dict() for r in results], "summary": self._summary(results)})
            return
        if not results:
            self.console.print(f"[dim]No repositories to {operation}[/]")
            return

        display_names = compute_unique_display_names(results)
        table = Table(title=f"{operation.title()} Results")
        table.add_column("Project", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Message")

        for result in results:
            name = display_names.get(result.path, result.name)
            if result.success:
                payload = result.payload
                message = escape(_last_line(payload)) if isinstance(payload, str) else ""
                table.add_row(name, "[green]✓[/]", message or "OK")
            else:
                table.add_row(name, "[red]✗[/]", self._error_cell(result))

        self.console.print(table)
        self._print_success_count(results)

    def print_pull_results(self, results: list[OperationResult]):
        """Print merged change counts per member, or why a member was skipped."""
        if self.use_json:
            self._print_json({"results": [r.to_dict() for r in results], "summary": self._summary(results)})
            return
        if not results:
            self.console.print("[dim]No repositories to pull[/]")
            return

        display_names = compute_unique_display_names(results)
        table = Table(title="Pull Results")
        table.add_column("Project", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Changes", justify="right")
        table.add_column("Insertions", justify="right")
        table.add_column("Deletions", justify="right")

        for result in results:
            name = display_names.get(result.path, result.name)
            summary = result.payload
            if not result.success:
                table.add_row(name, "[red]✗[/]", self._error_cell(result), "", "")
            elif isinstance(summary, PullSummary) and summary.skipped:
                table.add_row(name, "[dim]-[/]", f"[dim]skipped: {escape(summary.reason)}[/]", "", "")
            elif isinstance(summary, PullSummary):
                table.add_row(
                    name,
                    "[green]✓[/]",
                    str(summary.changes),
                    f"[green]+{summary.insertions}[/]",
                    f"[red]-{summary.deletions}[/]",
                )
            else:
                table.add_row(name, "[green]✓[/]", "", "", "")

        self.console.print(table)
        self._print_success_count(results)

    def print_flow_results(self, results: list[OperationResult], operation: str):
        """Print the branch (and release version) each member moved to."""
        if self.use_json:
            self._print_json({"results": [r.to_dict() for r in results], "summary": self._summary(results)})
            return
        if not results:
            self.console.print(f"[dim]No repositories to {operation}[/]")
            return

        display_names = compute_unique_display_names(results)
        table = Table(title=f"{operation.title()} Results")
        table.add_column("Project", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Branch")
        table.add_column("Version")
        table.add_column("State")

        for result in results:
            name = display_names.get(result.path, result.name)
            flow: FlowResult | None = result.payload
            if not result.success:
                table.add_row(name, "[red]✗[/]", self._error_cell(result), "", "")
            elif flow is None:
                table.add_row(name, "[green]✓[/]", "", "", "")
            elif flow.skipped:
                table.add_row(name, "[dim]-[/]", f"[dim]skipped: {escape(flow.reason)}[/]", "", "")
            else:
                table.add_row(name, "[green]✓[/]", escape(flow.branch), escape(flow.version), flow.state.value)

        self.console.print(table)
        self._print_success_count(results)

    # -- halted composites -------------------------------------------------------

    def print_halted(self, outcome: Halted, operation: str):
        """Report a composite that stopped before changing anything."""
        if self.use_json:
            self._print_json(
                {
                    "halted": True,
                    "reason": outcome.reason,
                    "results": [r.to_dict() for r in outcome.results],
                    "summary": self._summary(outcome.results),
                }
            )
            return

        self.console.print(f"[yellow]Encountered some errors, {operation} halted[/]")
        if outcome.reason:
            self.console.print(f"[yellow]{outcome.reason}[/]\n")
        failed = [r for r in outcome.results if not r.success]
        table = Table()
        table.add_column("Project", style="cyan")
        table.add_column("Error")
        display_names = compute_unique_display_names(outcome.results)
        for result in failed:
            table.add_row(display_names.get(result.path, result.name), self._error_cell(result))
        self.console.print(table)

    def print_error(self, error: Exception):
        if self.use_json:
            self._print_json({"error": str(error), "error_code": getattr(error, "code", None)})
        else:
            self.console.print(f"[red]Error: {escape(str(error))}[/]")
