"""Tests for formatters.py."""

from __future__ import annotations

import io

from rich.console import Console

from multi_git.flow import FlowResult, FlowState
from multi_git.formatters import OutputFormatter
from multi_git.git import StatusSummary
from multi_git.group import OperationResult
from multi_git.repository import FlowKind, RepositoryStatus


def make_formatter() -> tuple[OutputFormatter, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, color_system=None)
    return OutputFormatter(console), buffer


# =============================================================================
# Markup Tests
# =============================================================================


class TestManifestTextIsEscaped:
    """Manifest and branch text must print literally, never as rich markup."""

    def test_status_version(self, make_repo) -> None:
        repo = make_repo("api")
        status = RepositoryStatus(
            path=repo.path,
            name=repo.name,
            status=StatusSummary(current="feature/[x]", tracking="origin/[/]"),
            version="1.0.0[/]",
        )
        formatter, buffer = make_formatter()

        formatter.print_status([OperationResult.ok(repo, "status", status)])

        output = buffer.getvalue()
        assert "1.0.0[/]" in output
        assert "feature/[x]" in output

    def test_flow_version(self, make_repo) -> None:
        repo = make_repo("api")
        payload = FlowResult(
            FlowKind.RELEASE, "start", "release/2.0[bold]", FlowState.STARTED, version="2.0[bold]"
        )
        formatter, buffer = make_formatter()

        formatter.print_flow_results([OperationResult.ok(repo, "release start", payload)], "release start")

        assert "2.0[bold]" in buffer.getvalue()
