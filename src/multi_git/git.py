"""
Low-level git transport and output parsers.

Every call to git goes through :class:`GitClient`, which runs one child
process per call, never prompts, and gives up after a bounded timeout.
The parsers turn git's porcelain output into small dataclasses that the
rest of the package consumes.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .errors import GitCommandError, GitTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0

# Applied to every child process: never ask for credentials on the terminal.
QUIET_ENV = {"GIT_TERMINAL_PROMPT": "0"}

_DIFFSTAT_RE = re.compile(
    r"(\d+) files? changed(?:, (\d+) insertions?\(\+\))?(?:, (\d+) deletions?\(-\))?"
)


# =============================================================================
# Transport
# =============================================================================


class GitClient:
    """Runs git commands inside one working directory."""

    def __init__(self, repo_path: Path, timeout: float | None = DEFAULT_TIMEOUT):
        self.repo_path = repo_path
        self.timeout = timeout

    def run(self, *args: str, env: Mapping[str, str] | None = None) -> str:
        """Run ``git <args>`` and return its standard output.

        ``env`` is overlaid on the inherited environment for this single
        child process only.

        Raises:
            GitCommandError: git exited with a non-zero status.
            GitTimeoutError: git did not finish within ``self.timeout``.
        """
        command = ["git", *args]
        child_env = {**os.environ, **QUIET_ENV, **(env or {})}
        logger.debug(f"[{self.repo_path.name}] {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
                env=child_env,
            )
        except subprocess.TimeoutExpired as e:
            raise GitTimeoutError(args, self.timeout or 0) from e

        if result.returncode != 0:
            logger.debug(
                f"[{self.repo_path.name}] git {args[0] if args else ''} "
                f"exited {result.returncode}: {result.stderr.strip()}"
            )
            raise GitCommandError(args, result.returncode, result.stdout, result.stderr)
        return result.stdout


# =============================================================================
# Status
# =============================================================================


@dataclass
class StatusSummary:
    """Parsed ``git status --porcelain=v2 --branch`` output."""

    current: str = ""
    tracking: str = ""
    ahead: int = 0
    behind: int = 0
    detached: bool = False
    not_added: list[str] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    renamed: list[str] = field(default_factory=list)
    staged: list[str] = field(default_factory=list)


def parse_status(output: str) -> StatusSummary:
    """Parse porcelain v2 status output into a :class:`StatusSummary`."""
    status = StatusSummary()
    for line in output.splitlines():
        if line.startswith("# branch.head "):
            head = line[len("# branch.head ") :]
            if head == "(detached)":
                status.detached = True
            status.current = head
        elif line.startswith("# branch.upstream "):
            status.tracking = line[len("# branch.upstream ") :]
        elif line.startswith("# branch.ab "):
            # Format: # branch.ab +<ahead> -<behind>
            parts = line.split()
            if len(parts) == 4:
                status.ahead = abs(int(parts[2]))
                status.behind = abs(int(parts[3]))
        elif line.startswith("1 "):
            # Changed entry: 1 XY sub mH mI mW hH hI path
            parts = line.split(" ", 8)
            if len(parts) < 9:
                continue
            xy, path = parts[1], parts[8]
            if xy[0] != ".":
                status.staged.append(path)
            if xy[0] == "A":
                status.created.append(path)
            elif "D" in xy:
                status.deleted.append(path)
            else:
                status.modified.append(path)
        elif line.startswith("2 "):
            # Renamed entry: 2 XY sub mH mI mW hH hI Xscore path<TAB>origPath
            parts = line.split(" ", 9)
            if len(parts) < 10:
                continue
            path = parts[9].split("\t", 1)[0]
            if parts[1][0] != ".":
                status.staged.append(path)
            status.renamed.append(path)
        elif line.startswith("u "):
            # Unmerged entry: u XY sub m1 m2 m3 mW h1 h2 h3 path
            parts = line.split(" ", 10)
            if len(parts) == 11:
                status.conflicted.append(parts[10])
        elif line.startswith("? "):
            status.not_added.append(line[2:])
    return status


# =============================================================================
# Branches
# =============================================================================


@dataclass
class BranchInfo:
    """One line of ``git branch -v`` output."""

    name: str
    commit: str = ""
    label: str = ""
    current: bool = False
    upstream: str = ""
    remote: str = ""
    is_remote_release: bool = False
    local_name: str = ""

    @property
    def is_remote(self) -> bool:
        return self.name.startswith("remotes/")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "commit": self.commit,
            "current": self.current,
            "upstream": self.upstream,
            "remote": self.remote,
            "is_remote_release": self.is_remote_release,
            "local_name": self.local_name,
        }


@dataclass
class BranchSummary:
    current: str = ""
    branches: list[BranchInfo] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [b.name for b in self.branches]

    def get(self, name: str) -> BranchInfo | None:
        for branch in self.branches:
            if branch.name == name:
                return branch
        return None


def parse_branches(output: str) -> BranchSummary:
    """Parse ``git branch -v`` / ``git branch -a -vv`` output."""
    summary = BranchSummary()
    for raw in output.splitlines():
        if not raw.strip():
            continue
        current = raw.startswith("*")
        body = raw[2:]
        # Symbolic refs such as remotes/origin/HEAD -> origin/master
        if " -> " in body:
            continue
        if body.startswith("("):
            end = body.find(")")
            name, rest = body[: end + 1], body[end + 1 :].strip()
        else:
            name, _, rest = body.partition(" ")
            rest = rest.strip()
        commit, _, label = rest.partition(" ")
        branch = BranchInfo(name=name, commit=commit, label=label.strip(), current=current)
        summary.branches.append(branch)
        if current:
            summary.current = name
    return summary


# =============================================================================
# Merge / diff summaries
# =============================================================================


@dataclass
class PullSummary:
    """Outcome of a merge or pull in one repository."""

    changes: int = 0
    insertions: int = 0
    deletions: int = 0
    skipped: bool = False
    reason: str = ""

    @classmethod
    def skip(cls, reason: str) -> PullSummary:
        return cls(skipped=True, reason=reason)

    def to_dict(self) -> dict:
        return {
            "changes": self.changes,
            "insertions": self.insertions,
            "deletions": self.deletions,
            "skipped": self.skipped,
            "reason": self.reason,
        }


def parse_merge_output(output: str) -> PullSummary:
    """Read the trailing diffstat printed by ``git merge`` / ``git pull``."""
    match = None
    for match in _DIFFSTAT_RE.finditer(output):
        pass
    if match is None:
        return PullSummary()
    return PullSummary(
        changes=int(match.group(1)),
        insertions=int(match.group(2) or 0),
        deletions=int(match.group(3) or 0),
    )


@dataclass
class DiffFile:
    path: str
    insertions: int = 0
    deletions: int = 0
    binary: bool = False


@dataclass
class DiffSummary:
    files: list[DiffFile] = field(default_factory=list)

    @property
    def insertions(self) -> int:
        return sum(f.insertions for f in self.files)

    @property
    def deletions(self) -> int:
        return sum(f.deletions for f in self.files)


def parse_numstat(output: str) -> DiffSummary:
    """Parse ``git diff --numstat`` output."""
    summary = DiffSummary()
    for line in output.splitlines():
        parts = line.split("\t", 2)
        if len(parts) != 3:
            continue
        added, removed, path = parts
        if added == "-" and removed == "-":
            summary.files.append(DiffFile(path=path, binary=True))
        else:
            summary.files.append(DiffFile(path=path, insertions=int(added), deletions=int(removed)))
    return summary
