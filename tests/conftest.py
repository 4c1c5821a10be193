"""Shared fixtures: a scripted git client and repository factories."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from multi_git.errors import GitCommandError
from multi_git.group import Group
from multi_git.repository import Repository


class FakeGit:
    """Stand-in for GitClient that answers from a table of argument tuples.

    Unknown commands succeed with empty output. Every call is recorded with
    the environment overlay it was given.
    """

    def __init__(self, responses: dict | None = None):
        self.responses: dict[tuple[str, ...], object] = dict(responses or {})
        self.calls: list[tuple[str, ...]] = []
        self.envs: list[dict | None] = []

    def on(self, *args: str, output: str = "", error: BaseException | None = None) -> FakeGit:
        self.responses[tuple(args)] = error if error is not None else output
        return self

    def run(self, *args: str, env: dict | None = None) -> str:
        self.calls.append(tuple(args))
        self.envs.append(env)
        response = self.responses.get(tuple(args), "")
        if isinstance(response, BaseException):
            raise response
        return response

    def env_for(self, *args: str) -> dict | None:
        return self.envs[self.calls.index(tuple(args))]

    def called(self, *args: str) -> bool:
        return tuple(args) in self.calls


def status_output(
    branch: str = "develop",
    upstream: str | None = "origin/develop",
    ahead: int = 0,
    behind: int = 0,
    entries: tuple[str, ...] = (),
) -> str:
    """Build ``git status --porcelain=v2 --branch`` output."""
    lines = ["# branch.oid 1111111111111111111111111111111111111111", f"# branch.head {branch}"]
    if upstream:
        lines.append(f"# branch.upstream {upstream}")
        lines.append(f"# branch.ab +{ahead} -{behind}")
    lines.extend(entries)
    return "\n".join(lines) + "\n"


def git_error(*args: str, stderr: str = "fatal: boom") -> GitCommandError:
    return GitCommandError(args, 128, "", stderr)


STATUS_ARGS = ("status", "--porcelain=v2", "--branch")
BRANCHES_ARGS = ("branch", "-a", "-vv")
CONFIG_ARGS = ("config", "--list")
ORIGIN_CONFIG = "remote.origin.url=git@example.com:acme/app.git\nremote.origin.fetch=+refs/heads/*:refs/remotes/origin/*\n"


@pytest.fixture
def make_repo(tmp_path: Path) -> Callable[..., Repository]:
    """Factory for repositories backed by a :class:`FakeGit`."""

    def factory(name: str = "app", git: FakeGit | None = None, with_git_dir: bool = True) -> Repository:
        path = tmp_path / name
        path.mkdir(parents=True, exist_ok=True)
        if with_git_dir:
            (path / ".git").mkdir(exist_ok=True)
        repo = Repository.from_path(path)
        repo.git = git or FakeGit()
        return repo

    return factory


@pytest.fixture
def make_group(make_repo) -> Callable[..., Group]:
    def factory(*gits: FakeGit, **kwargs) -> Group:
        members = [make_repo(f"repo{i}", git) for i, git in enumerate(gits)]
        return Group(name=kwargs.pop("name", "test"), members=tuple(members), **kwargs)

    return factory


# =============================================================================
# Real git repositories
# =============================================================================


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return result.stdout


def init_repo(path: Path, branch: str = "develop") -> Path:
    """Create a repository with one commit on ``branch``."""
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q")
    git(path, "config", "user.name", "Test User")
    git(path, "config", "user.email", "test@example.com")
    git(path, "config", "commit.gpgsign", "false")
    git(path, "checkout", "-q", "-b", branch)
    (path / "README.md").write_text("# test\n")
    git(path, "add", "README.md")
    git(path, "commit", "-q", "-m", "Initial commit")
    return path
