"""Tests against real git repositories."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import git, init_repo, requires_git

from multi_git.errors import GitCommandError
from multi_git.group import Group
from multi_git.repository import Repository

pytestmark = requires_git


@pytest.fixture
def origin_and_clones(tmp_path: Path) -> dict[str, Path]:
    """A bare origin with ``develop`` plus two clones tracking it."""
    seed = init_repo(tmp_path / "seed")
    origin = tmp_path / "origin.git"
    git(tmp_path, "init", "-q", "--bare", str(origin))
    git(seed, "remote", "add", "origin", str(origin))
    git(seed, "push", "-q", "-u", "origin", "develop")

    clones = {}
    for name in ("alpha", "beta"):
        path = tmp_path / name
        git(tmp_path, "clone", "-q", "-b", "develop", str(origin), str(path))
        git(path, "config", "user.name", "Test User")
        git(path, "config", "user.email", "test@example.com")
        git(path, "config", "commit.gpgsign", "false")
        clones[name] = path
    return {"seed": seed, "origin": origin, **clones}


class TestRealRepository:
    """Status, config and version probing on a real working tree."""

    def test_clean_then_dirty(self, tmp_path: Path) -> None:
        repo = Repository.from_path(init_repo(tmp_path / "app"))
        assert repo.has_git() is True

        status = repo.detailed_status()
        assert status.current == "develop"
        assert status.is_clean is True

        (repo.path / "notes.txt").write_text("todo\n")
        (repo.path / "README.md").write_text("# changed\n")
        status = repo.detailed_status()
        assert status.text == "dirty"
        assert status.edit_count == 2

    def test_config_and_version(self, tmp_path: Path) -> None:
        path = init_repo(tmp_path / "app")
        (path / "package.json").write_text(json.dumps({"name": "app", "version": "0.3.0"}))
        repo = Repository.from_path(path)

        assert repo.config()["user"]["name"] == "Test User"
        assert repo.gitflow.prefix("release") == "release/"
        assert repo.get_version() == "0.3.0"

    def test_command_error(self, tmp_path: Path) -> None:
        repo = Repository.from_path(init_repo(tmp_path / "app"))
        with pytest.raises(GitCommandError):
            repo.checkout("does-not-exist")


class TestRealGroup:
    """Group fan-out over real clones."""

    def test_status_order(self, origin_and_clones: dict[str, Path]) -> None:
        members = (Repository.from_path(origin_and_clones["beta"]), Repository.from_path(origin_and_clones["alpha"]))
        results = Group("clones", members).detailed_status()
        assert [r.name for r in results] == ["beta", "alpha"]
        assert all(r.payload.tracking == "origin/develop" for r in results)

    def test_pull_fast_forwards_clean_clone_only(self, origin_and_clones: dict[str, Path]) -> None:
        seed = origin_and_clones["seed"]
        (seed / "feature.txt").write_text("new\n")
        git(seed, "add", "feature.txt")
        git(seed, "commit", "-q", "-m", "Add feature")
        git(seed, "push", "-q", "origin", "develop")

        alpha, beta = origin_and_clones["alpha"], origin_and_clones["beta"]
        (beta / "scratch.txt").write_text("local\n")
        group = Group("clones", (Repository.from_path(alpha), Repository.from_path(beta)))

        results = group.pull()

        assert [r.success for r in results] == [True, True]
        assert results[0].payload.skipped is False
        assert results[0].payload.changes == 1
        assert (alpha / "feature.txt").exists()
        assert results[1].payload.reason == "dirty"
        assert not (beta / "feature.txt").exists()
