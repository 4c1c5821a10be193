"""Tests for manager.py."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from multi_git.errors import (
    GroupMissingError,
    InvalidConfigError,
    NoConfigFileError,
    ProjectMissingError,
)
from multi_git.manager import (
    CONFIG_FILENAME,
    Manager,
    config_candidates,
    descriptor_from_config,
    load_config,
    resolve_config_file,
)


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    """Point HOME and XDG_CONFIG_HOME at empty temp directories."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    return home


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Three projects: two repositories and one plain directory."""
    root = tmp_path / "work"
    for name in ("api", "web", "docs"):
        (root / name).mkdir(parents=True)
    (root / "api" / ".git").mkdir()
    (root / "web" / ".git").mkdir()
    return root


def write_config(path: Path, workspace: Path, **extra) -> Path:
    config = {
        "projects": {
            "api": {"name": "api", "path": str(workspace / "api")},
            "web": str(workspace / "web"),
            "docs": [str(workspace / "docs"), "Documentation"],
        },
        "groups": {
            "tools": {"name": "tools", "members": ["web", "api", "docs"], "settings": {"allowEmptyRelease": True}},
            "backend": {"name": "backend", "members": ["api"]},
        },
        "defaultGroupSettings": {"maxWorkers": 2, "timeout": 30},
        **extra,
    }
    path.write_text(json.dumps(config))
    return path


# =============================================================================
# Configuration File Tests
# =============================================================================


class TestDescriptorFromConfig:
    """Tests for project entry normalization."""

    def test_bare_path_uses_key_as_name(self, tmp_path: Path) -> None:
        descriptor = descriptor_from_config(str(tmp_path / "api"), "backend-api")
        assert descriptor.path == tmp_path / "api"
        assert descriptor.name == "backend-api"

    def test_pair(self, tmp_path: Path) -> None:
        descriptor = descriptor_from_config([str(tmp_path / "api"), "API"], "api")
        assert descriptor.name == "API"

    def test_mapping(self, tmp_path: Path) -> None:
        descriptor = descriptor_from_config({"path": str(tmp_path / "api")}, "api")
        assert descriptor.name == "api"
        assert descriptor.path == tmp_path / "api"

    def test_invalid(self) -> None:
        with pytest.raises(InvalidConfigError):
            descriptor_from_config({"name": "nowhere"}, "nowhere")


class TestConfigDiscovery:
    """Tests for configuration file lookup."""

    def test_candidate_order(self, isolated_home: Path, tmp_path: Path) -> None:
        assert config_candidates(tmp_path) == [
            tmp_path / CONFIG_FILENAME,
            isolated_home / ".config" / "multi-git" / "config.json",
            isolated_home / CONFIG_FILENAME,
        ]

    def test_cwd_wins(self, isolated_home: Path, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("{}")
        (isolated_home / CONFIG_FILENAME).write_text("{}")
        assert resolve_config_file(tmp_path) == tmp_path / CONFIG_FILENAME

    def test_empty_file_is_skipped(self, isolated_home: Path, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        xdg = isolated_home / ".config" / "multi-git"
        xdg.mkdir(parents=True)
        (xdg / "config.json").write_text("{}")
        assert resolve_config_file(tmp_path) == xdg / "config.json"

    def test_home_fallback(self, isolated_home: Path, tmp_path: Path) -> None:
        (isolated_home / CONFIG_FILENAME).write_text("{}")
        assert resolve_config_file(tmp_path) == isolated_home / CONFIG_FILENAME

    def test_nothing_found(self, isolated_home: Path, tmp_path: Path) -> None:
        assert resolve_config_file(tmp_path) is None
        with pytest.raises(NoConfigFileError):
            Manager(cwd=tmp_path).get_config()

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{broken")
        with pytest.raises(InvalidConfigError):
            load_config(path)

    def test_explicit_path_must_exist(self, tmp_path: Path) -> None:
        with pytest.raises(NoConfigFileError):
            Manager(config_path=tmp_path / "missing.json").get_config()


# =============================================================================
# Group Resolution Tests
# =============================================================================


class TestNamedGroups:
    """Tests for --group and --project resolution."""

    def test_group_by_name(self, isolated_home: Path, workspace: Path, tmp_path: Path) -> None:
        config = write_config(tmp_path / "config.json", workspace)
        group = Manager(config_path=config, cwd=tmp_path).get_group("tools")

        assert group.name == "tools"
        # docs has no .git and is dropped; order follows the group definition
        assert [m.name for m in group.members] == ["web", "api"]
        assert all(m.git is not None for m in group.members)
        assert group.settings.allow_empty_release is True
        assert group.settings.max_workers == 2
        assert group.members[0].timeout == 30

    def test_sequential_flag(self, isolated_home: Path, workspace: Path, tmp_path: Path) -> None:
        config = write_config(tmp_path / "config.json", workspace)
        group = Manager(config_path=config, cwd=tmp_path, sequential=True).get_group("backend")
        assert group.sequential is True
        assert group.settings.allow_empty_release is False

    def test_missing_group(self, isolated_home: Path, workspace: Path, tmp_path: Path) -> None:
        config = write_config(tmp_path / "config.json", workspace)
        with pytest.raises(GroupMissingError):
            Manager(config_path=config, cwd=tmp_path).get_group("nope")

    def test_project(self, isolated_home: Path, workspace: Path, tmp_path: Path) -> None:
        config = write_config(tmp_path / "config.json", workspace)
        group = Manager(config_path=config, cwd=tmp_path).get_group(project_name="api")
        assert [m.name for m in group.members] == ["api"]

    def test_missing_project(self, isolated_home: Path, workspace: Path, tmp_path: Path) -> None:
        config = write_config(tmp_path / "config.json", workspace)
        with pytest.raises(ProjectMissingError):
            Manager(config_path=config, cwd=tmp_path).get_group(project_name="nope")

    def test_group_without_config(self, isolated_home: Path, tmp_path: Path) -> None:
        with pytest.raises(NoConfigFileError):
            Manager(cwd=tmp_path).get_group("tools")


class TestCwdGroup:
    """Tests for working-directory resolution."""

    def test_union_of_groups_listing_cwd(self, isolated_home: Path, workspace: Path, tmp_path: Path) -> None:
        config = write_config(tmp_path / "config.json", workspace)
        group = Manager(config_path=config, cwd=workspace / "api").get_group()

        assert group.name == "api - virtual"
        assert [m.name for m in group.members] == ["web", "api"]

    def test_default_to_project(self, isolated_home: Path, workspace: Path, tmp_path: Path) -> None:
        config = write_config(tmp_path / "config.json", workspace, defaultToProject=True)
        group = Manager(config_path=config, cwd=workspace / "api").get_group()
        assert [m.path for m in group.members] == [workspace / "api"]

    def test_repository_not_listed(self, isolated_home: Path, workspace: Path, tmp_path: Path) -> None:
        other = tmp_path / "other"
        (other / ".git").mkdir(parents=True)
        config = write_config(tmp_path / "config.json", workspace)
        group = Manager(config_path=config, cwd=other).get_group()
        assert [m.name for m in group.members] == ["other"]

    def test_repository_without_config(self, isolated_home: Path, workspace: Path) -> None:
        group = Manager(cwd=workspace / "web").get_group()
        assert [m.name for m in group.members] == ["web"]

    def test_worktree_checkout_is_a_repository(self, isolated_home: Path, tmp_path: Path) -> None:
        checkout = tmp_path / "api-hotfix"
        (checkout / "src").mkdir(parents=True)
        (checkout / ".git").write_text("gitdir: /elsewhere/.git/worktrees/api-hotfix\n")
        group = Manager(cwd=checkout).get_group()
        assert [m.name for m in group.members] == ["api-hotfix"]

    def test_subdirectories(self, isolated_home: Path, workspace: Path) -> None:
        group = Manager(cwd=workspace).get_group()
        assert group.name == "work - virtual"
        assert [m.name for m in group.members] == ["api", "web"]


class TestInitConfig:
    """Tests for the starter configuration."""

    def test_writes_once(self, isolated_home: Path) -> None:
        manager = Manager()
        path, created = manager.init_config()
        assert created is True
        assert path == isolated_home / CONFIG_FILENAME
        assert "projects" in json.loads(path.read_text())

        path.write_text('{"projects": {}}')
        _, created = manager.init_config()
        assert created is False
        assert path.read_text() == '{"projects": {}}'
