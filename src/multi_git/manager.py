"""
Configuration loading and group resolution.

The :class:`Manager` is the only entry point the CLI talks to: it finds the
JSON configuration, turns its project entries into :class:`ProjectDescriptor`
objects and resolves which :class:`Group` a command acts on.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from .errors import (
    GroupMissingError,
    InvalidConfigError,
    NoConfigFileError,
    ProjectMissingError,
)
from .group import Group, GroupSettings
from .repository import ProjectDescriptor, Repository

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".mg-config.json"
XDG_CONFIG_DIRNAME = "multi-git"

STARTER_CONFIG: dict[str, Any] = {
    "projects": {
        "example": {"name": "example", "path": "~/src/example"},
    },
    "groups": {
        "default": {"name": "default", "members": ["example"]},
    },
    "defaultGroupSettings": {
        "allowEmptyRelease": False,
        "maxWorkers": 8,
        "timeout": 120,
    },
    "defaultToProject": False,
}


# =============================================================================
# Configuration files
# =============================================================================


def config_candidates(cwd: Path | None = None) -> list[Path]:
    """Configuration file locations, highest priority first.

    1. ./.mg-config.json
    2. $XDG_CONFIG_HOME/multi-git/config.json (~/.config by default)
    3. ~/.mg-config.json
    """
    cwd = cwd or Path.cwd()
    xdg_home = os.environ.get("XDG_CONFIG_HOME")
    xdg_root = Path(xdg_home).expanduser() if xdg_home else Path.home() / ".config"
    return [
        cwd / CONFIG_FILENAME,
        xdg_root / XDG_CONFIG_DIRNAME / "config.json",
        Path.home() / CONFIG_FILENAME,
    ]


def resolve_config_file(cwd: Path | None = None) -> Path | None:
    """Return the first candidate that is a non-empty file, if any."""
    for candidate in config_candidates(cwd):
        try:
            if candidate.is_file() and candidate.stat().st_size > 0:
                return candidate
        except OSError:
            continue
    return None


def load_config(path: Path) -> dict[str, Any]:
    """Read a JSON configuration file.

    Raises:
        NoConfigFileError: the file does not exist.
        InvalidConfigError: the file is not a JSON object.
    """
    try:
        content = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise NoConfigFileError(f"Configuration file not found: {path}") from e
    except ValueError as e:
        raise InvalidConfigError(f"Invalid configuration file {path}: {e}") from e
    if not isinstance(content, dict):
        raise InvalidConfigError(f"Invalid configuration file {path}: expected an object")
    return content


def descriptor_from_config(value: Any, key: str | None = None) -> ProjectDescriptor:
    """Normalize one ``projects`` entry.

    Accepts a bare path string, a ``[path, name]`` pair or a
    ``{"path": ..., "name": ...}`` mapping. The entry key is used as the
    name of a bare path.
    """
    if isinstance(value, str):
        return ProjectDescriptor.create(value, key)
    if isinstance(value, (list, tuple)) and value:
        name = value[1] if len(value) > 1 else key
        return ProjectDescriptor.create(value[0], name)
    if isinstance(value, dict) and value.get("path"):
        return ProjectDescriptor.create(value["path"], value.get("name") or key)
    raise InvalidConfigError(f"Invalid project entry {key!r}: {value!r}")


def write_starter_config(path: Path) -> bool:
    """Write :data:`STARTER_CONFIG` to ``path`` unless a file is already there."""
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(STARTER_CONFIG, indent=2) + "\n", encoding="utf-8")
    return True


# =============================================================================
# Manager
# =============================================================================


class Manager:
    """Resolve the group a command runs against."""

    def __init__(
        self,
        config_path: Path | str | None = None,
        cwd: Path | str | None = None,
        sequential: bool = False,
    ):
        self.config_path = Path(config_path).expanduser() if config_path else None
        self.cwd = Path(cwd).expanduser().absolute() if cwd else Path.cwd()
        self.sequential = sequential
        self._config: dict[str, Any] | None = None

    def find_config_file(self) -> Path:
        if self.config_path is not None:
            if not self.config_path.is_file():
                raise NoConfigFileError(f"Configuration file not found: {self.config_path}")
            return self.config_path
        found = resolve_config_file(self.cwd)
        if found is None:
            raise NoConfigFileError()
        return found

    def get_config(self) -> dict[str, Any]:
        """Load the configuration once per manager."""
        if self._config is None:
            path = self.find_config_file()
            logger.debug(f"Using configuration {path}")
            self._config = load_config(path)
        return self._config

    def has_config(self) -> bool:
        try:
            self.get_config()
        except NoConfigFileError:
            return False
        return True

    # -- building blocks -------------------------------------------------------

    def projects(self) -> dict[str, ProjectDescriptor]:
        raw = self.get_config().get("projects") or {}
        if not isinstance(raw, dict):
            raise InvalidConfigError("'projects' must be an object")
        return {key: descriptor_from_config(value, key) for key, value in raw.items()}

    def groups(self) -> dict[str, dict[str, Any]]:
        raw = self.get_config().get("groups") or {}
        if not isinstance(raw, dict):
            raise InvalidConfigError("'groups' must be an object")
        groups = {}
        for key, value in raw.items():
            # A bare list is shorthand for {"members": [...]}
            groups[key] = {"members": value} if isinstance(value, list) else dict(value)
        return groups

    def default_settings(self) -> GroupSettings:
        if not self.has_config():
            return GroupSettings()
        return GroupSettings.from_dict(self.get_config().get("defaultGroupSettings"))

    def _build_group(
        self,
        name: str,
        descriptors: list[ProjectDescriptor],
        settings: GroupSettings,
    ) -> Group:
        members = [Repository(d, timeout=settings.timeout) for d in descriptors]
        return Group(name=name, members=tuple(members), settings=settings, sequential=self.sequential)

    def _member_descriptors(self, member_names: list[str]) -> list[ProjectDescriptor]:
        projects = self.projects()
        descriptors = []
        for member in member_names:
            if member not in projects:
                logger.warning(f"Unknown project '{member}' in group configuration, skipped")
                continue
            descriptors.append(projects[member])
        return descriptors

    # -- resolution ------------------------------------------------------------

    def get_group(self, group_name: str | None = None, project_name: str | None = None) -> Group:
        """Resolve the active group and keep only members that hold a repository."""
        if group_name:
            group = self.get_group_by_name(group_name)
        elif project_name:
            group = self.get_project_group(project_name)
        else:
            group = self.get_cwd_group()
        return self._activate(group)

    def _activate(self, group: Group) -> Group:
        members = []
        for member in group.members:
            if member.has_git():
                member.init_client()
                members.append(member)
            else:
                logger.info(f"[{group.name}] skipping {member.path}: not a git repository")
        group.members = tuple(members)
        logger.info(f"Resolved group '{group.name}' with {len(members)} repositories")
        return group

    def get_group_by_name(self, group_name: str) -> Group:
        groups = self.groups()
        if group_name not in groups:
            raise GroupMissingError(f"Requested group is missing: {group_name}")
        entry = groups[group_name]
        settings = self.default_settings().merged(entry.get("settings"))
        return self._build_group(
            entry.get("name") or group_name,
            self._member_descriptors(list(entry.get("members") or [])),
            settings,
        )

    def get_project_group(self, project_name: str) -> Group:
        projects = self.projects()
        if project_name not in projects:
            raise ProjectMissingError(f"Requested project is missing: {project_name}")
        return self._build_group(project_name, [projects[project_name]], self.default_settings())

    def get_cwd_group(self) -> Group:
        """Group implied by the working directory.

        Inside a repository: the union of every configured group listing it,
        or the repository alone when ``defaultToProject`` is set, no
        configuration exists or no group lists it. Outside a repository: its
        immediate subdirectories.
        """
        cwd = ProjectDescriptor.create(self.cwd)
        virtual_name = f"{cwd.name} - virtual"

        if not Repository(cwd).has_git():
            subdirs = sorted(p for p in cwd.path.iterdir() if p.is_dir())
            return self._build_group(
                virtual_name,
                [ProjectDescriptor.create(p) for p in subdirs],
                self.default_settings(),
            )

        if not self.has_config() or self.get_config().get("defaultToProject"):
            return self._build_group(cwd.name, [cwd], self.default_settings())

        projects = self.projects()
        own_keys = {
            key
            for key, descriptor in projects.items()
            if descriptor.path == cwd.path or key == cwd.name
        }
        member_names: list[str] = []
        for entry in self.groups().values():
            members = list(entry.get("members") or [])
            if own_keys.intersection(members):
                member_names.extend(m for m in members if m not in member_names)

        if not member_names:
            return self._build_group(cwd.name, [cwd], self.default_settings())
        return self._build_group(virtual_name, self._member_descriptors(member_names), self.default_settings())

    def init_config(self, path: Path | None = None) -> tuple[Path, bool]:
        """Create a starter configuration in the home directory if there is none."""
        target = path or Path.home() / CONFIG_FILENAME
        created = write_starter_config(target)
        if created:
            logger.info(f"Wrote starter configuration to {target}")
        return target, created
