"""
Single-repository handle.

:class:`Repository` is the only place that knows how a high-level intent
(status, fetch, release start, ...) maps onto git invocations. Every
primitive is one git round trip and raises on failure; callers decide what
to do with the error.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from .errors import (
    ActiveReleaseError,
    AheadRepositoryError,
    BehindRepositoryError,
    DirtyRepositoryError,
    InvalidSupportBranchError,
    MultiGitError,
    MultipleActiveReleaseError,
    NoActiveReleaseError,
)
from .git import (
    DEFAULT_TIMEOUT,
    BranchInfo,
    BranchSummary,
    DiffSummary,
    GitClient,
    PullSummary,
    StatusSummary,
    parse_branches,
    parse_merge_output,
    parse_numstat,
    parse_status,
)
from .version import NO_VERSION, read_version, write_version

logger = logging.getLogger(__name__)

# Keeps git from opening an editor for merge commits made by `git flow ... finish`.
MERGE_NO_EDIT_ENV = {"GIT_MERGE_AUTOEDIT": "no"}
FINISH_MESSAGE = "Finish"
DEFAULT_REMOTE = "origin"


# =============================================================================
# Domain Models
# =============================================================================


class FlowKind(StrEnum):
    """git-flow branch categories."""

    FEATURE = "feature"
    RELEASE = "release"
    HOTFIX = "hotfix"
    BUGFIX = "bugfix"
    SUPPORT = "support"


class WorkingTreeStatus(StrEnum):
    """Working tree status."""

    CLEAN = "clean"
    DIRTY = "dirty"


GITFLOW_DEFAULTS: dict[str, dict[str, str]] = {
    "branch": {
        "master": "master",
        "develop": "develop",
    },
    "prefix": {
        "feature": "feature/",
        "release": "release/",
        "hotfix": "hotfix/",
        "bugfix": "bugfix/",
        "support": "support/",
        "versiontag": "",
    },
}


@dataclass(frozen=True)
class GitFlowSettings:
    """Branch names and prefixes read from ``gitflow.*`` configuration."""

    master: str = "master"
    develop: str = "develop"
    prefixes: dict[str, str] = field(default_factory=lambda: dict(GITFLOW_DEFAULTS["prefix"]))

    def prefix(self, kind: FlowKind | str) -> str:
        return self.prefixes.get(str(kind), f"{kind}/")

    @property
    def version_tag(self) -> str:
        return self.prefixes.get("versiontag", "")

    @classmethod
    def from_config(cls, config: dict) -> GitFlowSettings:
        gitflow = config.get("gitflow", {})
        branch = gitflow.get("branch", {})
        return cls(
            master=branch.get("master", "master"),
            develop=branch.get("develop", "develop"),
            prefixes=dict(gitflow.get("prefix", {})),
        )


@dataclass(frozen=True)
class ProjectDescriptor:
    """Where a repository lives and what to call it."""

    path: Path
    name: str

    @classmethod
    def create(cls, path: str | Path, name: str | None = None) -> ProjectDescriptor:
        resolved = Path(path).expanduser().absolute()
        return cls(path=resolved, name=name or resolved.name)


@dataclass
class RepositoryStatus:
    """Status of one repository plus its manifest version."""

    path: Path
    name: str
    status: StatusSummary
    version: str = NO_VERSION

    @property
    def edit_count(self) -> int:
        s = self.status
        return (
            len(s.not_added)
            + len(s.deleted)
            + len(s.modified)
            + len(s.created)
            + len(s.renamed)
            + len(s.conflicted)
        )

    @property
    def working_tree_status(self) -> WorkingTreeStatus:
        if self.edit_count == 0:
            return WorkingTreeStatus.CLEAN
        return WorkingTreeStatus.DIRTY

    @property
    def text(self) -> str:
        return self.working_tree_status.value

    @property
    def is_clean(self) -> bool:
        return self.working_tree_status == WorkingTreeStatus.CLEAN

    @property
    def current(self) -> str:
        return self.status.current

    @property
    def tracking(self) -> str:
        return self.status.tracking

    @property
    def ahead(self) -> int:
        return self.status.ahead

    @property
    def behind(self) -> int:
        return self.status.behind

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "version": self.version,
            "status": self.text,
            "edit_count": self.edit_count,
            "branch": self.current,
            "upstream": self.tracking,
            "ahead": self.ahead,
            "behind": self.behind,
        }


@dataclass
class RevisionCount:
    left: str
    right: str
    left_count: int
    right_count: int

    @property
    def diff(self) -> int:
        return self.right_count - self.left_count


def flatten_config(raw: str) -> dict[str, Any]:
    """Turn ``git config --list`` output into a nested mapping.

    ``section.sub.section.key=value`` becomes
    ``{"section": {"sub.section": {"key": "value"}}}``: the first and last
    segments are the section and variable, anything between them is the
    subsection (which may itself contain dots, e.g. branch names).
    """
    config: dict[str, Any] = {}
    for line in raw.splitlines():
        if not line.strip():
            continue
        key, sep, value = line.partition("=")
        if not sep:
            # Valueless boolean entries are implicitly true
            value = "true"
        segments = key.split(".")
        if len(segments) > 2:
            segments = [segments[0], ".".join(segments[1:-1]), segments[-1]]

        node = config
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = node[segment] = {}
            node = child
        if not isinstance(node.get(segments[-1]), dict):
            node[segments[-1]] = value
    return config


def apply_gitflow_defaults(config: dict[str, Any]) -> dict[str, Any]:
    """Fill in any git-flow branch or prefix setting the repository lacks."""
    gitflow = config.setdefault("gitflow", {})
    for section, defaults in GITFLOW_DEFAULTS.items():
        values = gitflow.setdefault(section, {})
        for key, default in defaults.items():
            values.setdefault(key, default)
    return config


# =============================================================================
# Repository
# =============================================================================


class Repository:
    """High-level interface for a single git working directory."""

    def __init__(self, descriptor: ProjectDescriptor, timeout: float | None = DEFAULT_TIMEOUT):
        self.path = descriptor.path
        self.name = descriptor.name
        self.timeout = timeout
        self.git: GitClient | None = None
        self._has_git: bool | None = None
        self._config: dict[str, Any] | None = None
        self._gitflow: GitFlowSettings | None = None

    @classmethod
    def from_path(cls, path: str | Path, name: str | None = None, **kwargs) -> Repository:
        return cls(ProjectDescriptor.create(path, name), **kwargs)

    def __repr__(self) -> str:
        return f"Repository(name={self.name!r}, path={str(self.path)!r})"

    # -- setup ---------------------------------------------------------------

    def has_git(self) -> bool:
        """Check whether the directory holds git metadata. Memoized."""
        if self._has_git is None:
            try:
                self._has_git = (self.path / ".git").exists()
            except OSError:
                self._has_git = False
        return self._has_git

    def init_client(self) -> GitClient:
        """Bind the git client to this directory. Idempotent."""
        if self.git is None:
            self.git = GitClient(self.path, timeout=self.timeout)
        return self.git

    def refresh(self) -> None:
        """Drop cached configuration so the next call reads it from git again."""
        self._has_git = None
        self._config = None
        self._gitflow = None

    def _run(self, *args: str, env: dict[str, str] | None = None) -> str:
        client = self.git or self.init_client()
        return client.run(*args, env=env)

    # -- primitives ------------------------------------------------------------

    def raw(self, args: list[str] | tuple[str, ...], env: dict[str, str] | None = None) -> str:
        return self._run(*args, env=env)

    def status(self) -> StatusSummary:
        return parse_status(self._run("status", "--porcelain=v2", "--branch"))

    def fetch(self, remote: str | None = None, branch: str | None = None) -> str:
        args = ["fetch"]
        if remote:
            args.append(remote)
            if branch:
                args.append(branch)
        return self._run(*args)

    def checkout(self, ref: str) -> str:
        return self._run("checkout", ref)

    def commit(self, message: str) -> str:
        return self._run("commit", "-m", message)

    def branch(self, options: list[str] | tuple[str, ...] = ()) -> BranchSummary:
        return parse_branches(self._run("branch", "-v", *options))

    def create_branch(self, name: str, start_point: str | None = None) -> str:
        args = ["checkout", "-b", name]
        if start_point:
            args.append(start_point)
        return self._run(*args)

    def delete_branch(self, name: str) -> str:
        return self._run("branch", "-d", name)

    def push(self, remote: str | None = None, branch: str | None = None) -> str:
        args = ["push"]
        if remote:
            args.append(remote)
            if branch:
                args.append(branch)
        return self._run(*args)

    def push_tags(self, remote: str | None = None) -> str:
        args = ["push"]
        if remote:
            args.append(remote)
        args.append("--tags")
        return self._run(*args)

    def pull(
        self,
        remote: str | None = None,
        branch: str | None = None,
        options: list[str] | tuple[str, ...] = (),
    ) -> PullSummary:
        args = ["pull", *options]
        if remote:
            args.append(remote)
            if branch:
                args.append(branch)
        return parse_merge_output(self._run(*args))

    def merge_from_to(
        self,
        source: str,
        target: str | None = None,
        options: list[str] | tuple[str, ...] = (),
    ) -> PullSummary:
        args = ["merge", *options, source]
        if target:
            args.append(target)
        return parse_merge_output(self._run(*args))

    def tag(self, name: str, message: str) -> str:
        return self._run("tag", "-a", "-m", message, name)

    def add_files(self, files: list[str] | tuple[str, ...] | str) -> list[str]:
        files = [files] if isinstance(files, str) else list(files)
        self._run("add", *files)
        return files

    def reset(self, options: list[str] | tuple[str, ...] = ()) -> str:
        return self._run("reset", *options)

    def stash(self, options: list[str] | tuple[str, ...] = ()) -> str:
        return self._run("stash", *options)

    def diff_summary(self, options: list[str] | tuple[str, ...] = ()) -> DiffSummary:
        return parse_numstat(self._run("diff", "--numstat", *options))

    # -- composites ------------------------------------------------------------

    def detailed_status(self) -> RepositoryStatus:
        """Status plus manifest version, classified clean or dirty."""
        return RepositoryStatus(
            path=self.path,
            name=self.name,
            status=self.status(),
            version=self.get_version(),
        )

    def config(self) -> dict[str, Any]:
        """Nested git configuration with git-flow defaults. Cached until :meth:`refresh`."""
        if self._config is None:
            self._config = apply_gitflow_defaults(flatten_config(self._run("config", "--list")))
        return self._config

    @property
    def gitflow(self) -> GitFlowSettings:
        if self._gitflow is None:
            self._gitflow = GitFlowSettings.from_config(self.config())
        return self._gitflow

    def get_version(self) -> str:
        return read_version(self.path)

    def set_version(self, version: str) -> list[str]:
        return write_version(self.path, version)

    def default_remote(self) -> str:
        """Remote tracked by the git-flow master branch, ``origin`` when unset."""
        return self.remote_for(self.gitflow.master)

    def remote_for(self, branch: str) -> str:
        entry = self.config().get("branch", {}).get(branch, {})
        if isinstance(entry, dict):
            return entry.get("remote") or DEFAULT_REMOTE
        return DEFAULT_REMOTE

    def branch_verbose(self) -> BranchSummary:
        """All local and remote branches, annotated with upstream and release info."""
        config = self.config()
        summary = parse_branches(self._run("branch", "-a", "-vv"))
        remotes = sorted(config.get("remote", {}).keys(), key=len, reverse=True)
        release_prefix = self.gitflow.prefix(FlowKind.RELEASE)

        for branch in summary.branches:
            if branch.is_remote:
                local_name = _strip_remote(branch.name, remotes)
                if local_name and release_prefix and local_name.startswith(release_prefix):
                    branch.is_remote_release = True
                    branch.local_name = local_name
            elif branch.label.startswith("[") and "]" in branch.label:
                upstream = branch.label[1 : branch.label.index("]")].split(":", 1)[0]
                remote = upstream.split("/", 1)[0]
                if remote in remotes:
                    branch.upstream = upstream
                    branch.remote = remote
        return summary

    def get_release_branch(self) -> BranchInfo:
        """Find the single active release branch.

        Local branches win over remote-tracking ones.

        Raises:
            MultipleActiveReleaseError: more than one local, or more than one
                remote-only, release branch.
            NoActiveReleaseError: no release branch at all.
        """
        prefix = self.gitflow.prefix(FlowKind.RELEASE)
        summary = self.branch_verbose()

        local = [b for b in summary.branches if not b.is_remote and b.name.startswith(prefix)]
        if len(local) > 1:
            raise MultipleActiveReleaseError()
        if local:
            return local[0]

        remote: dict[str, BranchInfo] = {}
        for branch in summary.branches:
            if branch.is_remote_release:
                remote.setdefault(branch.local_name, branch)
        if len(remote) > 1:
            raise MultipleActiveReleaseError()
        if remote:
            return next(iter(remote.values()))
        raise NoActiveReleaseError()

    def ensure_no_active_release(self) -> bool:
        try:
            self.get_release_branch()
        except NoActiveReleaseError:
            return True
        raise ActiveReleaseError()

    def ensure_clean_state(self) -> bool:
        status = self.detailed_status()
        if status.edit_count != 0:
            raise DirtyRepositoryError()
        if status.ahead != 0:
            raise AheadRepositoryError()
        if status.behind != 0:
            raise BehindRepositoryError()
        return True

    def count_revisions(self, left: str, right: str) -> RevisionCount:
        """Count commits only on ``left`` and only on ``right``."""
        output = self._run("rev-list", "--left-right", "--count", f"{left}...{right}")
        match = re.match(r"^(\d+)\s+(\d+)", output.strip())
        if match is None:
            raise MultiGitError(f"invalid comparison: {left}...{right}")
        return RevisionCount(left, right, int(match.group(1)), int(match.group(2)))

    def is_next_release_worth_creating(self, base: str | None = None) -> bool:
        """True if ``base`` (develop by default) has commits and file changes not on master."""
        left = self.gitflow.master
        right = base or self.gitflow.develop
        revisions = self.count_revisions(left, right)
        summary = self.diff_summary([left, right])
        return revisions.diff > 0 and len(summary.files) > 0

    def push_all_defaults(self) -> list[str]:
        """Push master, develop and tags to their remotes."""
        pushed = []
        for branch in (self.gitflow.master, self.gitflow.develop):
            self.checkout(branch)
            self.push(self.remote_for(branch), branch)
            pushed.append(branch)
        self.push_tags(self.default_remote())
        return pushed

    # -- git flow --------------------------------------------------------------

    def flow(
        self,
        kind: FlowKind | str,
        action: str,
        name: str | None = None,
        base: str | None = None,
        extras: list[str] | tuple[str, ...] = (),
        env: dict[str, str] | None = None,
    ) -> str:
        """Run ``git flow <kind> <action> [name [base]] [extras]``."""
        args = ["flow", str(kind), action]
        if name:
            args.append(name)
            if base:
                args.append(base)
        args.extend(extras)
        return self._run(*args, env=env)

    def feature_start(self, name: str, base: str | None = None) -> str:
        return self.flow(FlowKind.FEATURE, "start", name, base)

    def feature_publish(self, name: str | None = None) -> str:
        return self.flow(FlowKind.FEATURE, "publish", name)

    def feature_finish(self, name: str | None = None) -> str:
        return self.flow(FlowKind.FEATURE, "finish", name, env=MERGE_NO_EDIT_ENV)

    def release_start(self, name: str, base: str | None = None) -> str:
        return self.flow(FlowKind.RELEASE, "start", name, base)

    def release_publish(self, name: str | None = None) -> str:
        return self.flow(FlowKind.RELEASE, "publish", name)

    def release_finish(self, name: str | None = None, extras: list[str] | tuple[str, ...] = ()) -> str:
        return self.flow(
            FlowKind.RELEASE,
            "finish",
            name,
            extras=["-m", FINISH_MESSAGE, *extras],
            env=MERGE_NO_EDIT_ENV,
        )

    def hotfix_start(self, name: str, base: str | None = None) -> str:
        return self.flow(FlowKind.HOTFIX, "start", name, base)

    def hotfix_publish(self, name: str | None = None) -> str:
        return self.flow(FlowKind.HOTFIX, "publish", name)

    def hotfix_finish(self, name: str | None = None) -> str:
        return self.flow(
            FlowKind.HOTFIX, "finish", name, extras=["-m", FINISH_MESSAGE], env=MERGE_NO_EDIT_ENV
        )

    def bugfix_start(self, name: str, base: str | None = None) -> str:
        return self.flow(FlowKind.BUGFIX, "start", name, base)

    def bugfix_publish(self, name: str | None = None) -> str:
        return self.flow(FlowKind.BUGFIX, "publish", name)

    def bugfix_finish(self, name: str | None = None) -> str:
        return self.flow(
            FlowKind.BUGFIX, "finish", name, extras=["-m", FINISH_MESSAGE], env=MERGE_NO_EDIT_ENV
        )

    def support_start(self, name: str, base: str | None = None) -> str:
        return self.flow(FlowKind.SUPPORT, "start", name, base)

    def support_publish(self, name: str | None = None) -> str:
        """Push a support branch to the default remote.

        The branch is ``<support prefix><name>`` or, without a name, the
        current checkout when it carries the support prefix.
        """
        prefix = self.gitflow.prefix(FlowKind.SUPPORT)
        if name:
            branch = prefix + name
        else:
            current = self.status().current
            if not current.startswith(prefix):
                raise InvalidSupportBranchError()
            branch = current
        return self.push(self.default_remote(), branch)


def _strip_remote(name: str, remotes: list[str]) -> str:
    """``remotes/origin/release/1.0`` -> ``release/1.0``."""
    rest = name[len("remotes/") :]
    for remote in remotes:
        if rest.startswith(remote + "/"):
            return rest[len(remote) + 1 :]
    if not remotes and "/" in rest:
        return rest.split("/", 1)[1]
    return ""
