"""
git-flow branch lifecycle for one repository.

The lifecycle state of a flow branch is never stored: it is read from the
branch list every time it is needed, because start/publish/finish change it
as a side effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from .errors import (
    DirtyRepositoryError,
    FlowStateError,
    InvalidFeatureBranchError,
    InvalidSupportBranchError,
)
from .git import BranchSummary
from .repository import FlowKind, Repository

logger = logging.getLogger(__name__)


class FlowState(StrEnum):
    NO_ACTIVE = "no-active"
    STARTED = "started"
    PUBLISHED = "published"
    FINISHED = "finished"


@dataclass
class FlowResult:
    """Payload of a successful lifecycle transition."""

    kind: FlowKind
    action: str
    branch: str
    state: FlowState
    version: str = ""
    output: str = ""
    skipped: bool = False
    reason: str = ""

    @classmethod
    def skip(cls, kind: FlowKind, reason: str) -> FlowResult:
        return cls(kind, "skip", "", FlowState.NO_ACTIVE, skipped=True, reason=reason)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "action": self.action,
            "branch": self.branch,
            "state": self.state.value,
            "version": self.version,
            "skipped": self.skipped,
            "reason": self.reason,
        }


class BranchLifecycle:
    """start / publish / finish for one flow kind in one repository."""

    def __init__(self, repository: Repository, kind: FlowKind):
        self.repository = repository
        self.kind = kind

    @property
    def prefix(self) -> str:
        return self.repository.gitflow.prefix(self.kind)

    def branch_name(self, name: str) -> str:
        return name if name.startswith(self.prefix) else self.prefix + name

    def short_name(self, branch: str) -> str:
        return branch[len(self.prefix) :] if branch.startswith(self.prefix) else branch

    def state(self, name: str, summary: BranchSummary | None = None) -> FlowState:
        """Derive the lifecycle state of ``<prefix><name>`` from the branch list."""
        branch = self.branch_name(name)
        summary = summary or self.repository.branch_verbose()
        local = summary.get(branch)
        remote_copy = any(
            b.is_remote and b.name.endswith("/" + branch) for b in summary.branches
        )
        if local is not None:
            if local.upstream or remote_copy:
                return FlowState.PUBLISHED
            return FlowState.STARTED
        if remote_copy:
            return FlowState.PUBLISHED
        return FlowState.NO_ACTIVE

    def resolve_name(self, name: str | None = None) -> str:
        """Short name of the branch to act on.

        Falls back to the active release branch for releases, and to the
        current checkout for the other kinds.
        """
        if name:
            return self.short_name(name)
        if self.kind == FlowKind.RELEASE:
            release = self.repository.get_release_branch()
            return self.short_name(release.local_name or release.name)
        current = self.repository.status().current
        if current.startswith(self.prefix):
            return self.short_name(current)
        if self.kind == FlowKind.FEATURE:
            raise InvalidFeatureBranchError()
        if self.kind == FlowKind.SUPPORT:
            raise InvalidSupportBranchError()
        raise FlowStateError(f"There is no active {self.kind} branch")

    def _require(self, name: str, allowed: tuple[FlowState, ...], action: str) -> FlowState:
        state = self.state(name)
        if state not in allowed:
            raise FlowStateError(
                f"Cannot {action} {self.kind} '{name}': branch is {state.value}"
            )
        return state

    def start(self, name: str, base: str | None = None) -> FlowResult:
        """Create ``<prefix><name>`` off ``base`` (develop by default)."""
        if not name:
            raise FlowStateError(f"A {self.kind} name is required")
        name = self.short_name(name)
        if not self.repository.detailed_status().is_clean:
            raise DirtyRepositoryError()
        self._require(name, (FlowState.NO_ACTIVE,), "start")

        logger.info(f"[{self.repository.name}] {self.kind} start {name}")
        output = self.repository.flow(self.kind, "start", name, base)
        return FlowResult(self.kind, "start", self.branch_name(name), FlowState.STARTED, output=output)

    def publish(self, name: str | None = None) -> FlowResult:
        """Push the flow branch to its remote."""
        name = self.resolve_name(name)
        self._require(name, (FlowState.STARTED,), "publish")

        logger.info(f"[{self.repository.name}] {self.kind} publish {name}")
        if self.kind == FlowKind.SUPPORT:
            output = self.repository.support_publish(name)
        else:
            output = self.repository.flow(self.kind, "publish", name)
        return FlowResult(self.kind, "publish", self.branch_name(name), FlowState.PUBLISHED, output=output)

    def finish(self, name: str | None = None) -> FlowResult:
        """Merge the flow branch back and delete it."""
        if self.kind == FlowKind.SUPPORT:
            raise FlowStateError("Support branches cannot be finished")
        name = self.resolve_name(name)
        self._require(name, (FlowState.STARTED, FlowState.PUBLISHED), "finish")

        logger.info(f"[{self.repository.name}] {self.kind} finish {name}")
        finishers = {
            FlowKind.FEATURE: self.repository.feature_finish,
            FlowKind.RELEASE: self.repository.release_finish,
            FlowKind.HOTFIX: self.repository.hotfix_finish,
            FlowKind.BUGFIX: self.repository.bugfix_finish,
        }
        output = finishers[self.kind](name)
        return FlowResult(self.kind, "finish", self.branch_name(name), FlowState.FINISHED, output=output)
