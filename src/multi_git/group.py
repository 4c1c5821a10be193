"""
Group fan-out.

A :class:`Group` runs one operation on every member concurrently and always
returns one :class:`OperationResult` per member, in member order. A member's
failure is recorded, never raised. Multi-step composites that must stop before
mutating anything return :class:`Halted` instead of :class:`Proceed`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ChainBreakerError, InvalidConfigError, NoManifestError
from .flow import BranchLifecycle, FlowResult
from .git import DEFAULT_TIMEOUT, PullSummary
from .repository import FlowKind, Repository
from .version import next_version

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================


@dataclass
class OperationResult:
    """Outcome of one operation on one member."""

    parent: Repository
    operation: str
    success: bool
    payload: Any = None
    error: BaseException | None = None

    @classmethod
    def ok(cls, parent: Repository, operation: str, payload: Any = None) -> OperationResult:
        return cls(parent=parent, operation=operation, success=True, payload=payload)

    @classmethod
    def failed(cls, parent: Repository, operation: str, error: BaseException) -> OperationResult:
        return cls(parent=parent, operation=operation, success=False, error=error)

    @property
    def name(self) -> str:
        return self.parent.name

    @property
    def path(self) -> Path:
        return self.parent.path

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error) or type(self.error).__name__
        return ""

    def to_dict(self) -> dict:
        payload = self.payload
        if hasattr(payload, "to_dict"):
            payload = payload.to_dict()
        elif isinstance(payload, str):
            payload = payload.strip()
        return {
            "path": str(self.path),
            "name": self.name,
            "operation": self.operation,
            "success": self.success,
            "payload": payload if self.success else None,
            "error": self.message,
            "error_code": getattr(self.error, "code", None) if self.error else None,
        }


@dataclass
class Proceed:
    """A composite operation ran to the end."""

    results: list[OperationResult]
    halted = False

    def unwrap(self) -> list[OperationResult]:
        return self.results


@dataclass
class Halted:
    """A composite operation stopped at a group-wide precondition."""

    results: list[OperationResult]
    reason: str = ""
    halted = True

    def unwrap(self) -> list[OperationResult]:
        raise ChainBreakerError(self.results, self.reason or None)


Outcome = Proceed | Halted


@dataclass
class GroupSettings:
    allow_empty_release: bool = False
    max_workers: int = 8
    timeout: float | None = DEFAULT_TIMEOUT

    @classmethod
    def from_dict(cls, data: dict | None) -> GroupSettings:
        """Build settings from camelCase config keys.

        Raises:
            InvalidConfigError: ``maxWorkers`` is not a positive integer or
                ``timeout`` is neither a positive number nor null.
        """
        data = data or {}
        max_workers = data.get("maxWorkers", 8)
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
            raise InvalidConfigError(f"'maxWorkers' must be a positive integer, got {max_workers!r}")
        timeout = data.get("timeout", DEFAULT_TIMEOUT)
        if timeout is not None and (
            isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0
        ):
            raise InvalidConfigError(f"'timeout' must be a positive number or null, got {timeout!r}")
        return cls(
            allow_empty_release=bool(data.get("allowEmptyRelease", False)),
            max_workers=max_workers,
            timeout=timeout,
        )

    def merged(self, data: dict | None) -> GroupSettings:
        """Settings with ``data`` (camelCase config keys) overriding these."""
        base = {
            "allowEmptyRelease": self.allow_empty_release,
            "maxWorkers": self.max_workers,
            "timeout": self.timeout,
        }
        base.update(data or {})
        return GroupSettings.from_dict(base)


# =============================================================================
# Group
# =============================================================================


@dataclass
class Group:
    """A named, ordered, fixed set of repositories."""

    name: str
    members: tuple[Repository, ...] = ()
    settings: GroupSettings = field(default_factory=GroupSettings)
    sequential: bool = False

    def __post_init__(self):
        self.members = tuple(self.members)

    def __len__(self) -> int:
        return len(self.members)

    def _execute_parallel(
        self,
        operation: Callable[[Repository], Any],
        name: str,
        members: Sequence[Repository] | None = None,
    ) -> list[OperationResult]:
        """Run ``operation`` on each member and wrap every outcome, in member order."""
        members = self.members if members is None else members

        def guarded(member: Repository) -> OperationResult:
            try:
                return OperationResult.ok(member, name, operation(member))
            except Exception as e:
                logger.debug(f"[{member.name}] {name} failed: {e}")
                return OperationResult.failed(member, name, e)

        if self.sequential or len(members) <= 1:
            return [guarded(member) for member in members]

        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            futures = [executor.submit(guarded, member) for member in members]
            return [future.result() for future in futures]

    # -- plain fan-out ---------------------------------------------------------

    def status(self) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.status(), "status")

    def detailed_status(self) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.detailed_status(), "status")

    def fetch(self, remote: str | None = None, branch: str | None = None) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.fetch(remote, branch), "fetch")

    def checkout(self, ref: str) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.checkout(ref), "checkout")

    def commit(self, message: str) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.commit(message), "commit")

    def branch(self, options: Sequence[str] = ()) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.branch(options), "branch")

    def create_branch(self, name: str, start_point: str | None = None) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.create_branch(name, start_point), "branch")

    def delete_branch(self, name: str) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.delete_branch(name), "branch")

    def push(self, remote: str | None = None, branch: str | None = None) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.push(remote, branch), "push")

    def push_tags(self, remote: str | None = None) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.push_tags(remote), "push")

    def merge(
        self, source: str, target: str | None = None, options: Sequence[str] = ()
    ) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.merge_from_to(source, target, options), "merge")

    def tag(self, name: str, message: str) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.tag(name, message), "tag")

    def add_files(self, files: Sequence[str]) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.add_files(files), "add")

    def unstage_files(self, files: Sequence[str]) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.reset(["HEAD", "--", *files]), "unstage")

    def stash(self, options: Sequence[str] = ()) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.stash(options), "stash")

    def push_all_defaults(self) -> list[OperationResult]:
        return self._execute_parallel(lambda repo: repo.push_all_defaults(), "push")

    # -- composites ------------------------------------------------------------

    def pull(self, remote: str | None = None, branch: str | None = None) -> list[OperationResult]:
        """Fetch every member, then merge the ones that are clean and behind.

        Status is read after the fetch so ahead/behind always compares with
        the freshly fetched upstream. Dirty and up-to-date members are
        reported as skipped successes.
        """
        fetched = self.fetch(remote, branch)
        results: dict[int, OperationResult] = {
            i: r for i, r in enumerate(fetched) if not r.success
        }
        fetched_ok = [i for i, r in enumerate(fetched) if r.success]

        def inspect(repo: Repository) -> tuple[bool, str, int, int]:
            status = repo.detailed_status()
            if remote and branch:
                counts = repo.count_revisions("HEAD", f"{remote}/{branch}")
                return status.is_clean, f"{remote}/{branch}", counts.left_count, counts.right_count
            return status.is_clean, status.tracking, status.ahead, status.behind

        inspected = self._execute_parallel(
            inspect, "pull", [self.members[i] for i in fetched_ok]
        )

        to_merge: list[tuple[int, str, list[str]]] = []
        for i, inspect_result in zip(fetched_ok, inspected):
            if not inspect_result.success:
                results[i] = inspect_result
                continue
            is_clean, source, ahead, behind = inspect_result.payload
            if not is_clean:
                results[i] = OperationResult.ok(self.members[i], "pull", PullSummary.skip("dirty"))
            elif behind <= 0 or not source:
                results[i] = OperationResult.ok(self.members[i], "pull", PullSummary.skip("up to date"))
            else:
                options = ["--ff-only"] if ahead == 0 else []
                to_merge.append((i, source, options))

        merge_plan = {self.members[i].path: (source, options) for i, source, options in to_merge}
        merged = self._execute_parallel(
            lambda repo: repo.merge_from_to(merge_plan[repo.path][0], options=merge_plan[repo.path][1]),
            "pull",
            [self.members[i] for i, _, _ in to_merge],
        )
        for (i, _, _), merge_result in zip(to_merge, merged):
            results[i] = merge_result

        return [results[i] for i in range(len(self.members))]

    def ensure_no_active_release(self) -> Outcome:
        """Check every member; halt if any has (or fails to report) a release."""
        results = self._execute_parallel(
            lambda repo: repo.ensure_no_active_release(), "ensure-no-active-release"
        )
        if any(not r.success for r in results):
            return Halted(results, "A release is already active")
        return Proceed(results)

    def ensure_clean_state(self) -> Outcome:
        results = self._execute_parallel(lambda repo: repo.ensure_clean_state(), "ensure-clean")
        if any(not r.success for r in results):
            return Halted(results, "Some repositories are not in sync with their remote")
        return Proceed(results)

    # -- git flow --------------------------------------------------------------

    def flow_start(self, kind: FlowKind, name: str, base: str | None = None) -> list[OperationResult]:
        return self._execute_parallel(
            lambda repo: BranchLifecycle(repo, kind).start(name, base), f"{kind} start"
        )

    def flow_publish(self, kind: FlowKind, name: str | None = None) -> list[OperationResult]:
        return self._execute_parallel(
            lambda repo: BranchLifecycle(repo, kind).publish(name), f"{kind} publish"
        )

    def flow_finish(self, kind: FlowKind, name: str | None = None) -> list[OperationResult]:
        return self._execute_parallel(
            lambda repo: BranchLifecycle(repo, kind).finish(name), f"{kind} finish"
        )

    def feature_start(self, name: str, base: str | None = None) -> list[OperationResult]:
        return self.flow_start(FlowKind.FEATURE, name, base)

    def feature_publish(self, name: str | None = None) -> list[OperationResult]:
        return self.flow_publish(FlowKind.FEATURE, name)

    def feature_finish(self, name: str | None = None) -> list[OperationResult]:
        return self.flow_finish(FlowKind.FEATURE, name)

    def hotfix_start(self, name: str, base: str | None = None) -> list[OperationResult]:
        return self.flow_start(FlowKind.HOTFIX, name, base)

    def hotfix_publish(self, name: str | None = None) -> list[OperationResult]:
        return self.flow_publish(FlowKind.HOTFIX, name)

    def hotfix_finish(self, name: str | None = None) -> list[OperationResult]:
        return self.flow_finish(FlowKind.HOTFIX, name)

    def bugfix_start(self, name: str, base: str | None = None) -> list[OperationResult]:
        return self.flow_start(FlowKind.BUGFIX, name, base)

    def bugfix_publish(self, name: str | None = None) -> list[OperationResult]:
        return self.flow_publish(FlowKind.BUGFIX, name)

    def bugfix_finish(self, name: str | None = None) -> list[OperationResult]:
        return self.flow_finish(FlowKind.BUGFIX, name)

    def support_start(self, name: str, base: str | None = None) -> list[OperationResult]:
        return self.flow_start(FlowKind.SUPPORT, name, base)

    def support_publish(self, name: str | None = None) -> list[OperationResult]:
        return self.flow_publish(FlowKind.SUPPORT, name)

    def release_start(self, version: str = "patch", base: str | None = None) -> Outcome:
        """Start a release on every member that has something to release.

        ``version`` is a bump keyword applied to each member's own manifest
        version, or a literal version used as is.
        """
        check = self.ensure_no_active_release()
        if check.halted:
            logger.info(f"[{self.name}] release start halted: {check.reason}")
            return check

        candidates = list(self.members)
        skipped: dict[int, OperationResult] = {}
        if not self.settings.allow_empty_release:
            worth = self._execute_parallel(
                lambda repo: repo.is_next_release_worth_creating(base), "release start"
            )
            candidates = []
            for i, result in enumerate(worth):
                if not result.success:
                    skipped[i] = result
                elif not result.payload:
                    skipped[i] = OperationResult.ok(
                        self.members[i],
                        "release start",
                        FlowResult.skip(FlowKind.RELEASE, "nothing to release"),
                    )
                else:
                    candidates.append(self.members[i])

        started = iter(
            self._execute_parallel(
                lambda repo: _start_release(repo, version, base), "release start", candidates
            )
        )
        return Proceed([skipped[i] if i in skipped else next(started) for i in range(len(self.members))])

    def release_publish(self, name: str | None = None) -> list[OperationResult]:
        return self.flow_publish(FlowKind.RELEASE, name)

    def release_finish(self, name: str | None = None, push: bool = False) -> Outcome:
        """Finish the active release everywhere, optionally pushing master, develop and tags."""
        check = self.ensure_clean_state()
        if check.halted:
            logger.info(f"[{self.name}] release finish halted: {check.reason}")
            return check

        def finish(repo: Repository) -> FlowResult:
            result = BranchLifecycle(repo, FlowKind.RELEASE).finish(name)
            if push:
                repo.push_all_defaults()
            return result

        return Proceed(self._execute_parallel(finish, "release finish"))


def _start_release(repo: Repository, target: str, base: str | None) -> FlowResult:
    """Bump the version, start the release branch and commit the new version."""
    version = next_version(repo.get_version(), target)
    result = BranchLifecycle(repo, FlowKind.RELEASE).start(version, base)
    result.version = version
    try:
        files = repo.set_version(version)
    except NoManifestError:
        logger.warning(f"[{repo.name}] no manifest to update for release {version}")
        return result
    repo.add_files(files)
    repo.commit(f"Bump version to {version}")
    return result
