"""Error kinds raised by multi-git.

Every error carries a stable ``code`` so that output formatters and callers
can branch on the kind without importing the class.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .group import OperationResult


class MultiGitError(Exception):
    """Base class for all multi-git errors."""

    code = "multi-git"
    default_message = "multi-git error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class GitCommandError(MultiGitError):
    """A git child process exited with a non-zero status."""

    code = "git-command"
    default_message = "git command failed"

    def __init__(
        self,
        command: list[str] | tuple[str, ...],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip() or f"exit status {returncode}"
        super().__init__(detail)


class GitTimeoutError(MultiGitError):
    """A git child process did not finish within its time budget."""

    code = "git-timeout"

    def __init__(self, command: list[str] | tuple[str, ...], timeout: float):
        self.command = list(command)
        self.timeout = timeout
        super().__init__(f"git {' '.join(self.command)} timed out after {timeout:g}s")


class DirtyRepositoryError(MultiGitError):
    code = "dirty-repo"
    default_message = "The repository was dirty"


class AheadRepositoryError(MultiGitError):
    code = "ahead-repo"
    default_message = "The repository is ahead its remote"


class BehindRepositoryError(MultiGitError):
    code = "behind-repo"
    default_message = "The repository is behind its remote"


class NoManifestError(MultiGitError):
    code = "no-manifest"
    default_message = "There is no package file"


class InvalidVersionError(MultiGitError):
    code = "invalid-version"
    default_message = "This isn't a valid version"


class NoActiveReleaseError(MultiGitError):
    code = "no-active-release"
    default_message = "There is no active release"


class ActiveReleaseError(MultiGitError):
    code = "active-release"
    default_message = "There is already one active release"


class MultipleActiveReleaseError(MultiGitError):
    code = "multiple-active-release"
    default_message = "There are more than one active release"


class InvalidFeatureBranchError(MultiGitError):
    code = "invalid-feature"
    default_message = "The current branch isn't a feature"


class InvalidSupportBranchError(MultiGitError):
    code = "invalid-support"
    default_message = "The current branch isn't a support branch"


class FlowStateError(MultiGitError):
    """A branch lifecycle transition was requested from the wrong state."""

    code = "flow-state"
    default_message = "Invalid branch lifecycle transition"


class NoConfigFileError(MultiGitError):
    code = "no-config-file"
    default_message = "There is no configuration file"


class InvalidConfigError(MultiGitError):
    code = "invalid-config"
    default_message = "The configuration file is invalid"


class GroupMissingError(MultiGitError):
    code = "group-missing"
    default_message = "Requested group is missing"


class ProjectMissingError(MultiGitError):
    code = "project-missing"
    default_message = "Requested project is missing"


class ChainBreakerError(MultiGitError):
    """Raised when a halted multi-step group operation is unwrapped."""

    code = "chain-breaker"
    default_message = "This group operation has been terminated early"

    def __init__(self, results: list[OperationResult] | None = None, message: str | None = None):
        self.results = list(results or [])
        super().__init__(message)
