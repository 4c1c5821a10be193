"""multi-git: run git and git-flow commands across a group of repositories."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .cli import app
from .errors import (
    ChainBreakerError,
    GitCommandError,
    GitTimeoutError,
    MultiGitError,
)
from .flow import BranchLifecycle, FlowResult, FlowState
from .formatters import OutputFormatter
from .git import GitClient, PullSummary, StatusSummary
from .group import Group, GroupSettings, Halted, OperationResult, Proceed
from .manager import Manager, descriptor_from_config, load_config
from .repository import (
    FlowKind,
    GitFlowSettings,
    ProjectDescriptor,
    Repository,
    RepositoryStatus,
    WorkingTreeStatus,
)
from .schema import get_tool_schema
from .version import SemVer, next_version, read_version, write_version

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "FlowKind",
    "FlowResult",
    "FlowState",
    "GitFlowSettings",
    "GroupSettings",
    "OperationResult",
    "ProjectDescriptor",
    "PullSummary",
    "RepositoryStatus",
    "SemVer",
    "StatusSummary",
    "WorkingTreeStatus",
    "Proceed",
    "Halted",
    # Operations
    "BranchLifecycle",
    "GitClient",
    "Group",
    "Manager",
    "Repository",
    # Functions
    "descriptor_from_config",
    "get_tool_schema",
    "load_config",
    "next_version",
    "read_version",
    "write_version",
    # Errors
    "ChainBreakerError",
    "GitCommandError",
    "GitTimeoutError",
    "MultiGitError",
    # Formatters
    "OutputFormatter",
]
