"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__
from .version import BUMP_KEYWORDS

# Options every command accepts to pick its target group.
TARGET_PROPERTIES = {
    "group": {
        "type": "string",
        "description": "Configured group to act on (overrides working-directory resolution)",
    },
    "project": {
        "type": "string",
        "description": "Single configured project to act on",
    },
    "json": {
        "type": "boolean",
        "description": "Output as JSON for machine parsing",
        "default": False,
    },
    "sequential": {
        "type": "boolean",
        "description": "Run sequentially instead of in parallel",
        "default": False,
    },
}

RESULT_SCHEMA = {
    "type": "object",
    "properties": {
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "name": {"type": "string"},
                    "operation": {"type": "string"},
                    "success": {"type": "boolean"},
                    "payload": {},
                    "error": {"type": "string"},
                    "error_code": {"type": ["string", "null"]},
                },
            },
        },
        "summary": {
            "type": "object",
            "properties": {
                "total": {"type": "integer"},
                "success": {"type": "integer"},
                "failed": {"type": "integer"},
            },
        },
        "halted": {"type": "boolean"},
        "reason": {"type": "string"},
    },
}


def _tool(name: str, description: str, properties: dict | None = None, required: list | None = None) -> dict:
    return {
        "name": name,
        "description": description,
        "inputSchema": {
            "type": "object",
            "properties": {**(properties or {}), **TARGET_PROPERTIES},
            "required": required or [],
        },
        "outputSchema": RESULT_SCHEMA,
    }


def _flow_tool(kind: str, actions: list[str], description: str) -> dict:
    return _tool(
        kind,
        description,
        {
            "action": {"type": "string", "enum": actions},
            "name": {"type": "string", "description": f"{kind.title()} name (without prefix)"},
            "base": {"type": "string", "description": "Branch to start from (start only)"},
        },
        required=["action"],
    )


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "multi-git",
        "version": __version__,
        "description": "Run git and git-flow commands across a group of repositories at once. Every command fans out concurrently and reports one result per repository, in group order.",
        "usage": "multi-git <command> [arguments] [-g GROUP | -p PROJECT] [--json] [--sequential]",
        "tools": [
            _tool(
                "status",
                "Show version, working tree state, branch, upstream and ahead/behind counts of every repository.",
            ),
            _tool("fetch", "Fetch every repository, then show status."),
            _tool(
                "pull",
                "Fetch every repository, then merge the upstream into the ones that are clean and behind. Dirty and up-to-date repositories are reported as skipped.",
                {"remote": {"type": "string"}, "branch": {"type": "string"}},
            ),
            _tool("push", "Push every repository.", {"remote": {"type": "string"}, "branch": {"type": "string"}}),
            _tool("checkout", "Check out a ref in every repository.", {"ref": {"type": "string"}}, ["ref"]),
            _tool("add", "Stage files in every repository.", {"files": {"type": "array", "items": {"type": "string"}}}, ["files"]),
            _tool("unstage", "Unstage files in every repository.", {"files": {"type": "array", "items": {"type": "string"}}}, ["files"]),
            _tool("stash", "Run git stash with the given arguments.", {"args": {"type": "array", "items": {"type": "string"}}}),
            _flow_tool("feature", ["start", "publish", "finish"], "git-flow feature branches."),
            {
                **_flow_tool("release", ["start", "publish", "finish"], "git-flow releases. Start bumps each manifest version; finish requires every repository to be clean and in sync."),
                "versionArgument": {
                    "description": "Release start takes a bump keyword or a literal semantic version",
                    "keywords": list(BUMP_KEYWORDS),
                },
            },
            _flow_tool("hotfix", ["start", "publish", "finish"], "git-flow hotfix branches."),
            _flow_tool("bugfix", ["start", "publish", "finish"], "git-flow bugfix branches."),
            _flow_tool("support", ["start", "publish"], "git-flow support branches (no finish)."),
            {
                "name": "init",
                "description": "Write a starter configuration to ~/.mg-config.json unless one exists.",
                "inputSchema": {"type": "object", "properties": {}, "required": []},
            },
        ],
        "configResolution": {
            "description": "When --config is not specified, multi-git searches for a configuration file",
            "priority": [
                "./.mg-config.json",
                "$XDG_CONFIG_HOME/multi-git/config.json (~/.config by default)",
                "~/.mg-config.json",
            ],
            "fallback": "Without a configuration, commands act on the current repository or on the subdirectories of the current directory",
        },
        "notes": [
            "All commands support --json for machine-readable output",
            "The exit status is 1 when any repository fails or a release step halts",
            "Use 'status --json' first to understand the current state before making changes",
        ],
    }
