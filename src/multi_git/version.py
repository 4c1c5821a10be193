"""
Manifest version probing and semantic version bumping.

A repository's version lives in the ``version`` field of the first manifest
found in :data:`MANIFEST_FILES`. Writing a version touches every manifest
that exists so they stay in step.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidVersionError, NoManifestError

logger = logging.getLogger(__name__)

MANIFEST_FILES = ("bower.json", "composer.json", "package.json")
NO_VERSION = "-"

BUMP_KEYWORDS = ("major", "minor", "patch", "premajor", "preminor", "prepatch", "prerelease")

_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


@dataclass(frozen=True, slots=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            return f"{base}-{'.'.join(self.prerelease)}"
        return base

    @classmethod
    def parse(cls, text: str) -> SemVer | None:
        m = _SEMVER_RE.match(text.strip())
        if m is None:
            return None
        pre = tuple(m.group(4).split(".")) if m.group(4) else ()
        return cls(int(m.group(1)), int(m.group(2)), int(m.group(3)), pre)

    def bump(self, kind: str, identifier: str | None = None) -> SemVer:
        """Return the next version for ``kind``.

        Pre-release rules follow npm's semver: bumping ``patch`` on
        ``1.2.3-0`` releases ``1.2.3``, and ``prerelease`` increments the
        last numeric identifier.
        """
        first_pre = (identifier, "0") if identifier else ("0",)
        match kind:
            case "major":
                if self.prerelease and self.minor == 0 and self.patch == 0:
                    return SemVer(self.major, 0, 0)
                return SemVer(self.major + 1, 0, 0)
            case "minor":
                if self.prerelease and self.patch == 0:
                    return SemVer(self.major, self.minor, 0)
                return SemVer(self.major, self.minor + 1, 0)
            case "patch":
                if self.prerelease:
                    return SemVer(self.major, self.minor, self.patch)
                return SemVer(self.major, self.minor, self.patch + 1)
            case "premajor":
                return SemVer(self.major + 1, 0, 0, first_pre)
            case "preminor":
                return SemVer(self.major, self.minor + 1, 0, first_pre)
            case "prepatch":
                return SemVer(self.major, self.minor, self.patch + 1, first_pre)
            case "prerelease":
                if not self.prerelease:
                    return SemVer(self.major, self.minor, self.patch + 1, first_pre)
                return SemVer(self.major, self.minor, self.patch, _increment_pre(self.prerelease, identifier))
            case _:
                raise InvalidVersionError(f"Unknown version bump: {kind}")


def _increment_pre(pre: tuple[str, ...], identifier: str | None) -> tuple[str, ...]:
    if identifier and pre[0] != identifier:
        return (identifier, "0")
    parts = list(pre)
    for i in range(len(parts) - 1, -1, -1):
        if parts[i].isdigit():
            parts[i] = str(int(parts[i]) + 1)
            return tuple(parts)
    return (*parts, "0")


def is_valid_version(text: str) -> bool:
    return SemVer.parse(text) is not None


def next_version(current: str, target: str = "patch", identifier: str | None = None) -> str:
    """Resolve a release version from the current one.

    ``target`` is either a bump keyword or a literal semantic version, which
    is returned unchanged.

    Raises:
        InvalidVersionError: ``target`` is neither, or a keyword was given
            but ``current`` is not a valid version.
    """
    if is_valid_version(target):
        return target.strip()
    if target not in BUMP_KEYWORDS:
        raise InvalidVersionError(f"This isn't a valid version: {target}")
    parsed = SemVer.parse(current)
    if parsed is None:
        raise InvalidVersionError(f"Cannot bump invalid version: {current}")
    return str(parsed.bump(target, identifier))


# =============================================================================
# Manifest files
# =============================================================================


def read_version(repo_path: Path) -> str:
    """Return the version from the first existing manifest, or ``'-'``."""
    for filename in MANIFEST_FILES:
        manifest = repo_path / filename
        try:
            content = json.loads(manifest.read_text(encoding="utf-8"))
        except FileNotFoundError:
            continue
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable manifest {manifest}: {e}")
            return NO_VERSION
        if isinstance(content, dict):
            return str(content.get("version") or NO_VERSION)
        return NO_VERSION
    return NO_VERSION


def update_manifest(manifest: Path, patch: dict) -> None:
    """Merge ``patch`` into a JSON manifest, keeping the other keys and their order."""
    content = json.loads(manifest.read_text(encoding="utf-8"))
    _deep_merge(content, patch)
    manifest.write_text(json.dumps(content, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def _deep_merge(target: dict, patch: dict) -> None:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value


def write_version(repo_path: Path, version: str) -> list[str]:
    """Write ``version`` into every manifest that exists.

    Returns:
        The names of the manifests that were updated.

    Raises:
        NoManifestError: no manifest exists at all.
        OSError, ValueError: the first other failure, when nothing was written.
    """
    updated: list[str] = []
    errors: list[Exception] = []
    for filename in MANIFEST_FILES:
        try:
            update_manifest(repo_path / filename, {"version": version})
        except (OSError, ValueError) as e:
            errors.append(e)
        else:
            updated.append(filename)

    if updated:
        for e in errors:
            if not isinstance(e, FileNotFoundError):
                logger.warning(f"Version not written in {repo_path.name}: {e}")
        return updated
    if all(isinstance(e, FileNotFoundError) for e in errors):
        raise NoManifestError()
    raise next(e for e in errors if not isinstance(e, FileNotFoundError))
