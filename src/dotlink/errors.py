"""Exception hierarchy for dotlink."""

from __future__ import annotations

from pathlib import Path


class DotlinkError(RuntimeError):
    """Base class for errors raised by dotlink."""


class ConfigError(DotlinkError):
    """Raised when settings cannot be resolved or validated."""


class ManifestMissing(DotlinkError):
    """Raised when the manifest file does not exist."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Manifest file not found: {path}")
        self.path = path


class ManifestMalformed(DotlinkError):
    """Raised when the manifest cannot be parsed or fails schema validation."""


class DependencyMissing(DotlinkError):
    """Raised when a required external tool is not installed."""


class InvalidName(DotlinkError):
    """Raised when a group name is empty or uses characters outside ``[A-Za-z0-9_-]``."""


class InvalidArgument(DotlinkError):
    """Raised for malformed ``--extract`` or ``--platform`` values and similar input."""


class DuplicateGroup(DotlinkError):
    """Raised when adding a group whose name is already in the manifest."""


class GroupNotFound(DotlinkError):
    """Raised when a named group is not in the manifest."""


class BackupFailed(DotlinkError):
    """Raised when a snapshot could not be written."""


class MergeFailed(DotlinkError):
    """Raised when an extracted field cannot be merged into its home file."""


class VcsError(DotlinkError):
    """Base class for version control failures."""


class NotARepository(VcsError):
    """Raised when the repository root is not a git work tree."""


class DirtyWorkingTree(VcsError):
    """Raised when the repository has uncommitted changes and ``--force`` was not given."""

    def __init__(self, changes: list[str]) -> None:
        super().__init__("Repository has uncommitted changes. Use --force to update anyway.")
        self.changes = changes


class PullFailed(VcsError):
    """Raised when pulling the latest changes fails."""
