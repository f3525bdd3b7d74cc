"""Shared outcome models and enums for dotlink."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .manifest import SourceKind


class Action(str, Enum):
    """What reconciliation did (or would do) for a source."""

    LINKED = "linked"
    IMPORTED = "imported"
    UNCHANGED = "unchanged"
    VERIFIED = "verified"
    EXTRACTED = "extracted"
    INITIALIZED = "initialized"
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


class Issue(str, Enum):
    """Per-source problems that are recorded without aborting the run."""

    REPOSITORY_FILE_NOT_FOUND = "repository_file_not_found"
    SYMLINK_POINTS_ELSEWHERE = "symlink_points_elsewhere"
    NOT_A_SYMLINK = "not_a_symlink"
    INCORRECT_TARGET = "incorrect_target"
    MISSING = "missing"
    BACKUP_FAILED = "backup_failed"
    MERGE_FAILED = "merge_failed"
    LINK_CREATION_FAILED_AFTER_BACKUP = "link_creation_failed_after_backup"
    LINK_FAILED = "link_failed"
    IMPORT_FAILED = "import_failed"


class LinkState(str, Enum):
    """Observed state of a home path that should be a symlink into the repository."""

    OK = "ok"
    MISSING = "missing"
    INCORRECT = "incorrect"
    NOT_SYMLINK = "not_symlink"


LINK_STATE_ISSUES: dict[LinkState, Issue] = {
    LinkState.MISSING: Issue.MISSING,
    LinkState.INCORRECT: Issue.INCORRECT_TARGET,
    LinkState.NOT_SYMLINK: Issue.NOT_A_SYMLINK,
}


class ExtractionState(str, Enum):
    """Lifecycle of an extracted JSON field, keyed by the repository target file."""

    UNINITIALIZED = "uninitialized"
    POPULATED = "populated"


@dataclass(frozen=True, slots=True)
class SourceOutcome:
    """Result of reconciling one source of a group."""

    group: str
    home_path: Path
    repo_path: Path
    action: Action
    issue: Issue | None = None
    details: str | None = None
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.issue is None


class RemoveAction(str, Enum):
    """Outcome of ``manage remove`` for a source's home path."""

    UNLINKED = "unlinked"
    KEPT = "kept"
    ABSENT = "absent"


@dataclass(frozen=True, slots=True)
class RemoveResult:
    path: Path
    action: RemoveAction


@dataclass(frozen=True, slots=True)
class GroupRemoval:
    """Everything ``manage remove`` did for one group."""

    name: str
    results: tuple[RemoveResult, ...]
    archive: Path | None


@dataclass(frozen=True, slots=True)
class AddedPath:
    """A path registered by ``manage add`` and whether it was copied into the repository."""

    path: Path
    kind: SourceKind
    copied_to: Path | None
    extract: bool = False
