"""Reconciliation of the manifest against the home directory.

Each source is one of three variants: a plain file, a plain directory, or an
extracted JSON field. ``install`` imports and links them; ``update`` verifies
links and pushes repository values of extracted fields back into home files.
Every decision is re-derived from the disk, so both passes can be re-run after
an interruption.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Iterator

from .config import Settings
from .errors import BackupFailed, DirtyWorkingTree, MergeFailed
from .filesystem import (
    copy_entry,
    ensure_parent,
    is_empty_dir,
    lexists,
    read_json,
    remove_path,
    symlink_points_to,
    write_json_atomic,
)
from .layout import expand_home, extraction_state, group_storage_dir, repository_path
from .manifest import Group, Manifest, Source, SourceKind, SymlinkMode
from .models import LINK_STATE_ISSUES, Action, ExtractionState, Issue, LinkState, SourceOutcome
from .platforms import Platform, describe_platform, platform_matches
from .report import RunReport, describe_link, link_state, summarize
from .snapshots import SnapshotService
from .vcs import GitRepository, PullResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlainFile:
    home_path: Path
    repo_path: Path


@dataclass(frozen=True, slots=True)
class PlainDirectory:
    home_path: Path
    repo_path: Path
    mode: SymlinkMode


@dataclass(frozen=True, slots=True)
class ExtractedField:
    home_path: Path
    repo_path: Path
    field: str


SourceVariant = PlainFile | PlainDirectory | ExtractedField


def classify(source: Source, group: str, settings: Settings) -> SourceVariant:
    """Resolve a manifest source into the variant that drives reconciliation."""

    home_path = expand_home(source.path, settings.home)
    repo_path = repository_path(settings.files_root, group, source)
    if source.extract is not None:
        return ExtractedField(home_path, repo_path, source.extract.field)
    if source.kind is SourceKind.DIRECTORY:
        return PlainDirectory(home_path, repo_path, source.effective_symlink_mode)
    return PlainFile(home_path, repo_path)


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Report of one install or update pass."""

    report: RunReport
    pruned: tuple[Path, ...] = ()
    pull: PullResult | None = None
    dry_run: bool = False


class Reconciler:
    """Applies install and update passes for one platform and one set of settings."""

    def __init__(
        self,
        settings: Settings,
        platform: Platform | None,
        *,
        snapshots: SnapshotService | None = None,
        repository: GitRepository | None = None,
    ) -> None:
        self.settings = settings
        self.platform = platform
        self.snapshots = snapshots or SnapshotService(settings.backup_root, retention=settings.backup_retention)
        self.repository = repository or GitRepository(settings.repo_root)

    # ------------------------------------------------------------------
    # Passes

    def install(self, manifest: Manifest) -> ReconcileResult:
        logger.info("Installing on platform %s", describe_platform(self.platform))
        self.settings.files_root.mkdir(parents=True, exist_ok=True)

        def prepare(group: Group) -> None:
            group_storage_dir(self.settings.files_root, group.name).mkdir(parents=True, exist_ok=True)

        outcomes = list(self._walk(manifest, self._install_source, before_group=prepare))
        pruned = self.snapshots.prune()
        return ReconcileResult(report=summarize(manifest.names(), outcomes), pruned=tuple(pruned))

    def update(
        self,
        manifest: Manifest,
        *,
        dry_run: bool = False,
        skip_pull: bool = False,
        force: bool = False,
    ) -> ReconcileResult:
        pull: PullResult | None = None
        if not skip_pull:
            if not force:
                changes = self.repository.status_lines()
                if changes:
                    raise DirtyWorkingTree(changes)
            if dry_run:
                logger.info("Dry run: skipping git pull")
            else:
                pull = self.repository.pull()

        def verify(group: Group, variant: SourceVariant) -> SourceOutcome:
            return self._verify_source(group, variant, dry_run=dry_run)

        outcomes = list(self._walk(manifest, verify))
        # Pruning runs in dry-run mode too.
        pruned = self.snapshots.prune()
        return ReconcileResult(
            report=summarize(manifest.names(), outcomes),
            pruned=tuple(pruned),
            pull=pull,
            dry_run=dry_run,
        )

    def _walk(
        self,
        manifest: Manifest,
        handler: Callable[[Group, SourceVariant], SourceOutcome],
        *,
        before_group: Callable[[Group], None] | None = None,
    ) -> Iterator[SourceOutcome]:
        for group in manifest.groups:
            logger.info("Processing configuration: %s", group.name)
            if before_group is not None:
                before_group(group)
            for source in group.sources:
                variant = classify(source, group.name, self.settings)
                if not platform_matches(self.platform, source.platforms):
                    logger.info("Skipping %s (not for this platform)", variant.home_path)
                    yield SourceOutcome(
                        group=group.name,
                        home_path=variant.home_path,
                        repo_path=variant.repo_path,
                        action=Action.SKIPPED,
                        details="not for this platform",
                    )
                    continue
                yield handler(group, variant)

    # ------------------------------------------------------------------
    # Install

    def _install_source(self, group: Group, variant: SourceVariant) -> SourceOutcome:
        match variant:
            case ExtractedField():
                if extraction_state(variant.repo_path) is ExtractionState.POPULATED:
                    return self.sync_extracted(group.name, variant)
                return self.extract_initial(group.name, variant)
            case PlainDirectory():
                return self._install_plain(group.name, variant, directory=True)
            case PlainFile():
                return self._install_plain(group.name, variant, directory=False)

    def _install_plain(self, group: str, variant: PlainFile | PlainDirectory, *, directory: bool) -> SourceOutcome:
        home, repo = variant.home_path, variant.repo_path
        whole_group_dir = isinstance(variant, PlainDirectory) and variant.mode is SymlinkMode.DIRECTORY

        imported = False
        if self._needs_import(home, repo, directory=directory, whole_group_dir=whole_group_dir):
            try:
                copy_entry(home, repo, merge=whole_group_dir)
            except OSError as exc:
                logger.error("Failed to import %s: %s", home, exc)
                return self._outcome(
                    group, variant, Action.FAILED, Issue.IMPORT_FAILED, f"import failed: {exc}"
                )
            imported = True
            logger.info("Imported existing %s: %s -> %s", "directory" if directory else "file", home, repo)

        present = repo.is_dir() if directory else repo.is_file()
        if not present or (whole_group_dir and is_empty_dir(repo)):
            logger.warning("Repository %s not found: %s", "directory" if directory else "file", repo)
            return self._outcome(
                group, variant, Action.FAILED, Issue.REPOSITORY_FILE_NOT_FOUND, f"Repository path not found: {repo}"
            )

        outcome = self.link_into(home, repo, group)
        if imported and outcome.ok:
            return replace(outcome, action=Action.IMPORTED)
        return outcome

    @staticmethod
    def _needs_import(home: Path, repo: Path, *, directory: bool, whole_group_dir: bool) -> bool:
        if home.is_symlink():
            return False
        if directory:
            if not home.is_dir():
                return False
            return is_empty_dir(repo) if whole_group_dir else not lexists(repo)
        return home.is_file() and not lexists(repo)

    def link_into(self, home: Path, repo: Path, group: str) -> SourceOutcome:
        """Make ``home`` a symlink to ``repo``; the only operation that replaces home paths.

        An existing symlink is never replaced; an existing file or directory is
        backed up before it is removed.
        """

        def result(action: Action, issue: Issue | None = None, details: str | None = None) -> SourceOutcome:
            return SourceOutcome(group, home, repo, action, issue, details)

        if home.is_symlink():
            if symlink_points_to(home, repo):
                logger.info("Symlink already exists and is correct: %s -> %s", home, repo)
                return result(Action.UNCHANGED)
            current = os.readlink(home)
            logger.warning("Symlink exists but points elsewhere: %s -> %s; leaving it alone", home, current)
            return result(
                Action.FAILED,
                Issue.SYMLINK_POINTS_ELSEWHERE,
                f"{home} -> {current} (expected -> {repo})",
            )

        moved_aside = False
        if home.exists():
            try:
                handle = self.snapshots.backup(home, group)
            except BackupFailed as exc:
                return result(Action.FAILED, Issue.BACKUP_FAILED, str(exc))
            try:
                remove_path(home)
            except OSError as exc:
                return result(Action.FAILED, Issue.LINK_FAILED, f"Could not remove {home}: {exc}")
            moved_aside = True
            logger.debug("Moved %s aside (backup at %s)", home, handle.path)

        try:
            ensure_parent(home)
            home.symlink_to(repo)
        except OSError as exc:
            if moved_aside:
                logger.error("Symlink creation failed after backing up %s: %s", home, exc)
                return result(
                    Action.FAILED,
                    Issue.LINK_CREATION_FAILED_AFTER_BACKUP,
                    f"Could not link {home} -> {repo} ({exc}); the original is in {self.snapshots.current_root}",
                )
            return result(Action.FAILED, Issue.LINK_FAILED, f"Could not link {home} -> {repo}: {exc}")

        logger.info("Created symlink: %s -> %s", home, repo)
        return result(Action.LINKED)

    # ------------------------------------------------------------------
    # Extraction

    def extract_initial(self, group: str, variant: ExtractedField) -> SourceOutcome:
        """Uninitialized -> Populated: the only time data flows from home into the repository."""

        home, repo, field = variant.home_path, variant.repo_path, variant.field

        if not lexists(home):
            try:
                write_json_atomic(repo, {})
                write_json_atomic(home, {})
            except OSError as exc:
                return self._outcome(group, variant, Action.FAILED, Issue.MERGE_FAILED, str(exc))
            logger.info("Source file not found: %s, creating empty extraction", home)
            return self._outcome(group, variant, Action.INITIALIZED, details="created empty home and repository files")

        try:
            data = _load_object(home)
        except MergeFailed as exc:
            return self._outcome(group, variant, Action.FAILED, Issue.MERGE_FAILED, str(exc))

        try:
            if field in data:
                write_json_atomic(repo, data[field])
                details = f"extracted field '{field}'"
                logger.info("Extracted field '%s' from %s to %s", field, home, repo)
            else:
                write_json_atomic(repo, {})
                details = f"field '{field}' not found; wrote empty object"
                logger.warning("Field '%s' not found in %s", field, home)
        except OSError as exc:
            return self._outcome(group, variant, Action.FAILED, Issue.MERGE_FAILED, str(exc))

        return self._outcome(group, variant, Action.EXTRACTED, details=details)

    def sync_extracted(self, group: str, variant: ExtractedField, *, dry_run: bool = False) -> SourceOutcome:
        """Populated: merge the repository value into the home file under ``field``.

        The home file is backed up before it is rewritten and is only replaced
        once the merged document has been written completely.
        """

        home, repo, field = variant.home_path, variant.repo_path, variant.field

        try:
            value = read_json(repo)
        except (OSError, ValueError) as exc:
            return self._outcome(
                group, variant, Action.FAILED, Issue.MERGE_FAILED, f"{repo} is not readable JSON: {exc}"
            )

        destination = home.resolve() if home.is_symlink() else home
        if lexists(home):
            try:
                data = _load_object(home)
            except MergeFailed as exc:
                return self._outcome(group, variant, Action.FAILED, Issue.MERGE_FAILED, str(exc))
            if field in data and data[field] == value:
                logger.info("Field '%s' in %s already matches %s", field, home, repo)
                return self._outcome(group, variant, Action.UNCHANGED, dry_run=dry_run)
            if dry_run:
                return self._outcome(
                    group, variant, Action.SYNCED, details=f"would merge {repo.name} into '{field}'", dry_run=True
                )
            try:
                self.snapshots.backup(home, group)
            except BackupFailed as exc:
                return self._outcome(group, variant, Action.FAILED, Issue.BACKUP_FAILED, str(exc))
        else:
            if dry_run:
                return self._outcome(
                    group, variant, Action.SYNCED, details=f"would create {home} from {repo.name}", dry_run=True
                )
            data = {}
            logger.info("Created empty source file: %s", home)

        merged = dict(data)
        merged[field] = value
        try:
            write_json_atomic(destination, merged)
        except OSError as exc:
            return self._outcome(group, variant, Action.FAILED, Issue.MERGE_FAILED, str(exc))

        logger.info("Merged extracted content from %s to %s", repo, home)
        return self._outcome(group, variant, Action.SYNCED, details=f"merged {repo.name} into '{field}'")

    # ------------------------------------------------------------------
    # Update

    def _verify_source(self, group: Group, variant: SourceVariant, *, dry_run: bool) -> SourceOutcome:
        match variant:
            case ExtractedField():
                if extraction_state(variant.repo_path) is ExtractionState.UNINITIALIZED:
                    logger.warning("Missing extracted file: %s", variant.repo_path)
                    return self._outcome(
                        group.name,
                        variant,
                        Action.FAILED,
                        Issue.MISSING,
                        f"Missing extracted file: {variant.repo_path}",
                        dry_run=dry_run,
                    )
                return self.sync_extracted(group.name, variant, dry_run=dry_run)
            case PlainFile() | PlainDirectory():
                state = link_state(variant.home_path, variant.repo_path)
                details = describe_link(variant.home_path, variant.repo_path, state)
                if state is LinkState.OK:
                    logger.info("Verified: %s", details)
                    return self._outcome(group.name, variant, Action.VERIFIED, details=details, dry_run=dry_run)
                logger.warning(details)
                return self._outcome(
                    group.name, variant, Action.FAILED, LINK_STATE_ISSUES[state], details, dry_run=dry_run
                )

    @staticmethod
    def _outcome(
        group: str,
        variant: SourceVariant,
        action: Action,
        issue: Issue | None = None,
        details: str | None = None,
        *,
        dry_run: bool = False,
    ) -> SourceOutcome:
        return SourceOutcome(
            group=group,
            home_path=variant.home_path,
            repo_path=variant.repo_path,
            action=action,
            issue=issue,
            details=details,
            dry_run=dry_run,
        )


def _load_object(path: Path) -> dict[str, Any]:
    """Read a JSON object from ``path``; anything else raises ``MergeFailed``."""

    try:
        data = read_json(path)
    except OSError as exc:
        raise MergeFailed(f"Unable to read {path}: {exc}") from exc
    except ValueError as exc:
        raise MergeFailed(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MergeFailed(f"{path} does not contain a JSON object")
    return data
