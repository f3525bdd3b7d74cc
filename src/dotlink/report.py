"""Aggregation of per-source outcomes into group and run summaries."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .config import Settings
from .filesystem import lexists, symlink_points_to
from .layout import expand_home, extraction_state, repository_path
from .manifest import ExtractSpec, Manifest, SourceKind
from .models import Action, ExtractionState, LinkState, SourceOutcome
from .platforms import Platform, platform_matches


@dataclass(frozen=True, slots=True)
class GroupReport:
    """Outcomes of every source in one group."""

    name: str
    outcomes: tuple[SourceOutcome, ...]

    @property
    def issues(self) -> tuple[SourceOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.ok)

    @property
    def issue_count(self) -> int:
        return len(self.issues)

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def processed(self) -> int:
        """Sources that applied to this platform and went through without issues."""

        return sum(1 for outcome in self.outcomes if outcome.ok and outcome.action is not Action.SKIPPED)

    def count(self, action: Action) -> int:
        return sum(1 for outcome in self.outcomes if outcome.action is action)


@dataclass(frozen=True, slots=True)
class RunReport:
    """Summary of a full pass over the manifest."""

    groups: tuple[GroupReport, ...]

    @property
    def total(self) -> int:
        return len(self.groups)

    @property
    def succeeded(self) -> int:
        return sum(1 for group in self.groups if group.ok)

    @property
    def ok(self) -> bool:
        return all(group.ok for group in self.groups)

    @property
    def issue_count(self) -> int:
        return sum(group.issue_count for group in self.groups)

    def outcomes(self) -> Iterable[SourceOutcome]:
        for group in self.groups:
            yield from group.outcomes


def summarize(group_names: Iterable[str], outcomes: Iterable[SourceOutcome]) -> RunReport:
    """Bucket ``outcomes`` by group, keeping manifest order (groups without sources included)."""

    buckets: dict[str, list[SourceOutcome]] = {name: [] for name in group_names}
    for outcome in outcomes:
        buckets.setdefault(outcome.group, []).append(outcome)
    return RunReport(groups=tuple(GroupReport(name, tuple(items)) for name, items in buckets.items()))


def link_state(home_path: Path, repo_path: Path) -> LinkState:
    """Classify ``home_path`` against the symlink it should be."""

    if not lexists(home_path):
        return LinkState.MISSING
    if home_path.is_symlink():
        if symlink_points_to(home_path, repo_path):
            return LinkState.OK
        return LinkState.INCORRECT
    return LinkState.NOT_SYMLINK


def describe_link(home_path: Path, repo_path: Path, state: LinkState) -> str:
    if state is LinkState.OK:
        return f"{home_path} -> {repo_path}"
    if state is LinkState.MISSING:
        return f"Missing: {home_path} (expected -> {repo_path})"
    if state is LinkState.INCORRECT:
        return f"Incorrect symlink: {home_path} -> {os.readlink(home_path)} (expected -> {repo_path})"
    return f"Not a symlink: {home_path} (should point to {repo_path})"


@dataclass(frozen=True, slots=True)
class SourceListing:
    path: str
    kind: SourceKind
    platforms: tuple[Platform, ...]
    extract: ExtractSpec | None
    applies: bool
    state: LinkState | ExtractionState


@dataclass(frozen=True, slots=True)
class GroupListing:
    name: str
    sources: tuple[SourceListing, ...]


def describe_manifest(manifest: Manifest, settings: Settings, current: Platform | None) -> list[GroupListing]:
    """Status view used by ``manage list``; reads the disk but never changes it."""

    listings: list[GroupListing] = []
    for group in manifest.groups:
        sources: list[SourceListing] = []
        for source in group.sources:
            repo = repository_path(settings.files_root, group.name, source)
            state: LinkState | ExtractionState
            if source.extract is not None:
                state = extraction_state(repo)
            else:
                state = link_state(expand_home(source.path, settings.home), repo)
            sources.append(
                SourceListing(
                    path=source.path,
                    kind=source.kind,
                    platforms=source.platforms or (),
                    extract=source.extract,
                    applies=platform_matches(current, source.platforms),
                    state=state,
                )
            )
        listings.append(GroupListing(name=group.name, sources=tuple(sources)))
    return listings
