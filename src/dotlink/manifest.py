"""Manifest persistence for dotlink.

The manifest (``dotfiles.json``) is the declarative list of configuration groups.
It is decoded through pydantic models that reject unknown keys, so everything
downstream works with typed values rather than free-form lookups.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from pathlib import Path, PurePath

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import DuplicateGroup, GroupNotFound, InvalidName, ManifestMalformed, ManifestMissing
from .filesystem import write_text_atomic
from .platforms import Platform

DEFAULT_MANIFEST_FILENAME = "dotfiles.json"

GROUP_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class SourceKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class SymlinkMode(str, Enum):
    """How a directory source is projected into the repository.

    ``contents`` links ``<home path>`` to ``files/<group>/<basename>``;
    ``directory`` links it to ``files/<group>`` itself.
    """

    CONTENTS = "contents"
    DIRECTORY = "directory"


class ExtractSpec(BaseModel):
    """One top-level JSON field of a home file, versioned in its own repository file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str = Field(min_length=1)
    target: str = Field(min_length=1)

    @field_validator("target")
    @classmethod
    def _plain_filename(cls, value: str) -> str:
        if value in {".", ".."} or PurePath(value).name != value or "\\" in value:
            raise ValueError(f"extract target '{value}' must be a plain filename")
        return value


class Source(BaseModel):
    """A file or directory entry of a group."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(min_length=1)
    kind: SourceKind = Field(alias="type")
    platforms: tuple[Platform, ...] | None = None
    extract: ExtractSpec | None = None
    symlink_mode: SymlinkMode | None = None

    @model_validator(mode="after")
    def _check_kind_options(self) -> "Source":
        if self.extract is not None and self.kind is not SourceKind.FILE:
            raise ValueError(f"source '{self.path}': extract is only supported on file sources")
        if self.symlink_mode is not None and self.kind is not SourceKind.DIRECTORY:
            raise ValueError(f"source '{self.path}': symlink_mode is only supported on directory sources")
        return self

    @property
    def effective_symlink_mode(self) -> SymlinkMode:
        return self.symlink_mode or SymlinkMode.CONTENTS


class Group(BaseModel):
    """A named collection of sources."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    sources: tuple[Source, ...]


class Manifest(BaseModel):
    """Ordered list of groups; group names are unique identifiers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    groups: tuple[Group, ...] = ()

    @model_validator(mode="after")
    def _check_group_names(self) -> "Manifest":
        seen: set[str] = set()
        for group in self.groups:
            if not GROUP_NAME_PATTERN.fullmatch(group.name):
                raise ValueError(f"group name '{group.name}' may only contain letters, digits, '_' and '-'")
            if group.name in seen:
                raise ValueError(f"group '{group.name}' is defined more than once")
            seen.add(group.name)
        return self

    def get(self, name: str) -> Group | None:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def names(self) -> list[str]:
        return [group.name for group in self.groups]


def validate_group_name(name: str) -> str:
    if not name:
        raise InvalidName("Configuration name cannot be empty")
    if not GROUP_NAME_PATTERN.fullmatch(name):
        raise InvalidName(
            f"Configuration name '{name}' can only contain letters, numbers, underscores, and hyphens"
        )
    return name


def load_manifest(path: Path) -> Manifest:
    """Load and validate the manifest at ``path``."""

    if not path.is_file():
        raise ManifestMissing(path)

    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ManifestMalformed(f"Manifest '{path}' is malformed: not valid UTF-8 ({exc})") from exc
    except OSError as exc:
        raise ManifestMalformed(f"Unable to read manifest '{path}': {exc}") from exc

    try:
        return Manifest.model_validate_json(raw)
    except ValidationError as exc:
        raise ManifestMalformed(_describe_validation_error(path, exc)) from exc


def save_manifest(manifest: Manifest, path: Path) -> None:
    """Write ``manifest`` to ``path`` atomically."""

    payload = manifest.model_dump(mode="json", by_alias=True, exclude_none=True)
    write_text_atomic(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def add_group(manifest: Manifest, group: Group) -> Manifest:
    validate_group_name(group.name)
    if manifest.get(group.name) is not None:
        raise DuplicateGroup(f"Configuration '{group.name}' already exists")
    return Manifest(groups=(*manifest.groups, group))


def remove_group(manifest: Manifest, name: str) -> Manifest:
    if manifest.get(name) is None:
        raise GroupNotFound(f"Configuration '{name}' does not exist")
    return Manifest(groups=tuple(group for group in manifest.groups if group.name != name))


def _describe_validation_error(path: Path, exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        problems.append(f"{location}: {error['msg']}")
    return f"Manifest '{path}' is malformed: " + "; ".join(problems)
