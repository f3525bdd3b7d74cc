"""Settings resolution for dotlink."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError
from .manifest import DEFAULT_MANIFEST_FILENAME

SETTINGS_FILENAME = "dotlink.toml"
REPO_ENV_VAR = "DOTLINK_REPO"
HOME_ENV_VAR = "DOTLINK_HOME"
DEFAULT_BACKUP_RETENTION = 5


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class Settings(BaseModel):
    """Where the repository, its storage trees, and the home directory live."""

    model_config = ConfigDict(frozen=True)

    repo_root: Path
    home: Path
    manifest_path: Path
    files_root: Path
    backup_root: Path
    backup_retention: int = Field(default=DEFAULT_BACKUP_RETENTION, ge=1)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, repo_root: Path, home: Path) -> "Settings":
        unknown = set(raw) - {"manifest", "files_dir", "backup_dir", "backup_retention"}
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")

        try:
            return cls(
                repo_root=repo_root,
                home=home,
                manifest_path=_expand_path(raw.get("manifest", DEFAULT_MANIFEST_FILENAME), base_dir=repo_root),
                files_root=_expand_path(raw.get("files_dir", "files"), base_dir=repo_root),
                backup_root=_expand_path(raw.get("backup_dir", "backups"), base_dir=repo_root),
                backup_retention=raw.get("backup_retention", DEFAULT_BACKUP_RETENTION),
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings in '{repo_root / SETTINGS_FILENAME}': {exc}") from exc


def load_settings(repo: Path | None = None, home: Path | None = None) -> Settings:
    """Resolve settings for a run.

    Args:
        repo: Repository root. Falls back to ``$DOTLINK_REPO`` and then the
            current working directory.
        home: Home directory that sources are projected into. Falls back to
            ``$DOTLINK_HOME`` and then ``Path.home()``.
    """

    cwd = Path.cwd()
    repo_root = _resolve_dir(repo, REPO_ENV_VAR, default=cwd, base_dir=cwd)
    if not repo_root.is_dir():
        raise ConfigError(f"Repository directory '{repo_root}' does not exist")

    home_dir = _resolve_dir(home, HOME_ENV_VAR, default=Path.home(), base_dir=cwd)

    raw: Mapping[str, Any] = {}
    settings_file = repo_root / SETTINGS_FILENAME
    if settings_file.is_file():
        try:
            with settings_file.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Unable to parse '{settings_file}': {exc}") from exc
        raw = data.get("settings") or {}

    return Settings.from_raw(raw, repo_root=repo_root, home=home_dir)


def _resolve_dir(explicit: Path | None, env_var: str, *, default: Path, base_dir: Path) -> Path:
    if explicit is not None:
        return _expand_path(explicit, base_dir=base_dir)
    from_env = os.environ.get(env_var)
    if from_env:
        return _expand_path(from_env, base_dir=base_dir)
    return default.resolve(strict=False)
