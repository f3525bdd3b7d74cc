"""Core package for the dotlink project."""

from .cli import app, run
from .config import Settings, load_settings
from .editor import GroupEditor
from .engine import Reconciler, ReconcileResult
from .errors import DotlinkError
from .manifest import ExtractSpec, Group, Manifest, Source, load_manifest, save_manifest
from .models import Action, Issue, LinkState, SourceOutcome
from .platforms import Platform, resolve_platform
from .report import GroupReport, RunReport
from .snapshots import SnapshotService

__all__ = [
    "Settings",
    "load_settings",
    "GroupEditor",
    "Reconciler",
    "ReconcileResult",
    "DotlinkError",
    "ExtractSpec",
    "Group",
    "Manifest",
    "Source",
    "load_manifest",
    "save_manifest",
    "Action",
    "Issue",
    "LinkState",
    "SourceOutcome",
    "Platform",
    "resolve_platform",
    "GroupReport",
    "RunReport",
    "SnapshotService",
    "app",
    "run",
]
