"""Platform detection for platform-restricted sources."""

from __future__ import annotations

import platform
from enum import Enum
from pathlib import Path
from typing import Iterable

PROC_VERSION = Path("/proc/version")
WSL_MARKER = "microsoft"


class Platform(str, Enum):
    """Platform tags accepted in the manifest."""

    LINUX = "linux"
    DARWIN = "darwin"
    WSL = "wsl"


def _kernel_version() -> str:
    try:
        return PROC_VERSION.read_text(errors="replace")
    except OSError:
        return platform.release()


def resolve_platform(system: str | None = None, kernel_version: str | None = None) -> Platform | None:
    """Return the running platform, or ``None`` when it is not one we know about.

    WSL reports itself as Linux; it is told apart by the ``microsoft`` marker in
    the kernel version string.
    """

    system = (system if system is not None else platform.system()).lower()
    if system == "linux":
        version = kernel_version if kernel_version is not None else _kernel_version()
        if WSL_MARKER in version.lower():
            return Platform.WSL
        return Platform.LINUX
    if system == "darwin":
        return Platform.DARWIN
    return None


def platform_matches(current: Platform | None, restriction: Iterable[Platform] | None) -> bool:
    """Return ``True`` when a source restricted to ``restriction`` applies on ``current``."""

    allowed = tuple(restriction or ())
    if not allowed:
        return True
    return current in allowed


def describe_platform(current: Platform | None) -> str:
    return current.value if current is not None else "unknown"
