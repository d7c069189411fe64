"""Platform detection and privilege checking utilities."""

import os
import sys
from pathlib import Path
from typing import Optional


def detect_platform() -> str:
    """Return the platform name used to select a mount backend.

    Returns:
        "linux", "darwin", "windows" or the raw ``sys.platform`` value
    """
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform == "win32":
        return "windows"
    return sys.platform


def is_root() -> bool:
    """Check whether the process runs with UID 0."""
    return os.geteuid() == 0


def nearest_existing(path: Path) -> Optional[Path]:
    """Return ``path`` or its closest ancestor that exists.

    Used to stat the filesystem that *will* host a directory before the
    directory itself is created.

    Args:
        path: Path that may not exist yet

    Returns:
        The first existing path walking upwards, or None
    """
    path = Path(path)
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return None
