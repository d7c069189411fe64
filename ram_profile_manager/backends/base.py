"""Abstract base class for mount backends.

This module defines the interface the MountController and CapacityChecker
rely on for everything the operating system decides: mount points, bind
mounts, process lookup and filesystem capacity.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging
import os

from ..utils.platform import nearest_existing
from ..utils.process import CommandRunner


@dataclass
class DiskUsage:
    """Filesystem usage statistics.

    Attributes:
        total_bytes: Total capacity in bytes
        used_bytes: Used space in bytes
        free_bytes: Available space in bytes
        percent_used: Usage percentage (0-100)
    """
    total_bytes: int
    used_bytes: int
    free_bytes: int
    percent_used: float

    @property
    def total_mb(self) -> float:
        """Total capacity in megabytes."""
        return self.total_bytes / (1024 * 1024)

    @property
    def used_mb(self) -> float:
        """Used space in megabytes."""
        return self.used_bytes / (1024 * 1024)

    @property
    def free_mb(self) -> float:
        """Free space in megabytes."""
        return self.free_bytes / (1024 * 1024)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "total_bytes": self.total_bytes,
            "used_bytes": self.used_bytes,
            "free_bytes": self.free_bytes,
            "percent_used": self.percent_used,
            "total_mb": round(self.total_mb, 2),
            "used_mb": round(self.used_mb, 2),
            "free_mb": round(self.free_mb, 2),
        }


@dataclass
class BackendResult:
    """Result of a backend operation.

    Attributes:
        success: Whether the operation succeeded
        message: Human-readable status message
        path: Path the operation acted on (if applicable)
        error: Exception if operation failed
    """
    success: bool
    message: str
    path: Optional[Path] = None
    error: Optional[Exception] = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "message": self.message,
            "path": str(self.path) if self.path else None,
            "error": str(self.error) if self.error else None,
        }


class MountBackend(ABC):
    """Abstract base class for mount backends.

    Implementations never cache mount state: every query goes back to the
    operating system, so a crash or an external ``umount`` is always seen.
    """

    def __init__(self, runner: Optional[CommandRunner] = None):
        """Initialize the backend with a command runner and a logger."""
        self.runner = runner or CommandRunner()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this backend can bind-mount on the current system.

        Returns:
            bool: True if the backend can be used
        """

    @abstractmethod
    def get_availability_message(self) -> str:
        """Get a human-readable message about backend availability."""

    @abstractmethod
    def is_mountpoint(self, path: Path) -> bool:
        """Check if a path is currently a mount point.

        Args:
            path: Path to check

        Returns:
            bool: True if path is a mount point
        """

    @abstractmethod
    def bind_mount(self, source: Path, target: Path) -> BackendResult:
        """Make ``source`` appear at ``target``.

        Args:
            source: Directory whose content should be visible
            target: Existing directory to shadow

        Returns:
            BackendResult: Result of the mount command
        """

    @abstractmethod
    def unmount(self, target: Path) -> BackendResult:
        """Release the mount at ``target``.

        Args:
            target: Mount point to release

        Returns:
            BackendResult: Result of the unmount command
        """

    @abstractmethod
    def is_process_running(self, name: str) -> bool:
        """Check if a process with exactly this name is running."""

    @abstractmethod
    def is_ram_filesystem(self, path: Path) -> bool:
        """Check if a path lives on a RAM-backed filesystem."""

    def get_usage(self, path: Path) -> Optional[DiskUsage]:
        """Get usage statistics for the filesystem that hosts ``path``.

        ``path`` need not exist yet; its nearest existing ancestor is
        statted instead.

        Args:
            path: Path on the filesystem of interest

        Returns:
            DiskUsage: Usage statistics, or None if the filesystem can't be statted
        """
        target = nearest_existing(path)
        if target is None:
            return None

        try:
            stat = os.statvfs(target)
        except OSError as e:
            self.logger.error(f"Failed to get usage stats for {target}: {e}")
            return None

        total = stat.f_blocks * stat.f_frsize
        free = stat.f_bavail * stat.f_frsize
        used = total - stat.f_bfree * stat.f_frsize
        percent = (used / total * 100) if total > 0 else 0

        return DiskUsage(
            total_bytes=total,
            used_bytes=used,
            free_bytes=free,
            percent_used=round(percent, 2)
        )
