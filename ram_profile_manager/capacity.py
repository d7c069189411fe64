"""Capacity checks before relocating a profile into RAM.

During load and save the original tree and the in-flight copy can coexist,
so the RAM filesystem must hold ``multiplier`` times the profile size.
"""

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .backends.base import MountBackend
from .config import ProfileConfig
from .errors import CapacityInsufficient

logger = logging.getLogger(__name__)


def directory_size(path: Path) -> int:
    """Recursive size in bytes of the regular files under ``path``.

    Symlinks are neither followed nor counted. Entries that vanish or
    can't be statted during the walk are skipped.

    Args:
        path: Directory to measure

    Returns:
        Total size in bytes (0 for a missing directory)
    """
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                st = os.lstat(os.path.join(root, name))
            except OSError:
                continue
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


@dataclass
class CapacityReport:
    """Result of a capacity check.

    Attributes:
        profile_bytes: Recursive size of the profile
        available_bytes: Free space on the RAM filesystem (0 if unknown)
        multiplier: Safety multiplier applied to the profile size
        ok: True iff available_bytes >= multiplier * profile_bytes
        error: Why the RAM filesystem could not be statted, if it couldn't
    """
    profile_bytes: int
    available_bytes: int
    multiplier: float
    ok: bool
    error: Optional[str] = None

    @property
    def required_bytes(self) -> int:
        """Bytes the RAM filesystem must have free."""
        return int(self.multiplier * self.profile_bytes)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "profile_bytes": self.profile_bytes,
            "available_bytes": self.available_bytes,
            "required_bytes": self.required_bytes,
            "multiplier": self.multiplier,
            "ok": self.ok,
            "error": self.error,
        }


class CapacityChecker:
    """Answers whether the profile fits into the RAM filesystem."""

    def __init__(self, config: ProfileConfig, backend: MountBackend):
        self.config = config
        self.backend = backend

    def check(self, profile_dir: Optional[Path] = None) -> CapacityReport:
        """Compare profile size against free RAM filesystem space.

        Fails closed: if the RAM filesystem can't be statted the report
        is not ok.

        Args:
            profile_dir: Directory to measure (defaults to the profile source)

        Returns:
            CapacityReport
        """
        profile_dir = Path(profile_dir or self.config.source)
        multiplier = self.config.capacity_multiplier
        profile_bytes = directory_size(profile_dir)

        usage = self.backend.get_usage(self.config.ram_path)
        if usage is None:
            logger.warning(f"Cannot stat RAM filesystem for {self.config.ram_path}")
            return CapacityReport(
                profile_bytes=profile_bytes,
                available_bytes=0,
                multiplier=multiplier,
                ok=False,
                error=f"Cannot stat RAM filesystem for {self.config.ram_path}",
            )

        available = usage.free_bytes
        ok = available >= multiplier * profile_bytes
        logger.debug(
            f"Capacity: profile={profile_bytes:,}B available={available:,}B "
            f"multiplier={multiplier} ok={ok}"
        )
        return CapacityReport(
            profile_bytes=profile_bytes,
            available_bytes=available,
            multiplier=multiplier,
            ok=ok,
        )

    def require(self, profile_dir: Optional[Path] = None) -> CapacityReport:
        """Like check(), but raise when the profile does not fit.

        Raises:
            CapacityInsufficient: If the report is not ok
        """
        report = self.check(profile_dir)
        if not report.ok:
            raise CapacityInsufficient(
                report.error or
                f"RAM filesystem has {report.available_bytes:,} bytes free, "
                f"{report.required_bytes:,} required "
                f"({report.multiplier:g}x profile size of {report.profile_bytes:,})"
            )
        return report
