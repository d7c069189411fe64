"""Sync engine for RAM Profile Manager.

Philosophy: THE SOURCE WINS.

SyncEngine performs one-way mirrors between the persistent profile and its
RAM copy. After a mirror, the destination holds exactly the source's
entries with matching content and metadata; anything else is deleted.

Two strategies:
- rsync: ``rsync -a --delete`` with progress parsed from ``--info=progress2``
- native: a Python walk with rsync's size+mtime quick check
"""

import logging
import os
import re
import shutil
import stat
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any, Set, Tuple

from ram_profile_manager.config import ProfileConfig, SyncStrategy
from ram_profile_manager.errors import ExternalToolFailed, SyncFailed
from ram_profile_manager.utils.hashing import hash_directory, compare_hashes
from ram_profile_manager.utils.process import CommandRunner
from ram_profile_manager.utils.progress import ProgressCallback, ProgressTracker

logger = logging.getLogger(__name__)

# "  1,234,567  45%   12.34MB/s    0:00:01 (xfr#3, to-chk=10/20)"
RSYNC_PROGRESS_RE = re.compile(r"\s(\d{1,3})%\s")


@dataclass
class SyncStats:
    """Statistics from a mirror operation."""

    success: bool = True
    strategy: str = "unknown"
    direction: str = "unknown"  # "to_ram" or "to_disk"

    # File counts
    files_copied: int = 0
    files_deleted: int = 0
    files_unchanged: int = 0

    # Size stats
    bytes_copied: int = 0

    # Timing
    started_at: float = 0.0
    completed_at: float = 0.0
    duration_ms: float = 0.0

    # Verification
    verified: Optional[bool] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "success": self.success,
            "strategy": self.strategy,
            "direction": self.direction,
            "files_copied": self.files_copied,
            "files_deleted": self.files_deleted,
            "files_unchanged": self.files_unchanged,
            "bytes_copied": self.bytes_copied,
            "duration_ms": self.duration_ms,
            "verified": self.verified,
            "errors": self.errors,
        }


class SyncEngine:
    """Mirrors one directory tree onto another.

    THE SOURCE WINS: entries present only in the destination are removed.

    Attributes:
        config: ProfileConfig with strategy and verification settings
        runner: Command runner used for rsync
    """

    def __init__(self, config: ProfileConfig, runner: Optional[CommandRunner] = None):
        """Initialize sync engine.

        Args:
            config: Profile configuration
            runner: Command runner for rsync (a real one by default)
        """
        self.config = config
        self.runner = runner or CommandRunner()

    def resolve_strategy(self) -> SyncStrategy:
        """Pick the concrete strategy for this run."""
        strategy = self.config.sync_strategy
        if strategy == SyncStrategy.AUTO:
            if self.runner.which("rsync"):
                return SyncStrategy.RSYNC
            logger.debug("rsync not found, using native mirror")
            return SyncStrategy.NATIVE
        return strategy

    def mirror(
        self,
        source: Path,
        target: Path,
        progress: Optional[ProgressCallback] = None,
        direction: str = "unknown",
    ) -> SyncStats:
        """Make ``target`` an exact replica of ``source``.

        Args:
            source: Directory to copy from
            target: Directory to reconcile (created if missing)
            progress: Optional callback receiving fractions in [0, 1]
            direction: Label recorded in the stats ("to_ram"/"to_disk")

        Returns:
            SyncStats with operation details

        Raises:
            SyncFailed: If the source is unreadable or the target unwritable
            ExternalToolFailed: If rsync exits with a non-zero status
        """
        source = Path(source)
        target = Path(target)
        strategy = self.resolve_strategy()
        stats = SyncStats(
            strategy=strategy.value,
            direction=direction,
            started_at=time.time(),
        )
        tracker = ProgressTracker(progress)

        if not source.is_dir():
            raise SyncFailed(f"Source directory does not exist: {source}")
        if not os.access(source, os.R_OK | os.X_OK):
            raise SyncFailed(f"Source directory is not readable: {source}")

        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SyncFailed(f"Cannot create destination {target}: {e}") from e
        if not os.access(target, os.W_OK | os.X_OK):
            raise SyncFailed(f"Destination directory is not writable: {target}")

        logger.info(f"Mirroring {source} -> {target} ({strategy.value})")

        if strategy == SyncStrategy.RSYNC:
            self._rsync_mirror(source, target, tracker)
        else:
            self._native_mirror(source, target, tracker, stats)

        tracker.finish()

        if self.config.verify_integrity:
            stats.verified = self._verify_sync(source, target, stats)

        return self._finalize_stats(stats)

    def _rsync_mirror(self, source: Path, target: Path, tracker: ProgressTracker) -> None:
        """Mirror with rsync, feeding its percentage column to the tracker."""
        cmd = [
            "rsync", "-a", "--delete", "--info=progress2",
            f"{source}/", f"{target}/",
        ]

        def on_output(line: str) -> None:
            match = RSYNC_PROGRESS_RE.search(f" {line} ")
            if match:
                tracker.report(int(match.group(1)) / 100)

        result = self.runner.run(cmd, on_output=on_output)
        if not result.ok:
            raise ExternalToolFailed(cmd, result.returncode, result.output)

    def _scan(self, root: Path) -> Tuple[Set[str], Dict[str, os.stat_result], Set[str]]:
        """Walk ``root`` without following symlinks.

        Returns:
            Tuple of (directories, regular files with their stat, symlinks),
            all as POSIX paths relative to ``root``
        """
        dirs: Set[str] = set()
        files: Dict[str, os.stat_result] = {}
        links: Set[str] = set()

        def onerror(err: OSError) -> None:
            raise err

        for current, dirnames, filenames in os.walk(root, onerror=onerror):
            rel_dir = Path(current).relative_to(root)
            for name in list(dirnames):
                rel = (rel_dir / name).as_posix()
                if os.path.islink(os.path.join(current, name)):
                    links.add(rel)
                    dirnames.remove(name)
                else:
                    dirs.add(rel)
            for name in filenames:
                rel = (rel_dir / name).as_posix()
                st = os.lstat(os.path.join(current, name))
                if stat.S_ISLNK(st.st_mode):
                    links.add(rel)
                elif stat.S_ISREG(st.st_mode):
                    files[rel] = st
                else:
                    logger.debug(f"Skipping special file: {rel}")

        return dirs, files, links

    @staticmethod
    def _remove(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()

    def _native_mirror(
        self,
        source: Path,
        target: Path,
        tracker: ProgressTracker,
        stats: SyncStats,
    ) -> None:
        """Mirror with a Python walk.

        Deletions run first so the RAM filesystem never holds stale and
        new content at the same time.
        """
        try:
            src_dirs, src_files, src_links = self._scan(source)
        except OSError as e:
            raise SyncFailed(f"Cannot read source {source}: {e}") from e

        try:
            dst_dirs, dst_files, dst_links = self._scan(target)
        except OSError as e:
            raise SyncFailed(f"Cannot read destination {target}: {e}") from e

        # 1. Delete entries that are absent from the source or changed type
        stale = (
            {d for d in dst_dirs if d not in src_dirs} |
            {f for f in dst_files if f not in src_files} |
            {link for link in dst_links if link not in src_links}
        )
        # Deepest first so parents are removed after their children
        for rel in sorted(stale, key=lambda p: p.count("/"), reverse=True):
            path = target / rel
            if not os.path.lexists(path):
                continue
            try:
                self._remove(path)
                stats.files_deleted += 1
            except OSError as e:
                raise SyncFailed(f"Cannot delete {path}: {e}") from e

        # 2. Directories, parents before children
        for rel in sorted(src_dirs, key=lambda p: p.count("/")):
            try:
                (target / rel).mkdir(exist_ok=True)
            except OSError as e:
                raise SyncFailed(f"Cannot create directory {target / rel}: {e}") from e

        # 3. Regular files failing the quick check
        pending = []
        for rel, src_st in sorted(src_files.items()):
            dst_st = dst_files.get(rel) if rel not in stale else None
            if (
                dst_st is not None and
                dst_st.st_size == src_st.st_size and
                dst_st.st_mtime_ns == src_st.st_mtime_ns
            ):
                stats.files_unchanged += 1
            else:
                pending.append((rel, src_st.st_size))

        tracker.total = sum(size for _, size in pending)
        for rel, size in pending:
            src = source / rel
            dst = target / rel
            try:
                # Replace, never write through (read-only files, hard links)
                if os.path.lexists(dst):
                    os.unlink(dst)
                shutil.copy2(src, dst, follow_symlinks=False)
            except OSError as e:
                raise SyncFailed(f"Cannot copy {src} -> {dst}: {e}") from e
            stats.files_copied += 1
            stats.bytes_copied += size
            tracker.advance(size)

        # 4. Symlinks are recreated, never followed
        for rel in sorted(src_links):
            src = source / rel
            dst = target / rel
            link_target = os.readlink(src)
            if os.path.islink(dst) and os.readlink(dst) == link_target:
                stats.files_unchanged += 1
                continue
            try:
                if os.path.lexists(dst):
                    self._remove(dst)
                os.symlink(link_target, dst)
            except OSError as e:
                raise SyncFailed(f"Cannot create symlink {dst}: {e}") from e
            stats.files_copied += 1

        # 5. Directory metadata last, deepest first, since filling a
        # directory changes its mtime
        for rel in sorted(src_dirs, key=lambda p: p.count("/"), reverse=True):
            try:
                shutil.copystat(source / rel, target / rel)
            except OSError as e:
                logger.warning(f"Could not copy metadata for {target / rel}: {e}")
        try:
            shutil.copystat(source, target)
        except OSError as e:
            logger.warning(f"Could not copy metadata for {target}: {e}")

    def _verify_sync(self, source: Path, target: Path, stats: SyncStats) -> bool:
        """Verify that target matches source.

        Mismatches are recorded in the stats and logged, not raised: the
        files are in place and the caller decides what to do.

        Args:
            source: Source directory
            target: Target directory
            stats: Stats object receiving error descriptions

        Returns:
            True if all files match, False otherwise
        """
        diff = compare_hashes(hash_directory(source), hash_directory(target))

        if diff["added"] or diff["removed"] or diff["modified"]:
            message = (
                f"Verification failed: "
                f"{len(diff['added'])} missing, "
                f"{len(diff['removed'])} extra, "
                f"{len(diff['modified'])} modified"
            )
            logger.warning(message)
            stats.errors.append(message)
            return False

        return True

    def _finalize_stats(self, stats: SyncStats) -> SyncStats:
        """Finalize stats with timing info."""
        stats.completed_at = time.time()
        stats.duration_ms = (stats.completed_at - stats.started_at) * 1000

        logger.info(
            f"Mirror {stats.direction} ({stats.strategy}): "
            f"{stats.files_copied} copied, "
            f"{stats.files_deleted} deleted, "
            f"{stats.files_unchanged} unchanged "
            f"in {stats.duration_ms:.1f}ms"
        )

        return stats
