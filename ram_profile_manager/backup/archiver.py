"""ZIP backups of the live in-RAM profile.

Archives are written with the standard library's zipfile module, deflated
at the configured level. Entry names are POSIX paths relative to the profile
root; each directory entry precedes its contents.
"""

import logging
import os
import stat
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..capacity import directory_size
from ..config import ProfileConfig
from ..errors import ArchiverUnavailable, BackupFailed, RamNotActive
from ..mount import MountController
from ..utils.progress import ProgressCallback, ProgressTracker

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def backup_filename(prefix: str, when: datetime) -> str:
    """Archive name for a backup taken at ``when``."""
    return f"{prefix}-{when.strftime(TIMESTAMP_FORMAT)}.zip"


def _discard_partial(archive_path: Path) -> None:
    try:
        archive_path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove partial archive {archive_path}: {e}")


def write_archive(
    profile_dir: Path,
    archive_path: Path,
    compress_level: int = 9,
    progress: Optional[ProgressCallback] = None,
) -> int:
    """Write ``profile_dir`` into a new ZIP archive.

    Symlinks, sockets and other non-regular files are skipped. On any
    failure the partially written archive is removed.

    Args:
        profile_dir: Tree to archive
        archive_path: Destination file (overwritten if present)
        compress_level: Deflate level 0-9
        progress: Optional callback receiving bytes written / total bytes

    Returns:
        Number of file entries written

    Raises:
        ArchiverUnavailable: If zlib is not available
        BackupFailed: If the tree can't be read or the archive can't be written
    """
    if zipfile.zlib is None:
        raise ArchiverUnavailable("zlib is not available; cannot write compressed archives")

    profile_dir = Path(profile_dir)
    tracker = ProgressTracker(progress, total=directory_size(profile_dir))
    files_written = 0

    def onerror(err: OSError) -> None:
        raise err

    try:
        with zipfile.ZipFile(
            archive_path,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compress_level,
            strict_timestamps=False,
        ) as zf:
            for current, dirnames, filenames in os.walk(profile_dir, onerror=onerror):
                rel_dir = Path(current).relative_to(profile_dir)

                # Sorted in place so os.walk descends in the same order
                dirnames.sort()
                for name in list(dirnames):
                    path = os.path.join(current, name)
                    if os.path.islink(path):
                        logger.debug(f"Skipping symlink: {rel_dir / name}")
                        dirnames.remove(name)
                        continue
                    zf.write(path, (rel_dir / name).as_posix())

                for name in sorted(filenames):
                    path = os.path.join(current, name)
                    st = os.lstat(path)
                    if not stat.S_ISREG(st.st_mode):
                        logger.debug(f"Skipping non-regular file: {rel_dir / name}")
                        continue
                    zf.write(path, (rel_dir / name).as_posix())
                    files_written += 1
                    tracker.advance(st.st_size)
    except BaseException as e:
        _discard_partial(Path(archive_path))
        if isinstance(e, OSError):
            raise BackupFailed(f"Cannot write backup {archive_path}: {e}") from e
        raise

    tracker.finish()
    return files_written


class BackupArchiver:
    """Creates timestamped backups of the RAM-mounted profile.

    Attributes:
        config: Profile configuration
        controller: Mount controller used for the precondition check
    """

    def __init__(
        self,
        config: ProfileConfig,
        controller: MountController,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.controller = controller
        self.clock = clock

    def create_backup(self, progress: Optional[ProgressCallback] = None) -> Path:
        """Archive the live profile into the backup directory.

        A backup in the same second as an existing one overwrites it.

        Args:
            progress: Optional callback for archiving progress

        Returns:
            Path to the new archive

        Raises:
            RamNotActive: If the profile is not mounted from RAM
            ArchiverUnavailable: If compression is unavailable
            BackupFailed: If the backup directory or archive can't be written
        """
        if not self.controller.is_mounted():
            raise RamNotActive("RAM profile is not active; load it before backing up")

        backup_dir = self.config.backup_dir
        try:
            backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupFailed(f"Cannot create backup directory {backup_dir}: {e}") from e
        archive_path = backup_dir / backup_filename(self.config.backup_prefix, self.clock())

        logger.info(f"Creating backup {archive_path}")
        count = write_archive(
            self.config.source,
            archive_path,
            compress_level=self.config.compress_level,
            progress=progress,
        )

        size = archive_path.stat().st_size
        logger.info(f"Backup complete: {count} files, {size:,} bytes -> {archive_path.name}")
        return archive_path
