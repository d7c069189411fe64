"""Restoring backups into the live profile.

Restore is an overlay: every archive entry is written to the profile,
replacing a file at the same relative path, but files that exist only in
the profile are left alone. Load and save mirror; restore does not.
"""

import logging
import os
import time
import zipfile
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from ..config import ProfileConfig
from ..errors import BackupFailed, InvalidArchive, InvalidSelection, NoBackupsFound, RamNotActive
from ..mount import MountController
from ..results import ConfirmCallback, OperationResult, Outcome, SelectCallback, deny
from ..utils.progress import ProgressCallback, ProgressTracker
from .inventory import BackupInventory, BackupRecord

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def _safe_relative(name: str) -> PurePosixPath:
    """Validate an archive entry name and return it as a relative path.

    Raises:
        InvalidArchive: If the entry is absolute or escapes the root
    """
    rel = PurePosixPath(name.replace("\\", "/"))
    if rel.is_absolute() or ".." in rel.parts or (rel.parts and ":" in rel.parts[0]):
        raise InvalidArchive(f"Unsafe path in archive: {name!r}")
    return rel


def _conflict(destination: Path, rel: PurePosixPath, is_dir: bool) -> Optional[str]:
    """Describe an existing entry that would block writing ``rel``.

    Symlinks never conflict: they are replaced rather than followed, so
    everything below one is created fresh.
    """
    parts = rel.parts if is_dir else rel.parts[:-1]
    current = destination
    for part in parts:
        current = current / part
        if current.is_symlink() or not os.path.lexists(current):
            return None
        if not current.is_dir():
            return f"{current} is a file but the backup has a directory there"
    if not is_dir:
        target = destination / rel
        if target.is_dir() and not target.is_symlink():
            return f"{target} is a directory but the backup has a file there"
    return None


def _make_dirs(destination: Path, parts: Tuple[str, ...]) -> None:
    """Create ``parts`` under ``destination`` without following symlinks.

    A symlink standing where a directory belongs is replaced by a real
    directory, so nothing is ever written outside ``destination``.
    """
    current = destination
    for part in parts:
        current = current / part
        if current.is_symlink():
            logger.warning(f"Replacing symlink {current} with a directory")
            current.unlink()
        if not current.is_dir():
            current.mkdir()


def _entry_mtime(info: zipfile.ZipInfo) -> float:
    return time.mktime(info.date_time + (0, 0, -1))


def extract_archive(
    archive_path: Path,
    destination: Path,
    progress: Optional[ProgressCallback] = None,
) -> int:
    """Overlay the contents of a ZIP archive onto ``destination``.

    Every entry name is validated, and checked against what already exists,
    before anything is written: an unsafe entry or a file standing where
    the backup has a directory (or the reverse) leaves the destination
    untouched. Symlinks in the destination are replaced, never followed.

    Args:
        archive_path: Archive to extract
        destination: Directory to extract into (created if missing)
        progress: Optional callback receiving bytes extracted / total
            uncompressed size

    Returns:
        Number of files extracted

    Raises:
        InvalidArchive: If the archive is corrupt or has unsafe entries
        BackupFailed: If an existing entry is in the way or the
            destination can't be written
    """
    destination = Path(destination)
    try:
        zf = zipfile.ZipFile(archive_path)
    except zipfile.BadZipFile as e:
        raise InvalidArchive(f"{archive_path} is not a valid ZIP archive: {e}") from e
    except OSError as e:
        raise BackupFailed(f"Cannot open backup {archive_path}: {e}") from e

    with zf:
        entries = [(info, _safe_relative(info.filename)) for info in zf.infolist()]
        dirs = [(info, rel) for info, rel in entries if info.is_dir()]
        files = [(info, rel) for info, rel in entries if not info.is_dir()]

        for info, rel in entries:
            conflict = _conflict(destination, rel, info.is_dir())
            if conflict:
                raise BackupFailed(f"Cannot restore {info.filename!r}: {conflict}")

        tracker = ProgressTracker(progress, total=sum(info.file_size for info, _ in files))
        try:
            _overlay(zf, archive_path, destination, dirs, files, tracker)
        except OSError as e:
            raise BackupFailed(f"Cannot restore {archive_path} into {destination}: {e}") from e

    tracker.finish()
    return len(files)


def _overlay(zf, archive_path, destination, dirs, files, tracker) -> None:
    destination.mkdir(parents=True, exist_ok=True)

    for _info, rel in dirs:
        _make_dirs(destination, rel.parts)

    for info, rel in files:
        target = destination / rel
        _make_dirs(destination, rel.parts[:-1])
        if target.is_symlink() or target.is_file():
            target.unlink()
        try:
            with zf.open(info) as src, open(target, "wb") as dst:
                while True:
                    chunk = src.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    dst.write(chunk)
                    tracker.advance(len(chunk))
        except zipfile.BadZipFile as e:
            raise InvalidArchive(f"Corrupt entry {info.filename!r} in {archive_path}: {e}") from e

        mode = (info.external_attr >> 16) & 0o7777
        if mode:
            os.chmod(target, mode)
        mtime = _entry_mtime(info)
        os.utime(target, (mtime, mtime))

    # Extracting files bumps directory mtimes, so those go last
    for info, rel in sorted(dirs, key=lambda d: len(d[1].parts), reverse=True):
        mtime = _entry_mtime(info)
        os.utime(destination / rel, (mtime, mtime))


class RestoreEngine:
    """Restores backups into the RAM-mounted profile.

    Attributes:
        config: Profile configuration
        controller: Mount controller used for the precondition check
        inventory: Backup listing
    """

    def __init__(
        self,
        config: ProfileConfig,
        controller: MountController,
        inventory: Optional[BackupInventory] = None,
        confirm: Optional[ConfirmCallback] = None,
    ):
        self.config = config
        self.controller = controller
        self.inventory = inventory or BackupInventory(config)
        self.confirm = confirm or deny

    def list_backups(self) -> List[BackupRecord]:
        """Archives, most recent first. Rescanned on every call."""
        return self.inventory.list()

    def _require_mounted(self) -> None:
        if not self.controller.is_mounted():
            raise RamNotActive("RAM profile is not active; load it before restoring")

    def restore_latest(self, progress: Optional[ProgressCallback] = None) -> OperationResult:
        """Restore the most recent backup.

        Raises:
            RamNotActive: If the profile is not mounted from RAM
            NoBackupsFound: If there is nothing to restore
            InvalidArchive: If the archive is corrupt or unsafe
        """
        self._require_mounted()
        records = self.list_backups()
        if not records:
            raise NoBackupsFound(f"No backups found in {self.config.backup_dir}")
        return self._restore(records[0], progress)

    def restore_selected(
        self,
        selector: SelectCallback,
        progress: Optional[ProgressCallback] = None,
    ) -> OperationResult:
        """Restore a backup chosen by ``selector``.

        Args:
            selector: Receives the ordered backups and returns a 1-based
                index, or None to cancel
            progress: Optional callback for extraction progress

        Returns:
            OperationResult (DONE, CANCELLED, DECLINED)

        Raises:
            RamNotActive: If the profile is not mounted from RAM
            NoBackupsFound: If there is nothing to choose from
            InvalidSelection: If the index is outside 1..count
        """
        self._require_mounted()
        records = self.list_backups()
        if not records:
            raise NoBackupsFound(f"No backups found in {self.config.backup_dir}")

        choice = selector(records)
        if choice is None:
            logger.info("Restore cancelled at selection")
            return OperationResult(Outcome.CANCELLED, "Restore cancelled")

        if isinstance(choice, bool) or not isinstance(choice, int) or not 1 <= choice <= len(records):
            raise InvalidSelection(
                f"Selection {choice!r} is out of range; choose 1-{len(records)}"
            )

        return self._restore(records[choice - 1], progress)

    def _restore(self, record: BackupRecord, progress: Optional[ProgressCallback]) -> OperationResult:
        if not self.confirm(
            f"Restore {record.name} into {self.config.source}? "
            f"Files in the backup will overwrite current ones."
        ):
            return OperationResult(Outcome.DECLINED, "Restore cancelled", path=record.path)

        logger.info(f"Restoring {record.name} into {self.config.source}")
        count = extract_archive(record.path, self.config.source, progress=progress)
        logger.info(f"Restored {count} files from {record.name}")
        return OperationResult(
            Outcome.DONE,
            f"Restored {count} files from {record.name}",
            path=record.path,
            details=record,
        )
