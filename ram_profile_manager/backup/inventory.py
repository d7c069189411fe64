"""Backup inventory: listing and pruning archives in the backup directory.

Only files named ``<prefix>-*.zip`` are considered backups; anything else
in the directory is never listed or deleted.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..config import ProfileConfig
from ..results import ConfirmCallback, OperationResult, Outcome, deny

logger = logging.getLogger(__name__)


@dataclass
class BackupRecord:
    """A backup archive on disk.

    Attributes:
        path: Full path to the archive
        size_bytes: Archive size
        mtime: Modification time (seconds since the epoch)
    """
    path: Path
    size_bytes: int
    mtime: float

    @classmethod
    def from_path(cls, path: Path) -> "BackupRecord":
        st = path.stat()
        return cls(path=path, size_bytes=st.st_size, mtime=st.st_mtime)

    @property
    def name(self) -> str:
        """Archive filename."""
        return self.path.name

    @property
    def modified(self) -> datetime:
        """Modification time in local time."""
        return datetime.fromtimestamp(self.mtime)

    def age_days(self, now: Optional[datetime] = None) -> int:
        """Whole days since the archive was written."""
        now = now or datetime.now()
        seconds = now.timestamp() - self.mtime
        return max(int(seconds // 86400), 0)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "path": str(self.path),
            "size_bytes": self.size_bytes,
            "modified": self.modified.isoformat(timespec="seconds"),
        }


class BackupInventory:
    """Lists, cleans and purges backup archives.

    The directory is rescanned on every call; nothing is cached.
    """

    def __init__(self, config: ProfileConfig, confirm: Optional[ConfirmCallback] = None):
        self.config = config
        self.confirm = confirm or deny

    @property
    def pattern(self) -> str:
        """Glob matching this profile's archives."""
        return f"{self.config.backup_prefix}-*.zip"

    def list(self) -> List[BackupRecord]:
        """All archives, most recent first.

        Ties in modification time are broken by filename, newest timestamp
        in the name first.
        """
        backup_dir = self.config.backup_dir
        if not backup_dir.is_dir():
            return []

        records = []
        for path in backup_dir.glob(self.pattern):
            if not path.is_file():
                continue
            try:
                records.append(BackupRecord.from_path(path))
            except FileNotFoundError:
                continue

        records.sort(key=lambda r: (r.mtime, r.name), reverse=True)
        return records

    def latest(self) -> Optional[BackupRecord]:
        """Most recent archive, or None if there are none."""
        records = self.list()
        return records[0] if records else None

    def clean(self) -> OperationResult:
        """Delete every archive except the most recent.

        Returns:
            OperationResult (NOOP with at most one archive, DECLINED, DONE)
        """
        records = self.list()
        if len(records) <= 1:
            logger.info("Nothing to clean: at most one backup exists")
            return OperationResult(Outcome.NOOP, "Nothing to clean", details=[])

        old = records[1:]
        if not self.confirm(
            f"Delete {len(old)} old backup(s) and keep {records[0].name}?"
        ):
            return OperationResult(Outcome.DECLINED, "Clean cancelled")

        deleted = self._delete(old)
        return OperationResult(
            Outcome.DONE,
            f"Deleted {len(deleted)} old backup(s), kept {records[0].name}",
            path=records[0].path,
            details=deleted,
        )

    def purge(self) -> OperationResult:
        """Delete every archive, then the backup directory if left empty.

        Returns:
            OperationResult (NOOP without archives, DECLINED, DONE)
        """
        records = self.list()
        if not records:
            logger.info("Nothing to purge: no backups exist")
            return OperationResult(Outcome.NOOP, "No backups to purge", details=[])

        if not self.confirm(
            f"Permanently delete all {len(records)} backup(s) in "
            f"{self.config.backup_dir}?"
        ):
            return OperationResult(Outcome.DECLINED, "Purge cancelled")

        deleted = self._delete(records)

        backup_dir = self.config.backup_dir
        if not any(backup_dir.iterdir()):
            backup_dir.rmdir()
            logger.info(f"Removed empty backup directory {backup_dir}")

        return OperationResult(
            Outcome.DONE,
            f"Deleted {len(deleted)} backup(s)",
            path=backup_dir,
            details=deleted,
        )

    def _delete(self, records: List[BackupRecord]) -> List[str]:
        deleted = []
        for record in records:
            record.path.unlink(missing_ok=True)
            logger.info(f"Deleted backup {record.name}")
            deleted.append(record.name)
        return deleted
