"""Backup module for RAM Profile Manager.

This module provides:
- BackupArchiver: timestamped ZIP backups of the live in-RAM profile
- RestoreEngine: overlay restore of the latest or a selected backup
- BackupInventory: listing, cleaning and purging archives
"""

from ram_profile_manager.backup.archiver import BackupArchiver, backup_filename, write_archive
from ram_profile_manager.backup.inventory import BackupInventory, BackupRecord
from ram_profile_manager.backup.restore import RestoreEngine, extract_archive

__all__ = [
    "BackupArchiver",
    "BackupInventory",
    "BackupRecord",
    "RestoreEngine",
    "backup_filename",
    "extract_archive",
    "write_archive",
]
