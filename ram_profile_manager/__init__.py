"""RAM Profile Manager - run a browser profile from RAM, safely.

Relocates a profile directory onto a RAM-backed filesystem (tmpfs) for the
duration of a session and reconciles it back to disk afterwards, with
point-in-time ZIP backups of the live profile.

Key Features:
    - Bind-mount relocation with state always derived from the OS
    - Mirrored sync (rsync or pure Python) with xxhash verification
    - Timestamped ZIP backups and overlay restore
    - Capacity checks before loading
    - Systemd user unit to load/save with the session

Quick Start:
    from ram_profile_manager import ProfileManager, ProfileConfig

    manager = ProfileManager(ProfileConfig.for_home())
    manager.load()     # profile now served from /dev/shm
    manager.backup()
    manager.save()     # profile back on disk

Classes:
    ProfileManager: Main interface
    ProfileConfig: Paths and policy for one profile
    ManagerConfig: Logging settings
    SyncStrategy: Enum for mirror strategies (AUTO, RSYNC, NATIVE)
"""

__version__ = "1.0.0"
__license__ = "MIT"

from typing import Optional

# Core configuration classes
from .config import (
    ProfileConfig,
    ManagerConfig,
    ServiceConfig,
    SyncStrategy,
)

# Main manager class
from .manager import ProfileManager

# Components
from .backends.base import MountBackend, BackendResult, DiskUsage
from .backup import BackupArchiver, BackupInventory, BackupRecord, RestoreEngine
from .capacity import CapacityChecker, CapacityReport
from .mount import MountController, MountState
from .results import OperationResult, Outcome
from .status import StatusReport, StatusReporter
from .sync import SyncEngine, SyncStats
from .errors import (
    RamProfileError,
    ProfileNotFound,
    RamNotActive,
    ArchiverUnavailable,
    NoBackupsFound,
    InvalidSelection,
    MountFailed,
    UnmountFailed,
    CapacityInsufficient,
    ExternalToolFailed,
    SyncFailed,
    InvalidArchive,
    BackupFailed,
)

# Public API
__all__ = [
    "__version__",
    "__license__",
    "ProfileManager",
    "ProfileConfig",
    "ManagerConfig",
    "ServiceConfig",
    "SyncStrategy",
    "MountBackend",
    "BackendResult",
    "DiskUsage",
    "BackupArchiver",
    "BackupInventory",
    "BackupRecord",
    "RestoreEngine",
    "CapacityChecker",
    "CapacityReport",
    "MountController",
    "MountState",
    "OperationResult",
    "Outcome",
    "StatusReport",
    "StatusReporter",
    "SyncEngine",
    "SyncStats",
    "RamProfileError",
    "ProfileNotFound",
    "RamNotActive",
    "ArchiverUnavailable",
    "NoBackupsFound",
    "InvalidSelection",
    "MountFailed",
    "UnmountFailed",
    "CapacityInsufficient",
    "ExternalToolFailed",
    "SyncFailed",
    "InvalidArchive",
    "BackupFailed",
    "create_manager",
]


def create_manager(
    home: Optional[str] = None,
    ram_root: Optional[str] = None,
    **overrides,
) -> ProfileManager:
    """Convenience function to create a ProfileManager for the default layout.

    Args:
        home: Home directory holding ``.config/vivaldi`` (current user's by default)
        ram_root: RAM filesystem root for the mirror (``/dev/shm`` by default)
        **overrides: Any ProfileConfig field

    Returns:
        Configured ProfileManager instance

    Example:
        manager = create_manager(capacity_multiplier=3)
    """
    from pathlib import Path

    if ram_root and "ram_path" not in overrides:
        overrides["ram_path"] = Path(ram_root) / "vivaldi-profile"

    return ProfileManager(ProfileConfig.for_home(home, **overrides))
