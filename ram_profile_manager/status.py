"""Read-only status aggregation."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .backends.base import DiskUsage
from .backup.inventory import BackupInventory, BackupRecord
from .config import ProfileConfig
from .mount import MountController, MountState

logger = logging.getLogger(__name__)


@dataclass
class StatusReport:
    """Snapshot of the profile's state.

    Attributes:
        state: Derived mount state
        stale_mirror: RAM mirror populated while not mounted
        application_running: Whether the owning process is active
        backup_count: Number of archives
        latest_backup: Most recent archive, if any
        latest_age_days: Age of the latest archive in whole days
        backup_stale: Latest archive older than the configured threshold
        ram_usage: RAM filesystem usage, if it could be statted
    """
    source: str
    ram_path: str
    backup_dir: str
    state: MountState
    stale_mirror: bool
    application_running: bool
    backup_count: int
    latest_backup: Optional[BackupRecord] = None
    latest_age_days: Optional[int] = None
    backup_stale: bool = False
    ram_usage: Optional[DiskUsage] = None

    @property
    def mounted(self) -> bool:
        return self.state == MountState.MOUNTED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source": self.source,
            "ram_path": self.ram_path,
            "backup_dir": self.backup_dir,
            "state": self.state.value,
            "mounted": self.mounted,
            "stale_mirror": self.stale_mirror,
            "application_running": self.application_running,
            "backup_count": self.backup_count,
            "latest_backup": self.latest_backup.to_dict() if self.latest_backup else None,
            "latest_age_days": self.latest_age_days,
            "backup_stale": self.backup_stale,
            "ram_usage": self.ram_usage.to_dict() if self.ram_usage else None,
        }


class StatusReporter:
    """Aggregates mount, process and backup state. Never changes anything."""

    def __init__(
        self,
        config: ProfileConfig,
        controller: MountController,
        inventory: BackupInventory,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.controller = controller
        self.inventory = inventory
        self.clock = clock

    def report(self) -> StatusReport:
        """Build a fresh status report."""
        state = self.controller.state()
        records = self.inventory.list()
        latest = records[0] if records else None

        age = latest.age_days(self.clock()) if latest else None
        stale = age is not None and age > self.config.stale_backup_days
        if stale:
            logger.debug(f"Latest backup is {age} days old")

        return StatusReport(
            source=str(self.config.source),
            ram_path=str(self.config.ram_path),
            backup_dir=str(self.config.backup_dir),
            state=state,
            stale_mirror=self.controller.has_stale_mirror(),
            application_running=self.controller.application_running(),
            backup_count=len(records),
            latest_backup=latest,
            latest_age_days=age,
            backup_stale=stale,
            ram_usage=self.controller.backend.get_usage(self.config.ram_path),
        )
