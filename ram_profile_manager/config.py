"""Configuration dataclasses for RAM Profile Manager."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from enum import Enum


class SyncStrategy(Enum):
    """How the mirror copy between disk and RAM is performed."""
    AUTO = "auto"      # rsync when installed, native otherwise
    RSYNC = "rsync"    # rsync -a --delete
    NATIVE = "native"  # pure Python walk


DEFAULT_RAM_ROOT = Path("/dev/shm")


@dataclass
class ProfileConfig:
    """Configuration for the relocated profile.

    Attributes:
        source: Persistent profile directory (bind-mount target)
        ram_path: Mirror directory on the RAM-backed filesystem
        backup_dir: Directory holding ZIP backups
        backup_prefix: Archive filename prefix (``<prefix>-<timestamp>.zip``)
        process_name: Exact process name of the owning application
        capacity_multiplier: Required RAM as a multiple of profile size
        check_capacity_on_load: Refuse to load when capacity is insufficient
        sync_strategy: How mirroring is performed
        verify_integrity: Hash-verify both trees after every mirror
        use_sudo: Prefix mount/umount with sudo when not running as root
        stale_backup_days: Age after which the latest backup is flagged
        compress_level: Deflate level for backup archives (0-9)
    """
    source: Path
    ram_path: Path
    backup_dir: Path
    backup_prefix: str = "vivaldi-profile"
    process_name: str = "vivaldi-bin"
    capacity_multiplier: float = 2.0
    check_capacity_on_load: bool = False
    sync_strategy: SyncStrategy = SyncStrategy.AUTO
    verify_integrity: bool = True
    use_sudo: bool = True
    stale_backup_days: int = 7
    compress_level: int = 9

    def __post_init__(self):
        """Ensure paths are Path objects."""
        if isinstance(self.source, str):
            self.source = Path(self.source)
        if isinstance(self.ram_path, str):
            self.ram_path = Path(self.ram_path)
        if isinstance(self.backup_dir, str):
            self.backup_dir = Path(self.backup_dir)
        if isinstance(self.sync_strategy, str):
            self.sync_strategy = SyncStrategy(self.sync_strategy)

    @classmethod
    def for_home(cls, home: Optional[Path] = None, **overrides) -> "ProfileConfig":
        """Build the default Vivaldi layout under a home directory.

        Args:
            home: Home directory (defaults to the current user's)
            **overrides: Any field to replace in the default layout

        Returns:
            ProfileConfig for ``~/.config/vivaldi`` mirrored into /dev/shm
        """
        home = Path(home) if home else Path.home()
        values = {
            "source": home / ".config" / "vivaldi",
            "ram_path": DEFAULT_RAM_ROOT / "vivaldi-profile",
            "backup_dir": home / "Backups" / "vivaldi-profile-ram",
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self) -> Optional[str]:
        """Validate the configuration.

        Returns:
            str: Error message if invalid, None if valid
        """
        if not self.source.is_absolute():
            return f"source must be an absolute path: {self.source}"
        if not self.ram_path.is_absolute():
            return f"ram_path must be an absolute path: {self.ram_path}"
        if self.source == self.ram_path:
            return "source and ram_path must differ"
        if self.ram_path in self.source.parents or self.source in self.ram_path.parents:
            return "source and ram_path must not contain one another"
        if self.capacity_multiplier < 1:
            return "capacity_multiplier must be at least 1"
        if not 0 <= self.compress_level <= 9:
            return "compress_level must be between 0 and 9"
        if not self.backup_prefix or "/" in self.backup_prefix:
            return "backup_prefix must be a plain filename prefix"
        return None


@dataclass
class ManagerConfig:
    """Process-wide settings for ProfileManager.

    Attributes:
        log_file: Path to log file (None for stderr only)
        log_level: Logging level name
        json_logs: Emit JSON lines instead of text
    """
    log_file: Optional[Path] = None
    log_level: str = "INFO"
    json_logs: bool = False

    def __post_init__(self):
        """Ensure paths are Path objects."""
        if isinstance(self.log_file, str):
            self.log_file = Path(self.log_file)


@dataclass
class ServiceConfig:
    """Settings for the systemd user unit that loads/saves on session events.

    Attributes:
        service_name: Unit file name
        unit_dir: Directory for user units
        exec_path: Command the unit invokes (``<exec_path> load``)
        description: Unit description
    """
    service_name: str = "vivaldi-ram-profile.service"
    unit_dir: Optional[Path] = None
    exec_path: str = "ram-profile"
    description: str = "Vivaldi RAM Profile Manager"

    def __post_init__(self):
        """Ensure paths are Path objects."""
        if isinstance(self.unit_dir, str):
            self.unit_dir = Path(self.unit_dir)
        if self.unit_dir is None:
            self.unit_dir = Path.home() / ".config" / "systemd" / "user"
