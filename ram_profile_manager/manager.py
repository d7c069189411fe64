"""Main ProfileManager class - unified interface for profile relocation.

This module wires the components together for one profile:

- MountController: load/save transitions between disk and RAM
- BackupArchiver / RestoreEngine: ZIP backups of the live profile
- BackupInventory: listing and pruning archives
- CapacityChecker / StatusReporter: read-only inspection

Example:
    from ram_profile_manager import ProfileManager, ProfileConfig

    manager = ProfileManager(ProfileConfig.for_home(), confirm=ask_user)
    manager.load()
    # ... browse from RAM ...
    manager.backup()
    manager.save()
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from .backends import get_backend
from .backends.base import MountBackend
from .backup.archiver import BackupArchiver
from .backup.inventory import BackupInventory, BackupRecord
from .backup.restore import RestoreEngine
from .capacity import CapacityChecker, CapacityReport
from .config import ManagerConfig, ProfileConfig
from .mount import MountController, MountState
from .results import ConfirmCallback, OperationResult, Outcome, SelectCallback, deny
from .status import StatusReport, StatusReporter
from .sync.engine import SyncEngine
from .utils.logging import TEXT_FORMAT, DATE_FORMAT, JsonFormatter
from .utils.process import CommandRunner
from .utils.progress import ProgressCallback


# Set up module logger
logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "ram_profile_manager"


class ProfileManager:
    """Unified manager for one relocatable profile.

    Every component receives the same ProfileConfig; nothing reads global
    state. User interaction is injected: ``confirm`` answers yes/no
    questions (default: always no) and ``select`` picks a backup for
    restore_selected().

    Attributes:
        config: Profile configuration
        manager_config: Logging settings
        backend: OS mount backend
        controller: Load/save state machine
        inventory: Backup listing

    Example:
        manager = ProfileManager(config, confirm=lambda q: True)

        result = manager.load()
        if result.outcome == Outcome.NOOP:
            print("Already in RAM")

        archive = manager.backup().path
        manager.restore_latest()
        manager.save()
    """

    def __init__(
        self,
        config: ProfileConfig,
        manager_config: Optional[ManagerConfig] = None,
        runner: Optional[CommandRunner] = None,
        backend: Optional[MountBackend] = None,
        confirm: Optional[ConfirmCallback] = None,
        select: Optional[SelectCallback] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the ProfileManager.

        Args:
            config: Profile configuration
            manager_config: Logging settings. If None, uses defaults.
            runner: Command runner shared by backend, sync and service calls
            backend: Mount backend. If None, detected for this platform.
            confirm: Yes/no callback for risky operations
            select: Backup chooser for restore_selected()
            clock: Source of "now" for backup names and ages

        Raises:
            ValueError: If the configuration is invalid
            NotImplementedError: If the platform has no backend
        """
        validation_error = config.validate()
        if validation_error:
            raise ValueError(f"Invalid profile config: {validation_error}")

        self.config = config
        self.manager_config = manager_config or ManagerConfig()
        self.runner = runner or CommandRunner()
        self.confirm = confirm or deny
        self.select = select

        self._setup_logging()

        self.backend = backend or get_backend(runner=self.runner, use_sudo=config.use_sudo)
        if not self.backend.is_available():
            logger.warning(f"Backend not fully available: {self.backend.get_availability_message()}")

        self.sync_engine = SyncEngine(config, runner=self.runner)
        self.capacity = CapacityChecker(config, self.backend)
        self.controller = MountController(
            config,
            self.backend,
            self.sync_engine,
            confirm=self.confirm,
            capacity=self.capacity,
        )
        self.inventory = BackupInventory(config, confirm=self.confirm)
        self.archiver = BackupArchiver(config, self.controller, clock=clock)
        self.restorer = RestoreEngine(config, self.controller, self.inventory, confirm=self.confirm)
        self.reporter = StatusReporter(config, self.controller, self.inventory, clock=clock)

        logger.debug(f"ProfileManager ready: {config.source} <-> {config.ram_path}")

    def _setup_logging(self) -> None:
        """Attach a file handler to the package logger if configured."""
        log_file = self.manager_config.log_file
        if not log_file:
            return

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        target = str(Path(log_file).absolute())
        for handler in package_logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
                return

        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(self.manager_config.log_level.upper())
        if self.manager_config.json_logs:
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(logging.Formatter(TEXT_FORMAT, DATE_FORMAT))
        package_logger.addHandler(handler)

    # Relocation

    def state(self) -> MountState:
        """Current mount state, derived from the OS."""
        return self.controller.state()

    def load(self, progress: Optional[ProgressCallback] = None) -> OperationResult:
        """Mirror the profile into RAM and bind-mount it. See MountController.load."""
        return self.controller.load(progress=progress)

    def save(self, progress: Optional[ProgressCallback] = None) -> OperationResult:
        """Unmount and mirror the profile back to disk. See MountController.save."""
        return self.controller.save(progress=progress)

    def check_capacity(self) -> CapacityReport:
        """Compare profile size against free RAM filesystem space."""
        return self.capacity.check()

    # Backups

    def backup(self, progress: Optional[ProgressCallback] = None) -> OperationResult:
        """Create a timestamped backup of the live profile.

        Raises:
            RamNotActive: If the profile is not mounted from RAM
            ArchiverUnavailable: If compression is unavailable
        """
        archive = self.archiver.create_backup(progress=progress)
        return OperationResult(Outcome.DONE, f"Backup created: {archive.name}", path=archive)

    def list_backups(self) -> List[BackupRecord]:
        """Archives, most recent first."""
        return self.restorer.list_backups()

    def restore_latest(self, progress: Optional[ProgressCallback] = None) -> OperationResult:
        """Overlay the most recent backup onto the live profile."""
        return self.restorer.restore_latest(progress=progress)

    def restore_selected(
        self,
        selector: Optional[SelectCallback] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> OperationResult:
        """Overlay a chosen backup onto the live profile.

        Args:
            selector: Backup chooser; defaults to the one given at construction
            progress: Optional callback for extraction progress

        Raises:
            ValueError: If no selector is available
        """
        selector = selector or self.select
        if selector is None:
            raise ValueError("restore_selected requires a selector")
        return self.restorer.restore_selected(selector, progress=progress)

    def clean_backups(self) -> OperationResult:
        """Delete all backups except the latest (after confirmation)."""
        return self.inventory.clean()

    def purge_backups(self) -> OperationResult:
        """Delete every backup (after confirmation)."""
        return self.inventory.purge()

    # Inspection

    def status(self) -> StatusReport:
        """Aggregate mount, process and backup state."""
        return self.reporter.report()
