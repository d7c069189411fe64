"""Bind-mount state machine for the relocated profile.

Two states, always derived from the operating system and never stored:

    UNMOUNTED --load()--> MOUNTED --save()--> UNMOUNTED

load:  mirror source -> RAM, then bind-mount RAM over source
save:  unmount source, then mirror RAM -> source, then remove RAM copy

Example:
    controller = MountController(config, backend, SyncEngine(config))
    result = controller.load()
    ...
    controller.save()
"""

from __future__ import annotations

import logging
import shutil
from enum import Enum
from typing import Optional

from .backends.base import MountBackend
from .capacity import CapacityChecker
from .config import ProfileConfig
from .errors import MountFailed, ProfileNotFound, SyncFailed, UnmountFailed
from .results import ConfirmCallback, OperationResult, Outcome, deny
from .sync.engine import SyncEngine
from .utils.progress import ProgressCallback


logger = logging.getLogger(__name__)


class MountState(Enum):
    """Whether the profile is currently served from RAM."""
    UNMOUNTED = "unmounted"
    MOUNTED = "mounted"


class MountController:
    """Owns the load/save transitions of the profile.

    The owning application's process is checked before each transition. A
    running application never blocks a transition by itself; it makes the
    transition depend on the injected ``confirm`` callable.

    Attributes:
        config: Profile configuration
        backend: OS mount backend
        sync_engine: Mirror implementation
    """

    def __init__(
        self,
        config: ProfileConfig,
        backend: MountBackend,
        sync_engine: SyncEngine,
        confirm: Optional[ConfirmCallback] = None,
        capacity: Optional[CapacityChecker] = None,
    ):
        self.config = config
        self.backend = backend
        self.sync_engine = sync_engine
        self.confirm = confirm or deny
        self.capacity = capacity or CapacityChecker(config, backend)

    def state(self) -> MountState:
        """Derive the current state from the OS."""
        if self.backend.is_mountpoint(self.config.source):
            return MountState.MOUNTED
        return MountState.UNMOUNTED

    def is_mounted(self) -> bool:
        """True when the profile is served from RAM."""
        return self.state() == MountState.MOUNTED

    def has_stale_mirror(self) -> bool:
        """True when a populated RAM mirror exists while nothing is mounted.

        This is what a failed bind mount or an external unmount leaves
        behind. The next load reconciles it; until then it is reported.
        """
        ram_path = self.config.ram_path
        if not ram_path.is_dir() or self.is_mounted():
            return False
        return any(ram_path.iterdir())

    def application_running(self) -> bool:
        """True when the owning application is running."""
        return self.backend.is_process_running(self.config.process_name)

    def _confirm_running_application(self, action: str) -> bool:
        if not self.application_running():
            return True
        logger.warning(
            f"{self.config.process_name} is running; {action} may lose data "
            f"held in open files"
        )
        return self.confirm(f"{self.config.process_name} is running. {action} anyway?")

    def load(self, progress: Optional[ProgressCallback] = None) -> OperationResult:
        """Relocate the profile into RAM.

        Args:
            progress: Optional callback for mirror progress

        Returns:
            OperationResult (DONE, NOOP when already mounted, DECLINED)

        Raises:
            ProfileNotFound: If the persistent profile does not exist
            CapacityInsufficient: If capacity checks are enabled and fail
            SyncFailed / ExternalToolFailed: If the mirror fails (nothing is mounted)
            MountFailed: If the bind mount fails (the mirror is left in place)
        """
        source = self.config.source
        ram_path = self.config.ram_path

        if not source.is_dir():
            raise ProfileNotFound(f"Profile not found at {source}")

        if self.is_mounted():
            logger.info(f"Profile is already mounted in RAM: {source}")
            return OperationResult(Outcome.NOOP, "Profile is already mounted in RAM", path=source)

        if not self._confirm_running_application("Load profile into RAM"):
            return OperationResult(Outcome.DECLINED, "Load cancelled: application is running")

        if self.config.check_capacity_on_load:
            self.capacity.require(source)

        if self.has_stale_mirror():
            logger.warning(f"Reconciling leftover RAM mirror at {ram_path}")

        logger.info(f"Preparing RAM directory {ram_path}")
        try:
            ram_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SyncFailed(f"Cannot create RAM directory {ram_path}: {e}") from e

        if not self.backend.is_ram_filesystem(ram_path):
            logger.warning(f"{ram_path} is not on a RAM-backed filesystem")

        # Any mirror failure propagates here, before a mount is attempted
        stats = self.sync_engine.mirror(source, ram_path, progress=progress, direction="to_ram")

        logger.info(f"Mounting {ram_path} onto {source}")
        result = self.backend.bind_mount(ram_path, source)
        if not result.success:
            raise MountFailed(f"{result.message} (RAM mirror left at {ram_path})")
        if not self.is_mounted():
            raise MountFailed(
                f"Mount command succeeded but {source} is not a mount point "
                f"(RAM mirror left at {ram_path})"
            )

        logger.info(f"Profile is now running from RAM: {ram_path}")
        return OperationResult(
            Outcome.DONE,
            "Profile is now running from RAM",
            path=ram_path,
            details=stats,
        )

    def save(self, progress: Optional[ProgressCallback] = None) -> OperationResult:
        """Persist the RAM profile back to disk and release it.

        Args:
            progress: Optional callback for mirror progress

        Returns:
            OperationResult (DONE, NOOP when not mounted, DECLINED)

        Raises:
            UnmountFailed: If the mount can't be released (nothing is synced)
            SyncFailed / ExternalToolFailed: If the mirror back to disk fails
        """
        source = self.config.source
        ram_path = self.config.ram_path

        if not self.is_mounted():
            logger.info("Profile is not mounted in RAM; nothing to save")
            return OperationResult(Outcome.NOOP, "Profile is not mounted in RAM", path=source)

        if not self._confirm_running_application("Save profile to disk"):
            return OperationResult(Outcome.DECLINED, "Save cancelled: application is running")

        logger.info(f"Unmounting {source}")
        result = self.backend.unmount(source)
        if not result.success:
            raise UnmountFailed(result.message)
        if self.is_mounted():
            raise UnmountFailed(f"{source} is still a mount point after unmount")

        stats = self.sync_engine.mirror(ram_path, source, progress=progress, direction="to_disk")

        self._remove_ram_mirror()

        logger.info(f"Profile saved to {source}")
        return OperationResult(Outcome.DONE, "Profile saved", path=source, details=stats)

    def _remove_ram_mirror(self) -> None:
        """Delete the RAM mirror after a successful save."""
        ram_path = self.config.ram_path
        source = self.config.source

        if ram_path == source or ram_path in source.parents:
            raise SyncFailed(f"Refusing to remove {ram_path}: it contains the profile")

        try:
            shutil.rmtree(ram_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise SyncFailed(f"Profile saved but RAM mirror could not be removed: {e}") from e

        logger.info(f"Removed RAM mirror {ram_path}")
