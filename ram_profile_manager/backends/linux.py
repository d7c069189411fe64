"""Linux backend for bind-mounting a profile from tmpfs.

Mount state comes from ``mountpoint -q`` when available and from
/proc/mounts otherwise. Mounting and unmounting shell out to ``mount
--bind`` and ``umount``, prefixed with ``sudo`` when not running as root.
"""

from pathlib import Path
from typing import List, Optional

from .base import MountBackend, BackendResult
from ..utils.platform import is_root
from ..utils.process import CommandRunner


class LinuxBackend(MountBackend):
    """Linux backend using bind mounts over a tmpfs mirror.

    Example:
        backend = LinuxBackend()
        if not backend.is_mountpoint(profile):
            result = backend.bind_mount(Path("/dev/shm/vivaldi-profile"), profile)
            if not result.success:
                print(result.message)
    """

    PROC_MOUNTS = Path("/proc/mounts")

    # Filesystem types that keep their contents in memory
    RAM_FS_TYPES = ("tmpfs", "ramfs")

    def __init__(self, runner: Optional[CommandRunner] = None, use_sudo: bool = True):
        """Initialize Linux backend.

        Args:
            runner: Command runner (a real subprocess runner by default)
            use_sudo: Prefix privileged commands with sudo when not root
        """
        super().__init__(runner)
        self.use_sudo = use_sudo
        self._is_root: Optional[bool] = None

    @property
    def is_root(self) -> bool:
        """Check if running as root."""
        if self._is_root is None:
            self._is_root = is_root()
        return self._is_root

    def _privileged(self, cmd: List[str]) -> List[str]:
        if self.use_sudo and not self.is_root:
            return ["sudo", *cmd]
        return cmd

    def is_available(self) -> bool:
        """True when both ``mount`` and ``umount`` are installed."""
        return (
            self.runner.which("mount") is not None and
            self.runner.which("umount") is not None
        )

    def get_availability_message(self) -> str:
        """Describe which commands and privileges are available."""
        messages = []

        if self.is_root:
            messages.append("Running as root")
        elif self.use_sudo:
            messages.append("Running as non-root user; mount/umount will use sudo")
        else:
            messages.append("Running as non-root user without sudo; mounting will likely fail")

        for program in ("mount", "umount", "mountpoint", "rsync", "pgrep"):
            found = self.runner.which(program)
            messages.append(f"{program}: {found or 'not found'}")

        return "\n".join(messages)

    def _read_mounts(self) -> List[List[str]]:
        try:
            with open(self.PROC_MOUNTS, "r") as f:
                return [line.split() for line in f if line.strip()]
        except OSError as e:
            self.logger.warning(f"Could not read {self.PROC_MOUNTS}: {e}")
            return []

    @staticmethod
    def _decode_mount_path(field: str) -> str:
        # /proc/mounts escapes whitespace and backslashes as octal
        return (
            field.replace("\\040", " ")
            .replace("\\011", "\t")
            .replace("\\012", "\n")
            .replace("\\134", "\\")
        )

    def is_mountpoint(self, path: Path) -> bool:
        """Check if a path is a mount point.

        Args:
            path: Path to check

        Returns:
            bool: True if path is a mount point
        """
        path = Path(path)
        if not path.exists():
            return False

        if self.runner.which("mountpoint"):
            result = self.runner.run(["mountpoint", "-q", str(path)])
            return result.returncode == 0

        target = str(path.resolve())
        for parts in self._read_mounts():
            if len(parts) >= 2 and self._decode_mount_path(parts[1]) == target:
                return True
        return False

    def bind_mount(self, source: Path, target: Path) -> BackendResult:
        """Bind-mount ``source`` onto ``target``."""
        cmd = self._privileged(["mount", "--bind", str(source), str(target)])
        result = self.runner.run(cmd)

        if not result.ok:
            return BackendResult(
                success=False,
                message=f"Bind mount failed: {result.output or 'Unknown error'}",
                path=Path(target),
            )

        self.logger.info(f"Bind-mounted {source} onto {target}")
        return BackendResult(
            success=True,
            message=f"Bind-mounted {source} onto {target}",
            path=Path(target),
        )

    def unmount(self, target: Path) -> BackendResult:
        """Unmount ``target``.

        Lazy unmounting is never attempted: a busy mount point must fail
        here rather than detach while the application still writes to it.
        """
        cmd = self._privileged(["umount", str(target)])
        result = self.runner.run(cmd)

        if not result.ok:
            return BackendResult(
                success=False,
                message=f"Unmount failed: {result.output or 'Unknown error'}",
                path=Path(target),
            )

        self.logger.info(f"Unmounted {target}")
        return BackendResult(
            success=True,
            message=f"Unmounted {target}",
            path=Path(target),
        )

    def is_process_running(self, name: str) -> bool:
        """Check for a process named exactly ``name`` with pgrep."""
        result = self.runner.run(["pgrep", "-x", name])
        if result.returncode == -1:
            self.logger.warning("pgrep not found; assuming the application is not running")
            return False
        return result.returncode == 0

    def is_ram_filesystem(self, path: Path) -> bool:
        """Check if a path is on a tmpfs/ramfs filesystem.

        The longest mount point prefixing ``path`` decides.

        Args:
            path: Path to check

        Returns:
            bool: True if path is on a RAM-backed filesystem
        """
        target = Path(path).absolute()
        best: Optional[Path] = None
        best_type = ""

        for parts in self._read_mounts():
            if len(parts) < 3:
                continue
            mount_point = Path(self._decode_mount_path(parts[1]))
            if mount_point == target or mount_point in target.parents:
                if best is None or len(mount_point.parts) >= len(best.parts):
                    best = mount_point
                    best_type = parts[2]

        return best_type in self.RAM_FS_TYPES
