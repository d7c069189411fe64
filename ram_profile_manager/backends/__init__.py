"""Mount backends for RAM Profile Manager.

Each backend implements the MountBackend interface.

Available backends:
    - LinuxBackend: bind mounts over a tmpfs mirror

Usage:
    from ram_profile_manager.backends import get_backend

    backend = get_backend()  # Auto-detect platform
    if backend.is_mountpoint(profile_path):
        ...
"""

from typing import Optional

from .base import MountBackend, BackendResult, DiskUsage
from ..utils.platform import detect_platform
from ..utils.process import CommandRunner


def get_backend(
    force_platform: Optional[str] = None,
    runner: Optional[CommandRunner] = None,
    use_sudo: bool = True,
) -> MountBackend:
    """Get the appropriate backend for the current platform.

    Args:
        force_platform: Override platform detection
        runner: Command runner handed to the backend
        use_sudo: Whether privileged commands go through sudo

    Returns:
        MountBackend: Platform-specific backend instance

    Raises:
        NotImplementedError: If platform is not supported
    """
    target = force_platform or detect_platform()

    if target == "linux":
        from .linux import LinuxBackend
        return LinuxBackend(runner=runner, use_sudo=use_sudo)

    raise NotImplementedError(
        f"Platform '{target}' is not supported. "
        f"Bind-mount relocation requires Linux."
    )


__all__ = [
    "MountBackend",
    "BackendResult",
    "DiskUsage",
    "get_backend",
]
