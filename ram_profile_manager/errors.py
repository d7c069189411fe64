"""Exception hierarchy for RAM Profile Manager.

Every failure of a core operation is raised as a subclass of
RamProfileError and propagated to the caller unchanged. Nothing is retried.
"""

from typing import List, Optional


class RamProfileError(Exception):
    """Base class for all RAM Profile Manager failures."""


class ProfileNotFound(RamProfileError):
    """The persistent profile directory does not exist."""


class RamNotActive(RamProfileError):
    """The profile is not currently bind-mounted from RAM."""


class ArchiverUnavailable(RamProfileError):
    """Compressed archives cannot be written on this system."""


class NoBackupsFound(RamProfileError):
    """The backup directory holds no matching archives."""


class InvalidSelection(RamProfileError):
    """A backup selection index fell outside the displayed list."""


class MountFailed(RamProfileError):
    """The bind mount could not be established or verified."""


class UnmountFailed(RamProfileError):
    """The bind mount could not be released or is still active."""


class CapacityInsufficient(RamProfileError):
    """The RAM filesystem cannot hold the profile with the safety margin."""


class SyncFailed(RamProfileError):
    """A native mirror could not read its source or write its destination."""


class InvalidArchive(RamProfileError):
    """A backup archive is corrupt or contains unsafe entry paths."""


class BackupFailed(RamProfileError):
    """A backup could not be written or restored because of the filesystem."""


class ExternalToolFailed(RamProfileError):
    """An external command exited with a non-zero status.

    Attributes:
        command: The command line that was run
        returncode: Exit status (-1 when the program was not found)
        output: Captured diagnostic output
    """

    def __init__(self, command: List[str], returncode: int, output: Optional[str] = None):
        self.command = list(command)
        self.returncode = returncode
        self.output = (output or "").strip()
        message = f"'{' '.join(self.command)}' exited with status {returncode}"
        if self.output:
            message += f": {self.output.splitlines()[-1]}"
        super().__init__(message)
