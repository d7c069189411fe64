"""External command execution.

All calls to mount, umount, mountpoint, pgrep, rsync and systemctl go
through CommandRunner so the core logic can be exercised with a fake
runner that never touches the real system.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]


@dataclass
class CommandResult:
    """Outcome of an external command.

    Attributes:
        returncode: Exit status (-1 when the program was not found)
        stdout: Captured standard output
        stderr: Captured standard error
    """
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """True when the command exited with status 0."""
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Best diagnostic text: stderr if present, else stdout."""
        return (self.stderr or self.stdout).strip()


class CommandRunner:
    """Runs external commands synchronously."""

    def which(self, program: str) -> Optional[str]:
        """Locate a program on PATH.

        Args:
            program: Executable name

        Returns:
            Absolute path to the program, or None if not installed
        """
        return shutil.which(program)

    def run(
        self,
        cmd: List[str],
        on_output: Optional[OutputCallback] = None,
    ) -> CommandResult:
        """Run a command and return its result.

        When ``on_output`` is given, stderr is merged into stdout and each
        line is passed to the callback while the command is still running.
        Carriage returns count as line breaks, so tools that redraw a
        progress line (rsync) yield one callback per redraw.

        Args:
            cmd: Command and arguments
            on_output: Optional per-line callback

        Returns:
            CommandResult with exit status and captured output
        """
        logger.debug(f"Running command: {' '.join(cmd)}")

        if on_output is None:
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
            except FileNotFoundError:
                return CommandResult(-1, "", f"Command not found: {cmd[0]}")
            return CommandResult(proc.returncode, proc.stdout, proc.stderr)

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError:
            return CommandResult(-1, "", f"Command not found: {cmd[0]}")

        lines = []
        with proc:
            for line in proc.stdout:
                line = line.rstrip("\n")
                lines.append(line)
                on_output(line)
            returncode = proc.wait()

        return CommandResult(returncode, "\n".join(lines), "")
